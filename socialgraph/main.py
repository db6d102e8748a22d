"""
Main FastAPI application for the social graph and discovery service.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from socialgraph.config import LOG_LEVEL
from socialgraph.errors import DomainError, IndexConsistencyError
from socialgraph.routes.discovery import router as discovery_router
from socialgraph.routes.feed import comments_router, router as posts_router
from socialgraph.routes.health import VERSION, router as health_router
from socialgraph.routes.profiles import router as profiles_router
from socialgraph.routes.relationships import router as relationships_router

logger = logging.getLogger(__name__)


def _error(status_code: int, error_code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details},
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Social Graph API",
        description="Profiles, friend requests, blocking, discovery and the friends feed",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        return _error(exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(IndexConsistencyError)
    async def index_consistency_handler(request: Request, exc: IndexConsistencyError):
        """An index pointed at a missing record; already logged where it was detected."""
        return _error(
            500,
            exc.error_code,
            "Internal data inconsistency",
            {"index": exc.index_name, "missing_ids": exc.missing_ids} if app.debug else None,
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        """A unique index rejected a write that raced past the service checks."""
        logger.warning("integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return _error(409, "CONFLICT", "The record conflicts with existing data")

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error("database error on %s %s: %s", request.method, request.url.path, exc)
        return _error(
            500,
            "DATABASE_ERROR",
            "Database operation failed",
            str(exc) if app.debug else "Database connection issue",
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled exception on %s %s", request.method, request.url.path)
        return _error(
            500,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
            str(exc) if app.debug else "Internal server error",
        )

    app.include_router(profiles_router)
    app.include_router(discovery_router)
    app.include_router(posts_router)
    app.include_router(comments_router)
    app.include_router(relationships_router)
    app.include_router(health_router)

    return app


# Create the application instance
app = create_app()


@app.get("/")
async def root():
    return {"message": "Social Graph API", "status": "healthy", "version": VERSION}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("socialgraph.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
