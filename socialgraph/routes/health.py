"""
Health check endpoints for monitoring system status.
"""

from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from socialgraph.db import get_session
from socialgraph.models import utcnow

VERSION = "1.0.0"

router = APIRouter(prefix="/health", tags=["health"])


def check_database_health() -> Dict[str, str]:
    """
    Check database connectivity.

    Returns:
        Dict with status and optional error details
    """
    try:
        with get_session() as db:
            result = db.execute(text("SELECT 1")).scalar()
            if result == 1:
                return {"status": "ok"}
            return {"status": "down", "error": "Unexpected query result"}
    except SQLAlchemyError as e:
        return {"status": "down", "error": f"Database error: {e}"}


@router.get("/")
def health_check() -> Dict[str, Any]:
    """
    Overall service health.

    Returns:
        Dict containing:
        - status: "ok" | "down"
        - db: database health status
        - version: API version
        - timestamp: current UTC timestamp
    """
    db_health = check_database_health()
    return {
        "status": "ok" if db_health["status"] == "ok" else "down",
        "db": db_health,
        "version": VERSION,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/db")
def database_health() -> Dict[str, Any]:
    """Database health with per-table record counts."""
    health_status: Dict[str, Any] = check_database_health()
    if health_status["status"] != "ok":
        return health_status
    try:
        with get_session() as db:
            tables = {}
            for table in ("profiles", "friend_requests", "friendships", "blocks", "posts", "comments", "likes"):
                tables[table] = db.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
        health_status.update({"tables": tables, "timestamp": utcnow().isoformat()})
    except SQLAlchemyError as e:
        health_status["error"] = f"Extended check failed: {e}"
    return health_status
