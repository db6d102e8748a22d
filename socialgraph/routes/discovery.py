"""
FastAPI routes for candidate discovery and profile search.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from socialgraph.config import DEFAULT_PAGE_SIZE
from socialgraph.db import get_db
from socialgraph.routes.deps import current_user
from socialgraph.services.discovery import DiscoveryFilters, discovery_engine


class ProfileSummaryOut(BaseModel):
    """Response model for one discovery candidate."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    handle: str
    profile_picture: Optional[str] = None
    gender: str
    age: int
    country_code: str
    spoken_languages: List[str]
    learning_languages: List[str]
    last_active: datetime


class CandidatePage(BaseModel):
    items: List[ProfileSummaryOut] = Field(..., description="Candidates, most recently active first")
    next_cursor: Optional[str] = Field(None, description="Opaque cursor for the next page; null at the end")


router = APIRouter(prefix="/discover", tags=["discovery"])


def _to_page(page) -> CandidatePage:
    return CandidatePage(
        items=[ProfileSummaryOut.model_validate(item) for item in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("", response_model=CandidatePage)
def find_candidates(
    country: Optional[str] = Query(None, description="Only candidates from this country"),
    spoken_language: Optional[str] = Query(None, description="Only candidates speaking this language"),
    learning_language: Optional[str] = Query(None, description="Only candidates learning this language"),
    cursor: Optional[str] = Query(None, description="Cursor from the previous page"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, description="Candidates per page"),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> CandidatePage:
    """
    Profiles the caller may connect with.

    Only the caller's age group is shown; blocked users, friends and users with
    a pending request in either direction never appear.
    """
    filters = DiscoveryFilters(
        country_code=country,
        spoken_language=spoken_language,
        learning_language=learning_language,
    )
    return _to_page(discovery_engine.find_candidates(db, user_id, filters, cursor, page_size))


@router.get("/search", response_model=CandidatePage)
def search_candidates(
    q: str = Query(..., description="Substring of a name or handle"),
    cursor: Optional[str] = Query(None, description="Cursor from the previous page"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, description="Candidates per page"),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> CandidatePage:
    return _to_page(discovery_engine.search_candidates(db, user_id, q, cursor, page_size))
