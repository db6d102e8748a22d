"""
FastAPI routes for profile management.
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from socialgraph.db import get_db
from socialgraph.models import AgeGroup, Gender
from socialgraph.routes.deps import current_user
from socialgraph.services.profiles import ProfileData, profile_service


# Request models
class ProfileCreate(BaseModel):
    """Request model for creating the caller's profile."""
    name: str = Field(..., description="Display name")
    handle: str = Field(..., description="Unique handle (3-32 letters, digits or underscores)")
    gender: Gender = Field(..., description="male, female or other")
    birth_date: date = Field(..., description="Birth date; age and age group are derived from it")
    country_code: str = Field(..., description="Country code")
    spoken_languages: List[str] = Field(default_factory=list)
    learning_languages: List[str] = Field(default_factory=list)
    about_me: str = ""
    hobbies: List[str] = Field(default_factory=list)
    visited_countries: List[str] = Field(default_factory=list)
    want_to_visit_countries: List[str] = Field(default_factory=list)
    favorite_books: List[str] = Field(default_factory=list)
    gender_preference: bool = Field(False, description="Only discover profiles of the same gender")
    profile_picture: Optional[str] = Field(None, description="Blob storage reference")


class ProfileUpdate(BaseModel):
    """Request model for a partial profile update; omitted fields are left alone."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    country_code: Optional[str] = None
    spoken_languages: Optional[List[str]] = None
    learning_languages: Optional[List[str]] = None
    about_me: Optional[str] = None
    hobbies: Optional[List[str]] = None
    visited_countries: Optional[List[str]] = None
    want_to_visit_countries: Optional[List[str]] = None
    favorite_books: Optional[List[str]] = None
    gender_preference: Optional[bool] = None
    profile_picture: Optional[str] = None


# Response models
class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    handle: str
    profile_picture: Optional[str] = None
    gender: Gender
    birth_date: date
    age: int
    age_group: AgeGroup
    country_code: str
    spoken_languages: List[str]
    learning_languages: List[str]
    about_me: str
    hobbies: List[str]
    visited_countries: List[str]
    want_to_visit_countries: List[str]
    favorite_books: List[str]
    gender_preference: bool
    last_active: datetime
    created_at: datetime


class ProfileDetailOut(BaseModel):
    """Another user's profile as seen by the caller."""
    profile: ProfileOut
    is_friend: bool


class HandleAvailability(BaseModel):
    handle: str
    available: bool


router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("", response_model=ProfileOut, status_code=201)
def create_profile(
    body: ProfileCreate,
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> ProfileOut:
    """Create the caller's profile. One profile per user; handles are unique."""
    profile = profile_service.create_profile(db, user_id, ProfileData(**body.model_dump()))
    return ProfileOut.model_validate(profile)


@router.get("/me", response_model=ProfileOut)
def get_own_profile(user_id: int = Depends(current_user), db: Session = Depends(get_db)) -> ProfileOut:
    return ProfileOut.model_validate(profile_service.get_own_profile(db, user_id))


@router.patch("/me", response_model=ProfileOut)
def update_own_profile(
    body: ProfileUpdate,
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> ProfileOut:
    profile = profile_service.update_profile(db, user_id, body.model_dump(exclude_unset=True))
    return ProfileOut.model_validate(profile)


@router.delete("/me", status_code=204)
def delete_own_profile(user_id: int = Depends(current_user), db: Session = Depends(get_db)) -> None:
    profile_service.delete_profile(db, user_id)


@router.post("/me/activity", response_model=ProfileOut)
def record_activity(user_id: int = Depends(current_user), db: Session = Depends(get_db)) -> ProfileOut:
    """Bump the caller's last-active timestamp."""
    profile_service.touch_last_active(db, user_id)
    return ProfileOut.model_validate(profile_service.get_own_profile(db, user_id))


@router.get("/handles/{handle}", response_model=HandleAvailability)
def check_handle(handle: str = Path(..., description="Handle to check"), db: Session = Depends(get_db)):
    return HandleAvailability(handle=handle, available=profile_service.is_handle_available(db, handle))


@router.get("/{profile_id}", response_model=ProfileDetailOut)
def get_user_profile(
    profile_id: int = Path(..., description="ID of the profile to view", ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> ProfileDetailOut:
    """
    View another user's profile.

    Profiles of users blocked in either direction are reported as not found.
    """
    detail = profile_service.get_user_profile(db, user_id, profile_id)
    return ProfileDetailOut(profile=ProfileOut.model_validate(detail.profile), is_friend=detail.is_friend)
