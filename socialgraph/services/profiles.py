"""Profile lifecycle: creation with derived age group, edits, last-active tracking."""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Protocol

from sqlalchemy.orm import Session

from socialgraph.config import ADULT_AGE, MIN_PROFILE_AGE
from socialgraph.errors import Conflict, InvalidArgument, NotFound
from socialgraph.models import Gender, Profile, calculate_age, utcnow
from socialgraph.services.indexes import index_layer
from socialgraph.services.relationships import RelationshipService, relationship_service
from socialgraph.services.store import EntityStore

logger = logging.getLogger(__name__)

HANDLE_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,32}$")

# Fields a user may change after creation. Handle, gender and birth date are fixed.
MUTABLE_FIELDS = frozenset({
    "name", "country_code", "spoken_languages", "learning_languages", "about_me", "hobbies",
    "visited_countries", "want_to_visit_countries", "favorite_books", "gender_preference",
    "profile_picture",
})
NULLABLE_FIELDS = frozenset({"profile_picture"})


class BlobStore(Protocol):
    """External blob storage holding profile pictures and post images."""

    def release(self, ref: str) -> None:
        ...


@dataclass
class ProfileData:
    name: str
    handle: str
    gender: Gender
    birth_date: date
    country_code: str
    spoken_languages: List[str] = field(default_factory=list)
    learning_languages: List[str] = field(default_factory=list)
    about_me: str = ""
    hobbies: List[str] = field(default_factory=list)
    visited_countries: List[str] = field(default_factory=list)
    want_to_visit_countries: List[str] = field(default_factory=list)
    favorite_books: List[str] = field(default_factory=list)
    gender_preference: bool = False
    profile_picture: Optional[str] = None


@dataclass
class ProfileDetail:
    profile: Profile
    is_friend: bool


def _dedupe(values) -> List[str]:
    return list(dict.fromkeys(values or []))


class ProfileService:
    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        relationships: RelationshipService = relationship_service,
    ):
        self.blob_store = blob_store
        self.relationships = relationships

    def _today(self, today: Optional[date]) -> date:
        return today or utcnow().date()

    def find_by_user(self, db: Session, user_id: int) -> Optional[Profile]:
        return EntityStore(db).first(Profile, "profiles_by_user", (user_id,))

    def get_own_profile(self, db: Session, user_id: int) -> Profile:
        profile = self.find_by_user(db, user_id)
        if profile is None:
            raise NotFound("Profile not found")
        return profile

    def is_handle_available(self, db: Session, handle: str) -> bool:
        return index_layer.first(db, "profiles_by_handle", (handle,)) is None

    def create_profile(self, db: Session, user_id: int, data: ProfileData, today: Optional[date] = None) -> Profile:
        if not HANDLE_PATTERN.match(data.handle or ""):
            raise InvalidArgument("Handle must be 3-32 letters, digits or underscores")
        if not (data.name or "").strip():
            raise InvalidArgument("Name must not be empty")
        try:
            gender = Gender(data.gender)
        except ValueError:
            raise InvalidArgument(f"Unknown gender {data.gender!r}")
        store = EntityStore(db)
        if self.find_by_user(db, user_id) is not None:
            raise Conflict("Profile already exists")
        if not self.is_handle_available(db, data.handle):
            raise Conflict(f"Handle {data.handle} is taken")

        today = self._today(today)
        age = calculate_age(data.birth_date, today)
        if age < MIN_PROFILE_AGE:
            raise InvalidArgument(f"Must be at least {MIN_PROFILE_AGE} years old")

        profile = Profile(
            user_id=user_id,
            name=data.name.strip(),
            handle=data.handle,
            gender=gender,
            country_code=data.country_code,
            spoken_languages=_dedupe(data.spoken_languages),
            learning_languages=_dedupe(data.learning_languages),
            about_me=data.about_me,
            hobbies=_dedupe(data.hobbies),
            visited_countries=_dedupe(data.visited_countries),
            want_to_visit_countries=_dedupe(data.want_to_visit_countries),
            favorite_books=_dedupe(data.favorite_books),
            gender_preference=data.gender_preference,
            profile_picture=data.profile_picture,
            is_admin=False,
            last_active=utcnow(),
        )
        profile.apply_birth_date(data.birth_date, today, ADULT_AGE)
        store.put(profile)
        logger.info("profile created user=%s handle=%s age_group=%s", user_id, profile.handle, profile.age_group.value)
        return profile

    def update_profile(
        self, db: Session, user_id: int, changes: Mapping[str, Any], today: Optional[date] = None
    ) -> Profile:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise InvalidArgument(f"Fields cannot be changed: {', '.join(sorted(unknown))}")
        nulled = sorted(name for name, value in changes.items() if value is None and name not in NULLABLE_FIELDS)
        if nulled:
            raise InvalidArgument(f"Fields cannot be null: {', '.join(nulled)}")
        if "name" in changes:
            if not changes["name"].strip():
                raise InvalidArgument("Name must not be empty")
            changes = {**changes, "name": changes["name"].strip()}
        profile = self.get_own_profile(db, user_id)
        old_picture = profile.profile_picture
        for name, value in changes.items():
            if isinstance(value, (list, tuple, set)):
                value = _dedupe(value)
            setattr(profile, name, value)
        profile.apply_birth_date(profile.birth_date, self._today(today), ADULT_AGE)
        self._bump(profile, utcnow())
        db.flush()
        if "profile_picture" in changes and old_picture and old_picture != profile.profile_picture:
            self._release(old_picture)
        return profile

    def delete_profile(self, db: Session, user_id: int) -> None:
        profile = self.get_own_profile(db, user_id)
        picture = profile.profile_picture
        EntityStore(db).delete_entity(profile)
        if picture:
            self._release(picture)

    def touch_last_active(
        self, db: Session, user_id: int, now: Optional[datetime] = None, today: Optional[date] = None
    ) -> Optional[Profile]:
        """Record activity; returns None when the user has no profile yet."""
        profile = self.find_by_user(db, user_id)
        if profile is None:
            return None
        self._bump(profile, now or utcnow())
        profile.apply_birth_date(profile.birth_date, self._today(today), ADULT_AGE)
        db.flush()
        return profile

    def get_user_profile(self, db: Session, viewer: int, profile_id: int) -> ProfileDetail:
        profile = EntityStore(db).get(Profile, profile_id)
        if profile.user_id == viewer:
            raise InvalidArgument("Use the own-profile endpoint to view your profile")
        if self.relationships.is_blocked_either_way(db, viewer, profile.user_id):
            raise NotFound("User profile not accessible")
        return ProfileDetail(profile=profile, is_friend=self.relationships.are_friends(db, viewer, profile.user_id))

    @staticmethod
    def _bump(profile: Profile, moment: datetime) -> None:
        # last_active never moves backwards
        if profile.last_active is None or moment > profile.last_active:
            profile.last_active = moment

    def _release(self, ref: str) -> None:
        if self.blob_store is not None:
            self.blob_store.release(ref)


# Global service instance without blob storage wired in
profile_service = ProfileService()
