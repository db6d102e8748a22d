"""
Discovery Engine: candidate profiles for a viewer.

Candidates come from the compound profile indexes, newest activity first,
restricted to the viewer's age group (and gender, when the viewer asked for
same-gender matches). Blocked, befriended and pending-request users, the
viewer and admins are removed as the index is scanned, so every page is
filled from the index rather than shrunk by the exclusions.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from socialgraph.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from socialgraph.errors import InvalidArgument, NotFound
from socialgraph.models import Profile
from socialgraph.services.indexes import IndexLayer, IndexPage, index_layer
from socialgraph.services.paging import Page, check_page_size, fill_page
from socialgraph.services.relationships import RelationshipService, relationship_service
from socialgraph.services.store import EntityStore

logger = logging.getLogger(__name__)

TEXT_INDEXES = ("profiles_search_name", "profiles_search_handle")


@dataclass
class DiscoveryFilters:
    """Optional narrowing of the candidate set; at most one value per attribute."""
    country_code: Optional[str] = None
    spoken_language: Optional[str] = None
    learning_language: Optional[str] = None


@dataclass
class ProfileSummary:
    id: int
    user_id: int
    name: str
    handle: str
    profile_picture: Optional[str]
    gender: str
    age: int
    country_code: str
    spoken_languages: List[str]
    learning_languages: List[str]
    last_active: datetime

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileSummary":
        return cls(
            id=profile.id,
            user_id=profile.user_id,
            name=profile.name,
            handle=profile.handle,
            profile_picture=profile.profile_picture,
            gender=profile.gender.value,
            age=profile.age,
            country_code=profile.country_code,
            spoken_languages=list(profile.spoken_languages or []),
            learning_languages=list(profile.learning_languages or []),
            last_active=profile.last_active,
        )


class DiscoveryEngine:
    """Read-only queries over profiles and the relationship indexes."""

    def __init__(
        self,
        relationships: RelationshipService = relationship_service,
        indexes: IndexLayer = index_layer,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self.relationships = relationships
        self.indexes = indexes
        self.max_page_size = max_page_size

    def _viewer_profile(self, store: EntityStore, viewer: int) -> Profile:
        profile = store.first(Profile, "profiles_by_user", (viewer,))
        if profile is None:
            raise NotFound("Profile not found")
        return profile

    @staticmethod
    def visibility(me: Profile) -> Dict[str, object]:
        """Equality rules every candidate must satisfy for this viewer."""
        rules: Dict[str, object] = {"age_group": me.age_group}
        if me.gender_preference:
            rules["gender"] = me.gender
        return rules

    def find_candidates(
        self,
        db: Session,
        viewer: int,
        filters: Optional[DiscoveryFilters] = None,
        cursor: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[ProfileSummary]:
        check_page_size(page_size, self.max_page_size)
        filters = filters or DiscoveryFilters()
        store = EntityStore(db, self.indexes)
        me = self._viewer_profile(store, viewer)

        equalities = self.visibility(me)
        if filters.country_code:
            equalities["country_code"] = filters.country_code
        plan = self.indexes.plan(Profile, equalities, sort="last_active")
        logger.debug("discovery viewer=%s index=%s residual=%s", viewer, plan.index, sorted(plan.residual))
        excluded = self._excluded(db, viewer)

        def fetch(after: Optional[str], limit: int) -> IndexPage:
            return self.indexes.range_scan(
                db, plan.index, plan.prefix, cursor=after, limit=limit, residual=plan.residual
            )

        return self._collect(store, fetch, me, excluded, filters, cursor, page_size)

    def search_candidates(
        self,
        db: Session,
        viewer: int,
        term: str,
        cursor: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[ProfileSummary]:
        """Name/handle substring search under the same visibility and exclusion rules."""
        check_page_size(page_size, self.max_page_size)
        if not (term or "").strip():
            raise InvalidArgument("Search term must not be empty")
        store = EntityStore(db, self.indexes)
        me = self._viewer_profile(store, viewer)
        rules = self.visibility(me)
        excluded = self._excluded(db, viewer)

        def fetch(after: Optional[str], limit: int) -> IndexPage:
            return self.indexes.search(db, TEXT_INDEXES, term, filters=rules, cursor=after, limit=limit)

        return self._collect(store, fetch, me, excluded, DiscoveryFilters(), cursor, page_size)

    def _excluded(self, db: Session, viewer: int) -> Set[int]:
        excluded = self.relationships.related_user_ids(db, viewer)
        excluded.add(viewer)
        return excluded

    def _collect(self, store, fetch, me, excluded, filters, cursor, page_size) -> Page[ProfileSummary]:
        profiles, next_cursor = fill_page(
            self.indexes,
            fetch,
            lambda page: store.get_many(Profile, page.ids, page.cursor_name),
            lambda profile: self.eligible(profile, me, excluded, filters),
            cursor,
            page_size,
        )
        return Page([ProfileSummary.from_profile(p) for p in profiles], next_cursor)

    @staticmethod
    def eligible(profile: Profile, me: Profile, excluded: Set[int], filters: DiscoveryFilters) -> bool:
        if profile.user_id in excluded or profile.is_admin:
            return False
        # Profiles without a picture are deliberately still candidates.
        # Age groups never mix, whichever index served the scan.
        if profile.age_group != me.age_group:
            return False
        if me.gender_preference and profile.gender != me.gender:
            return False
        if filters.country_code and profile.country_code != filters.country_code:
            return False
        if filters.spoken_language and filters.spoken_language not in (profile.spoken_languages or []):
            return False
        if filters.learning_language and filters.learning_language not in (profile.learning_languages or []):
            return False
        return True


# Global engine instance
discovery_engine = DiscoveryEngine()
