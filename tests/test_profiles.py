"""Tests for profile lifecycle and derived attributes."""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from socialgraph.errors import Conflict, InvalidArgument, NotFound
from socialgraph.models import AgeGroup, Gender, age_group_for, calculate_age
from socialgraph.services.profiles import ProfileData, ProfileService, profile_service
from socialgraph.services.relationships import relationship_service

from conftest import BASE_TIME, TODAY


def _data(**overrides):
    values = dict(
        name="Mina",
        handle="mina_k",
        gender=Gender.female,
        birth_date=date(1995, 3, 14),
        country_code="KR",
        spoken_languages=["ko", "en", "ko"],
    )
    values.update(overrides)
    return ProfileData(**values)


class TestAgeDerivation:
    @pytest.mark.parametrize(
        "birth_date, age",
        [
            (date(1995, 3, 14), 29),
            (date(2006, 6, 1), 18),
            (date(2006, 6, 2), 17),
            (date(2011, 6, 1), 13),
        ],
    )
    def test_calculate_age_counts_completed_years(self, birth_date, age):
        assert calculate_age(birth_date, TODAY) == age

    def test_age_group_boundaries(self):
        assert age_group_for(13) is AgeGroup.teen
        assert age_group_for(17) is AgeGroup.teen
        assert age_group_for(18) is AgeGroup.adult
        assert AgeGroup.adult.value == "18-100"


class TestCreateProfile:
    def test_derives_age_group_and_defaults(self, db):
        profile = profile_service.create_profile(db, 1, _data(birth_date=date(2008, 1, 1)), today=TODAY)

        assert profile.age == 16
        assert profile.age_group is AgeGroup.teen
        assert profile.is_admin is False
        assert profile.last_active is not None
        assert profile.spoken_languages == ["ko", "en"]

    def test_too_young(self, db):
        with pytest.raises(InvalidArgument):
            profile_service.create_profile(db, 1, _data(birth_date=date(2011, 6, 2)), today=TODAY)

    def test_one_profile_per_user(self, db):
        profile_service.create_profile(db, 1, _data(), today=TODAY)
        with pytest.raises(Conflict):
            profile_service.create_profile(db, 1, _data(handle="other"), today=TODAY)

    def test_handle_is_unique_and_case_sensitive(self, db):
        profile_service.create_profile(db, 1, _data(), today=TODAY)
        with pytest.raises(Conflict):
            profile_service.create_profile(db, 2, _data(), today=TODAY)

        other = profile_service.create_profile(db, 3, _data(handle="MINA_K"), today=TODAY)
        assert other.handle == "MINA_K"
        assert not profile_service.is_handle_available(db, "mina_k")
        assert profile_service.is_handle_available(db, "mina")

    @pytest.mark.parametrize("handle", ["ab", "has space", "dots.not.allowed", "x" * 33])
    def test_handle_format(self, db, handle):
        with pytest.raises(InvalidArgument):
            profile_service.create_profile(db, 1, _data(handle=handle), today=TODAY)

    def test_unknown_gender(self, db):
        with pytest.raises(InvalidArgument):
            profile_service.create_profile(db, 1, _data(gender="robot"), today=TODAY)

    def test_blank_name(self, db):
        with pytest.raises(InvalidArgument):
            profile_service.create_profile(db, 1, _data(name="   "), today=TODAY)


class TestUpdateProfile:
    def test_only_mutable_fields(self, db, make_profile):
        make_profile(1)
        for field in ("handle", "birth_date", "gender", "is_admin"):
            with pytest.raises(InvalidArgument):
                profile_service.update_profile(db, 1, {field: "x"})

    def test_updates_fields_and_rederives_age(self, db, make_profile):
        profile = make_profile(1, birth_date=date(2006, 6, 2))
        assert profile.age_group is AgeGroup.teen

        updated = profile_service.update_profile(
            db, 1, {"country_code": "FR", "learning_languages": ["fr", "fr"]}, today=TODAY + timedelta(days=1)
        )

        assert updated.country_code == "FR"
        assert updated.learning_languages == ["fr"]
        assert updated.age == 18
        assert updated.age_group is AgeGroup.adult

    def test_replaced_picture_is_released(self, db, make_profile):
        blobs = MagicMock()
        service = ProfileService(blob_store=blobs)
        make_profile(1)
        service.update_profile(db, 1, {"profile_picture": "blob://old"})
        blobs.release.assert_not_called()

        service.update_profile(db, 1, {"profile_picture": "blob://new"})
        blobs.release.assert_called_once_with("blob://old")

    @pytest.mark.parametrize("field", ["name", "spoken_languages", "about_me", "gender_preference", "country_code"])
    def test_null_for_required_field(self, db, make_profile, field):
        profile = make_profile(1)
        with pytest.raises(InvalidArgument):
            profile_service.update_profile(db, 1, {field: None})
        assert profile.name == "User 1"
        assert profile.spoken_languages == ["en"]

    def test_picture_can_be_cleared(self, db, make_profile):
        make_profile(1)
        profile_service.update_profile(db, 1, {"profile_picture": "blob://me"})

        assert profile_service.update_profile(db, 1, {"profile_picture": None}).profile_picture is None

    def test_name_is_stripped_and_not_blank(self, db, make_profile):
        make_profile(1)
        with pytest.raises(InvalidArgument):
            profile_service.update_profile(db, 1, {"name": "   "})

        assert profile_service.update_profile(db, 1, {"name": "  Mina  "}).name == "Mina"

    def test_missing_profile(self, db):
        with pytest.raises(NotFound):
            profile_service.update_profile(db, 42, {"name": "x"})

    def test_delete_releases_picture(self, db, make_profile):
        blobs = MagicMock()
        service = ProfileService(blob_store=blobs)
        make_profile(1)
        service.update_profile(db, 1, {"profile_picture": "blob://me"})

        service.delete_profile(db, 1)

        blobs.release.assert_called_once_with("blob://me")
        assert service.find_by_user(db, 1) is None


class TestLastActive:
    def test_touch_moves_forward_only(self, db, make_profile):
        profile = make_profile(1, active_minutes=10)
        later = BASE_TIME + timedelta(minutes=20)
        earlier = BASE_TIME + timedelta(minutes=5)

        profile_service.touch_last_active(db, 1, now=later)
        assert profile.last_active == later

        profile_service.touch_last_active(db, 1, now=earlier)
        assert profile.last_active == later

    def test_touch_without_profile(self, db):
        assert profile_service.touch_last_active(db, 99) is None


class TestViewingProfiles:
    def test_view_other_profile_with_friend_flag(self, db, make_profile, befriend):
        make_profile(1)
        other = make_profile(2)

        assert profile_service.get_user_profile(db, 1, other.id).is_friend is False
        befriend(1, 2)
        assert profile_service.get_user_profile(db, 1, other.id).is_friend is True

    def test_own_profile_goes_through_own_endpoint(self, db, make_profile):
        me = make_profile(1)
        with pytest.raises(InvalidArgument):
            profile_service.get_user_profile(db, 1, me.id)
        assert profile_service.get_own_profile(db, 1) is me

    @pytest.mark.parametrize("blocker, blocked", [(1, 2), (2, 1)])
    def test_blocked_profiles_are_hidden(self, db, make_profile, blocker, blocked):
        make_profile(1)
        other = make_profile(2)
        relationship_service.block(db, blocker, blocked)

        with pytest.raises(NotFound):
            profile_service.get_user_profile(db, 1, other.id)

    def test_unknown_profile(self, db):
        with pytest.raises(NotFound):
            profile_service.get_user_profile(db, 1, 12345)
