import os

# Engine creation in socialgraph.db happens at import time; keep tests off PostgreSQL
# and make tenacity back-off instantaneous.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_RETRY_MIN_WAIT", "0")
os.environ.setdefault("DB_RETRY_MAX_WAIT", "0")

import itertools
from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from socialgraph.models import Base, Gender
from socialgraph.services.profiles import ProfileData, profile_service
from socialgraph.services.relationships import relationship_service

TODAY = date(2024, 6, 1)
BASE_TIME = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_profile(db):
    """Factory creating profiles with deterministic, increasing last_active."""
    counter = itertools.count(1)

    def _make(
        user_id,
        *,
        name=None,
        handle=None,
        gender=Gender.female,
        birth_date=date(1995, 3, 14),
        country_code="US",
        spoken=("en",),
        learning=(),
        gender_preference=False,
        is_admin=False,
        active_minutes=None,
    ):
        n = next(counter)
        data = ProfileData(
            name=name or f"User {user_id}",
            handle=handle or f"user_{user_id}",
            gender=gender,
            birth_date=birth_date,
            country_code=country_code,
            spoken_languages=list(spoken),
            learning_languages=list(learning),
            gender_preference=gender_preference,
        )
        profile = profile_service.create_profile(db, user_id, data, today=TODAY)
        profile.is_admin = is_admin
        profile.last_active = BASE_TIME + timedelta(minutes=n if active_minutes is None else active_minutes)
        db.flush()
        return profile

    return _make


@pytest.fixture
def befriend(db):
    def _befriend(a, b):
        request = relationship_service.send_request(db, a, b, "hi")
        return relationship_service.accept_request(db, b, request.id)

    return _befriend


@pytest.fixture
def client(session_factory):
    from socialgraph.db import get_db
    from socialgraph.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
