"""Test deterministic seeding functionality."""

import random

from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from socialgraph.models import Base, Post
from socialgraph.services import seeder
from socialgraph.services.seeder import seed_random_generators

from conftest import TODAY


def _seed_fresh_database(n_profiles=12):
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    try:
        seed_random_generators()
        profiles = seeder.make_profiles(session, n_profiles, today=TODAY)
        return [(p.handle, p.country_code, p.gender.value, p.age_group.value) for p in profiles]
    finally:
        session.close()
        engine.dispose()


class TestDeterministicSeeding:
    """Test that seeding produces deterministic results."""

    def test_random_seed_deterministic(self):
        random.seed(1337)
        values1 = [random.randint(1, 100) for _ in range(10)]

        random.seed(1337)
        values2 = [random.randint(1, 100) for _ in range(10)]

        assert values1 == values2

    def test_faker_seed_deterministic(self):
        fake1 = Faker()
        fake1.seed_instance(1337)
        names1 = [fake1.user_name() for _ in range(5)]

        fake2 = Faker()
        fake2.seed_instance(1337)
        names2 = [fake2.user_name() for _ in range(5)]

        assert names1 == names2

    def test_seed_random_generators_function(self):
        """Module-level generators repeat after reseeding."""
        seed_random_generators()
        random_values1 = [random.randint(1, 100) for _ in range(5)]
        fake_names1 = [seeder.fake.user_name() for _ in range(3)]

        seed_random_generators()
        random_values2 = [random.randint(1, 100) for _ in range(5)]
        fake_names2 = [seeder.fake.user_name() for _ in range(3)]

        assert random_values1 == random_values2
        assert fake_names1 == fake_names2

    def test_profiles_are_identical_across_databases(self):
        assert _seed_fresh_database() == _seed_fresh_database()


class TestSeederOutput:
    def test_profiles_are_valid(self, db):
        seed_random_generators()
        profiles = seeder.make_profiles(db, 20, today=TODAY)

        handles = [p.handle for p in profiles]
        assert len(set(handles)) == 20
        assert all(3 <= len(h) <= 32 for h in handles)
        assert all(p.age >= 13 for p in profiles)
        assert all(p.country_code in seeder.COUNTRIES for p in profiles)

    def test_relationships_and_feed(self, db):
        seed_random_generators()
        profiles = seeder.make_profiles(db, 10, today=TODAY)
        db.commit()

        made = seeder.make_relationships(db, profiles, n_friendships=8, n_requests=4, n_blocks=2)
        posts = seeder.make_posts(db, profiles, 15)
        engagement = seeder.make_engagement(db, posts, max_likes=3, max_comments=2)

        assert 0 < made["friendships"] <= 8
        assert made["requests"] <= 4
        assert made["blocks"] <= 2
        assert db.query(Post).count() == 15
        assert engagement["likes"] >= 0
        assert engagement["comments"] <= 30

    def test_relationships_need_two_profiles(self, db):
        assert seeder.make_relationships(db, [], 5, 5, 5) == {"friendships": 0, "requests": 0, "blocks": 0}
