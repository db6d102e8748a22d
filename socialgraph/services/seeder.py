from __future__ import annotations
import random
import re
from datetime import date, timedelta
from typing import Dict, Optional, Sequence

from faker import Faker
from sqlalchemy.orm import Session

from socialgraph.config import COMMENT_MAX_LENGTH, POST_MAX_LENGTH, REQUEST_MESSAGE_MAX_LENGTH
from socialgraph.models import Comment, Gender, Like, Post, Profile, utcnow
from socialgraph.services.profiles import ProfileData, profile_service
from socialgraph.services.relationships import PairState, relationship_service
from socialgraph.services.store import EntityStore

SEED = 1337

fake = Faker()

COUNTRIES = ["US", "FR", "DE", "JP", "BR", "IN", "ES", "IT", "KR", "MX"]
LANGUAGES = ["en", "fr", "de", "ja", "pt", "hi", "es", "it", "ko", "zh"]
HOBBIES = ["hiking", "chess", "cooking", "photography", "music", "reading", "cycling", "gaming", "yoga", "travel"]


def seed_random_generators(seed: int = SEED) -> None:
    """Make every generator used by the seeder reproducible."""
    random.seed(seed)
    Faker.seed(seed)
    fake.seed_instance(seed)


def _handle(base: str, n: int) -> str:
    # suffix keeps handles unique without relying on Faker's unique pool
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", base)[:24]
    return f"{cleaned}_{n}"


def make_profiles(db: Session, n_profiles: int, today: Optional[date] = None) -> list[Profile]:
    today = today or utcnow().date()
    profiles: list[Profile] = []
    for i in range(n_profiles):
        spoken = random.sample(LANGUAGES, k=random.randint(1, 3))
        learning = random.sample([lang for lang in LANGUAGES if lang not in spoken], k=random.randint(0, 2))
        data = ProfileData(
            name=fake.name()[:64],
            handle=_handle(fake.user_name(), i + 1),
            gender=random.choice(list(Gender)),
            birth_date=today - timedelta(days=random.randint(13 * 366, 60 * 365)),
            country_code=random.choice(COUNTRIES),
            spoken_languages=spoken,
            learning_languages=learning,
            about_me=fake.sentence(nb_words=12),
            hobbies=random.sample(HOBBIES, k=random.randint(0, 4)),
            visited_countries=random.sample(COUNTRIES, k=random.randint(0, 3)),
            want_to_visit_countries=random.sample(COUNTRIES, k=random.randint(0, 3)),
            favorite_books=[fake.catch_phrase() for _ in range(random.randint(0, 2))],
            gender_preference=random.random() < 0.2,
        )
        p = profile_service.create_profile(db, i + 1, data, today)
        p.last_active = fake.date_time_between(start_date="-30d", end_date="now")
        profiles.append(p)
    db.flush()
    return profiles


def make_relationships(
    db: Session, profiles: Sequence[Profile], n_friendships: int, n_requests: int, n_blocks: int
) -> Dict[str, int]:
    """
    Random pairs through the relationship state machine.

    Pairs that already have a relationship are skipped, so the counts returned
    can be lower than requested.
    """
    user_ids = [p.user_id for p in profiles]
    made = {"friendships": 0, "requests": 0, "blocks": 0}
    if len(user_ids) < 2:
        return made

    for _ in range(n_friendships):
        a, b = random.sample(user_ids, 2)
        if relationship_service.status(db, a, b) is PairState.NONE:
            request = relationship_service.send_request(db, a, b, fake.sentence(nb_words=4)[:REQUEST_MESSAGE_MAX_LENGTH])
            relationship_service.accept_request(db, b, request.id)
            made["friendships"] += 1

    for _ in range(n_requests):
        a, b = random.sample(user_ids, 2)
        if relationship_service.status(db, a, b) is PairState.NONE:
            relationship_service.send_request(db, a, b, fake.sentence(nb_words=4)[:REQUEST_MESSAGE_MAX_LENGTH])
            made["requests"] += 1

    for _ in range(n_blocks):
        a, b = random.sample(user_ids, 2)
        if relationship_service.status(db, a, b) not in (PairState.BLOCKING, PairState.MUTUAL_BLOCK):
            relationship_service.block(db, a, b)
            made["blocks"] += 1
    return made


def make_posts(db: Session, profiles: Sequence[Profile], n_posts: int) -> list[Post]:
    store = EntityStore(db)
    posts: list[Post] = []
    for _ in range(n_posts):
        author = random.choice(profiles)
        created = fake.date_time_between(start_date="-60d", end_date="now")
        content = fake.paragraph(nb_sentences=random.randint(1, 4))[:POST_MAX_LENGTH]
        p = Post(user_id=author.user_id, content=content, created_at=created)
        store.put(p)
        posts.append(p)
    return posts


def make_engagement(db: Session, posts: Sequence[Post], max_likes=15, max_comments=6) -> Dict[str, int]:
    """
    Likes and comments from the author and the author's friends only,
    matching who may interact with a post in the friends feed.
    """
    store = EntityStore(db)
    likes = comments = 0
    audience_by_author: Dict[int, list[int]] = {}
    for p in posts:
        if p.user_id not in audience_by_author:
            audience_by_author[p.user_id] = [p.user_id] + relationship_service.list_friends(db, p.user_id)
        audience = audience_by_author[p.user_id]

        for user_id in random.sample(audience, k=min(len(audience), random.randint(0, max_likes))):
            when = p.created_at + timedelta(minutes=random.randint(1, 600))
            store.put(Like(user_id=user_id, post_id=p.id, created_at=when))
            likes += 1

        for _ in range(random.randint(0, max_comments)):
            when = p.created_at + timedelta(minutes=random.randint(1, 600))
            body = fake.sentence(nb_words=random.randint(3, 15))[:COMMENT_MAX_LENGTH]
            store.put(Comment(user_id=random.choice(audience), post_id=p.id, content=body, created_at=when))
            comments += 1
    return {"likes": likes, "comments": comments}
