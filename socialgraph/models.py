from datetime import date, datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, Date, DateTime, Enum, ForeignKey, Index, Integer,
    String, Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Gender(str, PyEnum):
    male = "male"
    female = "female"
    other = "other"


class AgeGroup(str, PyEnum):
    teen = "13-17"
    adult = "18-100"


def calculate_age(birth_date: date, today: date) -> int:
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def age_group_for(age: int, adult_age: int = 18) -> AgeGroup:
    return AgeGroup.teen if age < adult_age else AgeGroup.adult


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    name = Column(String(64), nullable=False)
    handle = Column(String(32), nullable=False)
    profile_picture = Column(String(255), nullable=True)
    gender = Column(Enum(Gender, name="gender", values_callable=_values), nullable=False)
    birth_date = Column(Date, nullable=False)
    age = Column(Integer, nullable=False)
    age_group = Column(Enum(AgeGroup, name="age_group", values_callable=_values), nullable=False)
    country_code = Column(String(8), nullable=False)
    spoken_languages = Column(JSON, nullable=False, default=list)
    learning_languages = Column(JSON, nullable=False, default=list)
    about_me = Column(Text, nullable=False, default="")
    hobbies = Column(JSON, nullable=False, default=list)
    visited_countries = Column(JSON, nullable=False, default=list)
    want_to_visit_countries = Column(JSON, nullable=False, default=list)
    favorite_books = Column(JSON, nullable=False, default=list)
    gender_preference = Column(Boolean, nullable=False, default=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    last_active = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def apply_birth_date(self, birth_date: date, today: date, adult_age: int = 18) -> None:
        """Keep age and age_group derived from birth_date."""
        self.birth_date = birth_date
        self.age = calculate_age(birth_date, today)
        self.age_group = age_group_for(self.age, adult_age)


Index("profiles_by_user", Profile.user_id, unique=True)
Index("profiles_by_handle", Profile.handle, unique=True)
Index("profiles_by_last_active", Profile.last_active)
Index("profiles_by_age_group_last_active", Profile.age_group, Profile.last_active)
Index("profiles_by_age_group_gender_last_active", Profile.age_group, Profile.gender, Profile.last_active)
Index(
    "profiles_by_age_group_gender_preference_last_active",
    Profile.age_group, Profile.gender_preference, Profile.last_active,
)
Index(
    "profiles_by_country_age_group_last_active",
    Profile.country_code, Profile.age_group, Profile.last_active,
)
# Text indexes: filter fields followed by the searchable column.
Index(
    "profiles_search_name",
    Profile.age_group, Profile.gender, Profile.gender_preference, Profile.country_code, Profile.name,
    info={"search": "name", "sort": "last_active"},
)
Index(
    "profiles_search_handle",
    Profile.age_group, Profile.gender, Profile.gender_preference, Profile.country_code, Profile.handle,
    info={"search": "handle", "sort": "last_active"},
)


class Block(Base):
    __tablename__ = "blocks"
    id = Column(Integer, primary_key=True)
    blocker_id = Column(Integer, nullable=False)
    blocked_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("blocker_id <> blocked_id", name="ck_blocks_not_self"),
    )


Index("blocks_by_blocker", Block.blocker_id, Block.created_at)
Index("blocks_by_blocked", Block.blocked_id, Block.created_at)
Index("blocks_by_pair", Block.blocker_id, Block.blocked_id, unique=True)


class FriendRequest(Base):
    __tablename__ = "friend_requests"
    id = Column(Integer, primary_key=True)
    sender_id = Column(Integer, nullable=False)
    receiver_id = Column(Integer, nullable=False)
    message = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="ck_requests_not_self"),
    )


Index("friend_requests_by_sender", FriendRequest.sender_id, FriendRequest.created_at)
Index("friend_requests_by_receiver", FriendRequest.receiver_id, FriendRequest.created_at)
Index("friend_requests_by_pair", FriendRequest.sender_id, FriendRequest.receiver_id, unique=True)


class Friendship(Base):
    __tablename__ = "friendships"
    id = Column(Integer, primary_key=True)
    user_id1 = Column(Integer, nullable=False)
    user_id2 = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("user_id1 < user_id2", name="ck_friendships_pair_order"),
    )

    def other(self, user_id: int) -> int:
        return self.user_id2 if self.user_id1 == user_id else self.user_id1


Index("friendships_by_user1", Friendship.user_id1, Friendship.created_at)
Index("friendships_by_user2", Friendship.user_id2, Friendship.created_at)
Index("friendships_by_pair", Friendship.user_id1, Friendship.user_id2, unique=True)


class Post(Base):
    __tablename__ = "posts"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    image = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


Index("posts_by_owner", Post.user_id, Post.created_at)
Index("posts_by_created", Post.created_at)


class Comment(Base):
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


Index("comments_by_owner", Comment.user_id, Comment.created_at)
Index("comments_by_post", Comment.post_id, Comment.created_at)


class Like(Base):
    __tablename__ = "likes"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


Index("likes_by_owner", Like.user_id, Like.created_at)
Index("likes_by_post", Like.post_id, Like.created_at)
Index("likes_by_pair", Like.user_id, Like.post_id, unique=True)
