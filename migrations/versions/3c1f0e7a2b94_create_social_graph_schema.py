"""create social graph schema

Revision ID: 3c1f0e7a2b94
Revises:
Create Date: 2026-10-19 10:12:41.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0e7a2b94'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

gender = sa.Enum('male', 'female', 'other', name='gender')
age_group = sa.Enum('13-17', '18-100', name='age_group')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('handle', sa.String(32), nullable=False),
        sa.Column('profile_picture', sa.String(255), nullable=True),
        sa.Column('gender', gender, nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=False),
        sa.Column('age', sa.Integer(), nullable=False),
        sa.Column('age_group', age_group, nullable=False),
        sa.Column('country_code', sa.String(8), nullable=False),
        sa.Column('spoken_languages', sa.JSON(), nullable=False),
        sa.Column('learning_languages', sa.JSON(), nullable=False),
        sa.Column('about_me', sa.Text(), nullable=False),
        sa.Column('hobbies', sa.JSON(), nullable=False),
        sa.Column('visited_countries', sa.JSON(), nullable=False),
        sa.Column('want_to_visit_countries', sa.JSON(), nullable=False),
        sa.Column('favorite_books', sa.JSON(), nullable=False),
        sa.Column('gender_preference', sa.Boolean(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('last_active', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('profiles_by_user', 'profiles', ['user_id'], unique=True)
    op.create_index('profiles_by_handle', 'profiles', ['handle'], unique=True)
    op.create_index('profiles_by_last_active', 'profiles', ['last_active'])
    op.create_index('profiles_by_age_group_last_active', 'profiles', ['age_group', 'last_active'])
    op.create_index(
        'profiles_by_age_group_gender_last_active', 'profiles', ['age_group', 'gender', 'last_active']
    )
    op.create_index(
        'profiles_by_age_group_gender_preference_last_active',
        'profiles',
        ['age_group', 'gender_preference', 'last_active'],
    )
    op.create_index(
        'profiles_by_country_age_group_last_active', 'profiles', ['country_code', 'age_group', 'last_active']
    )
    op.create_index(
        'profiles_search_name', 'profiles', ['age_group', 'gender', 'gender_preference', 'country_code', 'name']
    )
    op.create_index(
        'profiles_search_handle', 'profiles', ['age_group', 'gender', 'gender_preference', 'country_code', 'handle']
    )

    op.create_table(
        'blocks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('blocker_id', sa.Integer(), nullable=False),
        sa.Column('blocked_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('blocker_id <> blocked_id', name='ck_blocks_not_self'),
    )
    op.create_index('blocks_by_blocker', 'blocks', ['blocker_id', 'created_at'])
    op.create_index('blocks_by_blocked', 'blocks', ['blocked_id', 'created_at'])
    op.create_index('blocks_by_pair', 'blocks', ['blocker_id', 'blocked_id'], unique=True)

    op.create_table(
        'friend_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('receiver_id', sa.Integer(), nullable=False),
        sa.Column('message', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('sender_id <> receiver_id', name='ck_requests_not_self'),
    )
    op.create_index('friend_requests_by_sender', 'friend_requests', ['sender_id', 'created_at'])
    op.create_index('friend_requests_by_receiver', 'friend_requests', ['receiver_id', 'created_at'])
    op.create_index('friend_requests_by_pair', 'friend_requests', ['sender_id', 'receiver_id'], unique=True)

    op.create_table(
        'friendships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id1', sa.Integer(), nullable=False),
        sa.Column('user_id2', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('user_id1 < user_id2', name='ck_friendships_pair_order'),
    )
    op.create_index('friendships_by_user1', 'friendships', ['user_id1', 'created_at'])
    op.create_index('friendships_by_user2', 'friendships', ['user_id2', 'created_at'])
    op.create_index('friendships_by_pair', 'friendships', ['user_id1', 'user_id2'], unique=True)

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('posts_by_owner', 'posts', ['user_id', 'created_at'])
    op.create_index('posts_by_created', 'posts', ['created_at'])

    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('comments_by_owner', 'comments', ['user_id', 'created_at'])
    op.create_index('comments_by_post', 'comments', ['post_id', 'created_at'])

    op.create_table(
        'likes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('likes_by_owner', 'likes', ['user_id', 'created_at'])
    op.create_index('likes_by_post', 'likes', ['post_id', 'created_at'])
    op.create_index('likes_by_pair', 'likes', ['user_id', 'post_id'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    for table in ('likes', 'comments', 'posts', 'friendships', 'friend_requests', 'blocks', 'profiles'):
        op.drop_table(table)
    age_group.drop(op.get_bind(), checkfirst=True)
    gender.drop(op.get_bind(), checkfirst=True)
