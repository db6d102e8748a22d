"""
Feed Engine: posts with per-viewer aggregates, likes and comments.

Like and comment counts are never stored. Each view counts the likes_by_post
and comments_by_post index entries inside the caller's transaction, so a view
always agrees with the Like and Comment records it was read alongside.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from socialgraph.config import COMMENT_MAX_LENGTH, DEFAULT_PAGE_SIZE, FEED_FRIENDS_ONLY, MAX_PAGE_SIZE, POST_MAX_LENGTH
from socialgraph.errors import Forbidden, InvalidArgument, NotFound
from socialgraph.models import Comment, Like, Post, Profile
from socialgraph.services.indexes import IndexLayer, IndexPage, index_layer
from socialgraph.services.paging import Page, check_page_size, fill_page
from socialgraph.services.relationships import RelationshipService, relationship_service
from socialgraph.services.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class AuthorSummary:
    user_id: int
    name: Optional[str] = None
    handle: Optional[str] = None
    profile_picture: Optional[str] = None


@dataclass
class PostView:
    id: int
    user_id: int
    content: str
    image: Optional[str]
    created_at: datetime
    author: AuthorSummary
    likes_count: int
    comments_count: int
    is_liked: bool
    is_owner: bool


@dataclass
class CommentView:
    id: int
    post_id: int
    user_id: int
    content: str
    created_at: datetime
    author: AuthorSummary
    is_owner: bool


@dataclass
class LikeView:
    id: int
    post_id: int
    user_id: int
    created_at: datetime
    author: AuthorSummary


def _clean_text(text: str, max_length: int, what: str) -> str:
    text = (text or "").strip()
    if not text:
        raise InvalidArgument(f"{what} must not be empty")
    if len(text) > max_length:
        raise InvalidArgument(f"{what} too long (max {max_length} characters)")
    return text


class FeedEngine:
    def __init__(
        self,
        relationships: RelationshipService = relationship_service,
        indexes: IndexLayer = index_layer,
        friends_only: bool = FEED_FRIENDS_ONLY,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self.relationships = relationships
        self.indexes = indexes
        self.friends_only = friends_only
        self.max_page_size = max_page_size

    # Access rules

    def _check_access(self, db: Session, viewer: int, owner: int) -> None:
        """Blocks hide content entirely; otherwise friends-only mode requires friendship."""
        if viewer == owner:
            return
        if self.relationships.is_blocked_either_way(db, viewer, owner):
            raise NotFound("Content not found")
        if self.friends_only and not self.relationships.are_friends(db, viewer, owner):
            raise Forbidden("Only friends can see and interact with these posts")

    def _visible_post(self, db: Session, store: EntityStore, viewer: int, post_id: int) -> Post:
        post = store.find(Post, post_id)
        if post is None:
            raise NotFound(f"Post {post_id} not found")
        self._check_access(db, viewer, post.user_id)
        return post

    # Views

    def _authors(self, store: EntityStore, user_ids) -> Dict[int, AuthorSummary]:
        authors = {}
        for user_id in set(user_ids):
            profile = store.first(Profile, "profiles_by_user", (user_id,))
            if profile is None:
                authors[user_id] = AuthorSummary(user_id=user_id)
            else:
                authors[user_id] = AuthorSummary(
                    user_id=user_id,
                    name=profile.name,
                    handle=profile.handle,
                    profile_picture=profile.profile_picture,
                )
        return authors

    def _post_views(self, db: Session, store: EntityStore, viewer: int, posts: List[Post]) -> List[PostView]:
        authors = self._authors(store, [p.user_id for p in posts])
        return [
            PostView(
                id=post.id,
                user_id=post.user_id,
                content=post.content,
                image=post.image,
                created_at=post.created_at,
                author=authors[post.user_id],
                likes_count=self.indexes.count(db, "likes_by_post", (post.id,)),
                comments_count=self.indexes.count(db, "comments_by_post", (post.id,)),
                is_liked=self.indexes.first(db, "likes_by_pair", (viewer, post.id)) is not None,
                is_owner=post.user_id == viewer,
            )
            for post in posts
        ]

    # Reads

    def list_posts(
        self,
        db: Session,
        viewer: int,
        owner: Optional[int] = None,
        cursor: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[PostView]:
        """Newest posts first, either one owner's or the viewer's whole feed."""
        check_page_size(page_size, self.max_page_size)
        store = EntityStore(db, self.indexes)
        if owner is not None:
            self._check_access(db, viewer, owner)
            posts, next_cursor = store.scan(Post, "posts_by_owner", (owner,), cursor=cursor, limit=page_size)
            return Page(self._post_views(db, store, viewer, posts), next_cursor)

        hidden = self.relationships.blocked_user_ids(db, viewer)
        friends: Set[int] = set(self.relationships.list_friends(db, viewer)) if self.friends_only else set()

        def keep(post: Post) -> bool:
            if post.user_id == viewer:
                return True
            if post.user_id in hidden:
                return False
            return not self.friends_only or post.user_id in friends

        def fetch(after: Optional[str], limit: int) -> IndexPage:
            return self.indexes.range_scan(db, "posts_by_created", (), cursor=after, limit=limit)

        posts, next_cursor = fill_page(
            self.indexes,
            fetch,
            lambda page: store.get_many(Post, page.ids, page.cursor_name),
            keep,
            cursor,
            page_size,
        )
        return Page(self._post_views(db, store, viewer, posts), next_cursor)

    def get_post(self, db: Session, viewer: int, post_id: int) -> PostView:
        store = EntityStore(db, self.indexes)
        post = self._visible_post(db, store, viewer, post_id)
        return self._post_views(db, store, viewer, [post])[0]

    def list_comments(
        self,
        db: Session,
        viewer: int,
        post_id: int,
        cursor: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[CommentView]:
        """Comments on a post, oldest first."""
        check_page_size(page_size, self.max_page_size)
        store = EntityStore(db, self.indexes)
        self._visible_post(db, store, viewer, post_id)
        comments, next_cursor = store.scan(
            Comment, "comments_by_post", (post_id,), cursor=cursor, limit=page_size, descending=False
        )
        authors = self._authors(store, [c.user_id for c in comments])
        items = [
            CommentView(
                id=c.id,
                post_id=c.post_id,
                user_id=c.user_id,
                content=c.content,
                created_at=c.created_at,
                author=authors[c.user_id],
                is_owner=c.user_id == viewer,
            )
            for c in comments
        ]
        return Page(items, next_cursor)

    def list_likes(
        self,
        db: Session,
        viewer: int,
        post_id: int,
        cursor: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[LikeView]:
        """Likes on a post, newest first."""
        check_page_size(page_size, self.max_page_size)
        store = EntityStore(db, self.indexes)
        self._visible_post(db, store, viewer, post_id)
        likes, next_cursor = store.scan(Like, "likes_by_post", (post_id,), cursor=cursor, limit=page_size)
        authors = self._authors(store, [like.user_id for like in likes])
        items = [
            LikeView(id=like.id, post_id=like.post_id, user_id=like.user_id, created_at=like.created_at,
                     author=authors[like.user_id])
            for like in likes
        ]
        return Page(items, next_cursor)

    # Writes

    def create_post(self, db: Session, viewer: int, content: str, image: Optional[str] = None) -> PostView:
        content = _clean_text(content, POST_MAX_LENGTH, "Post content")
        store = EntityStore(db, self.indexes)
        post = Post(user_id=viewer, content=content, image=image or None)
        store.put(post)
        logger.info("post created id=%s user=%s", post.id, viewer)
        return self._post_views(db, store, viewer, [post])[0]

    def delete_post(self, db: Session, viewer: int, post_id: int) -> None:
        """Delete a post together with every comment and like on it."""
        store = EntityStore(db, self.indexes)
        post = store.find(Post, post_id)
        if post is None:
            raise NotFound(f"Post {post_id} not found")
        if post.user_id != viewer:
            raise Forbidden("Only the owner can delete this post")
        comments = store.lookup(Comment, "comments_by_post", (post_id,))
        likes = store.lookup(Like, "likes_by_post", (post_id,))
        for record in comments + likes:
            store.delete_entity(record)
        store.delete_entity(post)
        logger.info(
            "post deleted id=%s user=%s comments=%s likes=%s", post_id, viewer, len(comments), len(likes)
        )

    def toggle_like(self, db: Session, viewer: int, post_id: int) -> bool:
        """Like the post, or unlike it when already liked. Returns the new liked state."""
        store = EntityStore(db, self.indexes)
        self._visible_post(db, store, viewer, post_id)
        existing = store.first(Like, "likes_by_pair", (viewer, post_id))
        if existing is not None:
            store.delete_entity(existing)
            return False
        store.put(Like(user_id=viewer, post_id=post_id))
        return True

    def add_comment(self, db: Session, viewer: int, post_id: int, content: str) -> CommentView:
        content = _clean_text(content, COMMENT_MAX_LENGTH, "Comment")
        store = EntityStore(db, self.indexes)
        self._visible_post(db, store, viewer, post_id)
        comment = Comment(user_id=viewer, post_id=post_id, content=content)
        store.put(comment)
        author = self._authors(store, [viewer])[viewer]
        return CommentView(
            id=comment.id,
            post_id=post_id,
            user_id=viewer,
            content=comment.content,
            created_at=comment.created_at,
            author=author,
            is_owner=True,
        )

    def delete_comment(self, db: Session, viewer: int, comment_id: int) -> None:
        """The comment's author or the post's owner may delete a comment."""
        store = EntityStore(db, self.indexes)
        comment = store.find(Comment, comment_id)
        if comment is None:
            raise NotFound(f"Comment {comment_id} not found")
        post = store.get(Post, comment.post_id)
        if viewer not in (comment.user_id, post.user_id):
            raise Forbidden("Only the comment author or the post owner can delete this comment")
        store.delete_entity(comment)


# Global engine instance honouring FEED_FRIENDS_ONLY
feed_engine = FeedEngine()
