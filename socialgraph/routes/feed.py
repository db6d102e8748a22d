"""
FastAPI routes for posts, likes and comments.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from socialgraph.config import DEFAULT_PAGE_SIZE
from socialgraph.db import get_db
from socialgraph.routes.deps import current_user
from socialgraph.services.feed import feed_engine


# Request models
class PostCreate(BaseModel):
    content: str = Field(..., description="Post text")
    image: Optional[str] = Field(None, description="Blob storage reference of an attached image")


class CommentCreate(BaseModel):
    content: str = Field(..., description="Comment text")


# Response models
class AuthorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    name: Optional[str] = None
    handle: Optional[str] = None
    profile_picture: Optional[str] = None


class PostOut(BaseModel):
    """Post with aggregates computed for the caller."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    content: str
    image: Optional[str] = None
    created_at: datetime
    author: AuthorOut
    likes_count: int
    comments_count: int
    is_liked: bool
    is_owner: bool


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    user_id: int
    content: str
    created_at: datetime
    author: AuthorOut
    is_owner: bool


class LikeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    user_id: int
    created_at: datetime
    author: AuthorOut


class PostPage(BaseModel):
    items: List[PostOut]
    next_cursor: Optional[str] = None


class CommentPage(BaseModel):
    items: List[CommentOut]
    next_cursor: Optional[str] = None


class LikePage(BaseModel):
    items: List[LikeOut]
    next_cursor: Optional[str] = None


class LikeState(BaseModel):
    post_id: int
    liked: bool


router = APIRouter(prefix="/posts", tags=["feed"])
comments_router = APIRouter(prefix="/comments", tags=["feed"])


@router.get("", response_model=PostPage)
def list_posts(
    owner: Optional[int] = Query(None, description="Only posts by this user"),
    cursor: Optional[str] = Query(None, description="Cursor from the previous page"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, description="Posts per page"),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> PostPage:
    """Newest posts first, with like/comment counts and the caller's flags."""
    page = feed_engine.list_posts(db, user_id, owner, cursor, page_size)
    return PostPage(items=[PostOut.model_validate(p) for p in page.items], next_cursor=page.next_cursor)


@router.post("", response_model=PostOut, status_code=201)
def create_post(body: PostCreate, user_id: int = Depends(current_user), db: Session = Depends(get_db)) -> PostOut:
    return PostOut.model_validate(feed_engine.create_post(db, user_id, body.content, body.image))


@router.get("/{post_id}", response_model=PostOut)
def get_post(
    post_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> PostOut:
    return PostOut.model_validate(feed_engine.get_post(db, user_id, post_id))


@router.delete("/{post_id}", status_code=204)
def delete_post(
    post_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> None:
    """Delete the caller's post along with its comments and likes."""
    feed_engine.delete_post(db, user_id, post_id)


@router.post("/{post_id}/like", response_model=LikeState)
def toggle_like(
    post_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> LikeState:
    """Like the post, or remove the caller's like if present."""
    return LikeState(post_id=post_id, liked=feed_engine.toggle_like(db, user_id, post_id))


@router.get("/{post_id}/likes", response_model=LikePage)
def list_likes(
    post_id: int = Path(..., ge=1),
    cursor: Optional[str] = Query(None),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> LikePage:
    page = feed_engine.list_likes(db, user_id, post_id, cursor, page_size)
    return LikePage(items=[LikeOut.model_validate(like) for like in page.items], next_cursor=page.next_cursor)


@router.get("/{post_id}/comments", response_model=CommentPage)
def list_comments(
    post_id: int = Path(..., ge=1),
    cursor: Optional[str] = Query(None),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> CommentPage:
    """Comments on a post, oldest first."""
    page = feed_engine.list_comments(db, user_id, post_id, cursor, page_size)
    return CommentPage(items=[CommentOut.model_validate(c) for c in page.items], next_cursor=page.next_cursor)


@router.post("/{post_id}/comments", response_model=CommentOut, status_code=201)
def add_comment(
    body: CommentCreate,
    post_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> CommentOut:
    return CommentOut.model_validate(feed_engine.add_comment(db, user_id, post_id, body.content))


@comments_router.delete("/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> None:
    """Comments can be removed by their author or by the post's owner."""
    feed_engine.delete_comment(db, user_id, comment_id)
