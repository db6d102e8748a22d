"""
FastAPI routes for friend requests, friendships and blocks.
"""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from socialgraph.db import get_db
from socialgraph.routes.deps import current_user
from socialgraph.services.relationships import PairState, relationship_service


# Request models
class FriendRequestCreate(BaseModel):
    receiver_id: int = Field(..., ge=1, description="User to befriend")
    message: str = Field("", description="Short note shown to the receiver")


# Response models
class FriendRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    receiver_id: int
    message: str
    created_at: datetime


class FriendshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id1: int
    user_id2: int
    created_at: datetime


class BlockOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    blocker_id: int
    blocked_id: int
    created_at: datetime


class RelationshipStatus(BaseModel):
    user_id: int
    other_id: int
    state: PairState = Field(..., description="Relationship as seen from the caller")


class UserIds(BaseModel):
    user_ids: List[int]


router = APIRouter(prefix="/relationships", tags=["relationships"])


@router.get("/status/{other_id}", response_model=RelationshipStatus)
def get_status(
    other_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> RelationshipStatus:
    state = relationship_service.status(db, user_id, other_id)
    return RelationshipStatus(user_id=user_id, other_id=other_id, state=state)


@router.post("/requests", response_model=FriendRequestOut, status_code=201)
def send_request(
    body: FriendRequestCreate,
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> FriendRequestOut:
    """Send a friend request. Fails with 409 when any relationship already exists."""
    request = relationship_service.send_request(db, user_id, body.receiver_id, body.message)
    return FriendRequestOut.model_validate(request)


@router.get("/requests/incoming", response_model=List[FriendRequestOut])
def incoming_requests(user_id: int = Depends(current_user), db: Session = Depends(get_db)):
    return [FriendRequestOut.model_validate(r) for r in relationship_service.list_incoming_requests(db, user_id)]


@router.get("/requests/outgoing", response_model=List[FriendRequestOut])
def outgoing_requests(user_id: int = Depends(current_user), db: Session = Depends(get_db)):
    return [FriendRequestOut.model_validate(r) for r in relationship_service.list_outgoing_requests(db, user_id)]


@router.post("/requests/{request_id}/accept", response_model=FriendshipOut, status_code=201)
def accept_request(
    request_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> FriendshipOut:
    return FriendshipOut.model_validate(relationship_service.accept_request(db, user_id, request_id))


@router.post("/requests/{request_id}/decline", status_code=204)
def decline_request(
    request_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> None:
    relationship_service.decline_request(db, user_id, request_id)


@router.delete("/requests/{request_id}", status_code=204)
def cancel_request(
    request_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> None:
    """Withdraw a request the caller sent."""
    relationship_service.cancel_request(db, user_id, request_id)


@router.get("/friends", response_model=UserIds)
def list_friends(user_id: int = Depends(current_user), db: Session = Depends(get_db)) -> UserIds:
    return UserIds(user_ids=relationship_service.list_friends(db, user_id))


@router.delete("/friends/{other_id}", status_code=204)
def unfriend(
    other_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> None:
    relationship_service.unfriend(db, user_id, other_id)


@router.get("/blocks", response_model=UserIds)
def list_blocked(user_id: int = Depends(current_user), db: Session = Depends(get_db)) -> UserIds:
    return UserIds(user_ids=relationship_service.list_blocked(db, user_id))


@router.post("/blocks/{other_id}", response_model=BlockOut, status_code=201)
def block(
    other_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> BlockOut:
    """Block a user. Any request or friendship between the two is removed."""
    return BlockOut.model_validate(relationship_service.block(db, user_id, other_id))


@router.delete("/blocks/{other_id}", status_code=204)
def unblock(
    other_id: int = Path(..., ge=1),
    user_id: int = Depends(current_user),
    db: Session = Depends(get_db),
) -> None:
    relationship_service.unblock(db, user_id, other_id)
