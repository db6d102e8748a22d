"""
Relationship state machine for friend requests, friendships and blocks.

State is derived per ordered pair (actor, other) from the records that exist
between the two users and every write is a transition looked up in
``TRANSITIONS``. This module is the only writer of FriendRequest, Friendship
and Block records.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple, Type

from sqlalchemy.orm import Session

from socialgraph.config import REQUEST_MESSAGE_MAX_LENGTH
from socialgraph.errors import Conflict, DomainError, InvalidArgument, NotFound
from socialgraph.models import Block, FriendRequest, Friendship
from socialgraph.services.indexes import index_layer
from socialgraph.services.locks import PairLocks, pair_key, pair_locks
from socialgraph.services.store import EntityStore

logger = logging.getLogger(__name__)


class PairState(str, Enum):
    """Relationship between two users, seen from the acting user."""
    NONE = "none"
    REQUEST_SENT = "request_sent"
    REQUEST_RECEIVED = "request_received"
    FRIENDS = "friends"
    BLOCKING = "blocking"
    BLOCKED_BY = "blocked_by"
    MUTUAL_BLOCK = "mutual_block"


class Action(str, Enum):
    SEND = "send"
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    UNFRIEND = "unfriend"
    BLOCK = "block"
    UNBLOCK = "unblock"


TRANSITIONS: Dict[Tuple[PairState, Action], PairState] = {
    (PairState.NONE, Action.SEND): PairState.REQUEST_SENT,
    (PairState.REQUEST_RECEIVED, Action.ACCEPT): PairState.FRIENDS,
    (PairState.REQUEST_RECEIVED, Action.DECLINE): PairState.NONE,
    (PairState.REQUEST_SENT, Action.CANCEL): PairState.NONE,
    (PairState.FRIENDS, Action.UNFRIEND): PairState.NONE,
    # Blocking wins over any existing relationship.
    (PairState.NONE, Action.BLOCK): PairState.BLOCKING,
    (PairState.REQUEST_SENT, Action.BLOCK): PairState.BLOCKING,
    (PairState.REQUEST_RECEIVED, Action.BLOCK): PairState.BLOCKING,
    (PairState.FRIENDS, Action.BLOCK): PairState.BLOCKING,
    (PairState.BLOCKING, Action.BLOCK): PairState.BLOCKING,
    (PairState.BLOCKED_BY, Action.BLOCK): PairState.MUTUAL_BLOCK,
    (PairState.MUTUAL_BLOCK, Action.BLOCK): PairState.MUTUAL_BLOCK,
    (PairState.BLOCKING, Action.UNBLOCK): PairState.NONE,
    (PairState.MUTUAL_BLOCK, Action.UNBLOCK): PairState.BLOCKED_BY,
}

REJECTIONS: Dict[Action, Type[DomainError]] = {
    Action.SEND: Conflict,
    Action.ACCEPT: NotFound,
    Action.DECLINE: NotFound,
    Action.CANCEL: NotFound,
    Action.UNFRIEND: NotFound,
    Action.BLOCK: Conflict,
    Action.UNBLOCK: NotFound,
}

_REJECTION_MESSAGES = {
    (Action.SEND, PairState.REQUEST_SENT): "Friend request already sent",
    (Action.SEND, PairState.REQUEST_RECEIVED): "This user already sent you a friend request; accept it instead",
    (Action.SEND, PairState.FRIENDS): "Already friends",
    (Action.UNFRIEND, PairState.NONE): "Not friends",
    (Action.UNBLOCK, PairState.NONE): "User is not blocked",
}


@dataclass
class PairSnapshot:
    """Every relationship record between ``actor`` and ``other``."""
    actor: int
    other: int
    request: Optional[FriendRequest] = None
    friendship: Optional[Friendship] = None
    own_block: Optional[Block] = None
    their_block: Optional[Block] = None

    @property
    def state(self) -> PairState:
        if self.own_block and self.their_block:
            return PairState.MUTUAL_BLOCK
        if self.own_block:
            return PairState.BLOCKING
        if self.their_block:
            return PairState.BLOCKED_BY
        if self.friendship:
            return PairState.FRIENDS
        if self.request:
            if self.request.sender_id == self.actor:
                return PairState.REQUEST_SENT
            return PairState.REQUEST_RECEIVED
        return PairState.NONE


class RelationshipService:
    """Applies relationship transitions one pair at a time."""

    def __init__(self, locks: PairLocks = pair_locks):
        self.locks = locks

    def snapshot(self, store: EntityStore, actor: int, other: int) -> PairSnapshot:
        low, high = pair_key(actor, other)
        request = (
            store.first(FriendRequest, "friend_requests_by_pair", (actor, other))
            or store.first(FriendRequest, "friend_requests_by_pair", (other, actor))
        )
        return PairSnapshot(
            actor=actor,
            other=other,
            request=request,
            friendship=store.first(Friendship, "friendships_by_pair", (low, high)),
            own_block=store.first(Block, "blocks_by_pair", (actor, other)),
            their_block=store.first(Block, "blocks_by_pair", (other, actor)),
        )

    def transition(self, snap: PairSnapshot, action: Action) -> PairState:
        current = snap.state
        target = TRANSITIONS.get((current, action))
        if target is None:
            logger.info(
                "pair transition rejected actor=%s other=%s action=%s state=%s",
                snap.actor, snap.other, action.value, current.value,
            )
            message = _REJECTION_MESSAGES.get((action, current))
            if message is None:
                message = f"Cannot {action.value} while relationship is {current.value}"
            raise REJECTIONS[action](message)
        logger.info(
            "pair transition actor=%s other=%s action=%s from=%s to=%s",
            snap.actor, snap.other, action.value, current.value, target.value,
        )
        return target

    def status(self, db: Session, actor: int, other: int) -> PairState:
        if actor == other:
            raise InvalidArgument("A user has no relationship with themselves")
        return self.snapshot(EntityStore(db), actor, other).state

    # Writes

    def send_request(self, db: Session, sender: int, receiver: int, message: str = "") -> FriendRequest:
        message = (message or "").strip()
        if len(message) > REQUEST_MESSAGE_MAX_LENGTH:
            raise InvalidArgument(f"Request message too long (max {REQUEST_MESSAGE_MAX_LENGTH} characters)")
        if sender == receiver:
            raise Conflict("Cannot send a friend request to yourself")
        store = EntityStore(db)
        with self.locks.hold(sender, receiver, db):
            snap = self.snapshot(store, sender, receiver)
            self.transition(snap, Action.SEND)
            request = FriendRequest(sender_id=sender, receiver_id=receiver, message=message)
            store.put(request)
        return request

    def _pending_request(self, store: EntityStore, request_id: int) -> FriendRequest:
        request = store.find(FriendRequest, request_id)
        if request is None:
            raise NotFound(f"Friend request {request_id} not found")
        return request

    def _resolve(self, db: Session, actor: int, request_id: int, as_receiver: bool):
        store = EntityStore(db)
        request = self._pending_request(store, request_id)
        owner = request.receiver_id if as_receiver else request.sender_id
        if owner != actor:
            raise NotFound(f"Friend request {request_id} not found")
        other = request.sender_id if as_receiver else request.receiver_id
        return store, request, other

    def accept_request(self, db: Session, receiver: int, request_id: int) -> Friendship:
        store, request, sender = self._resolve(db, receiver, request_id, as_receiver=True)
        with self.locks.hold(receiver, sender, db):
            snap = self.snapshot(store, receiver, sender)
            if snap.request is None or snap.request.id != request_id:
                raise NotFound(f"Friend request {request_id} not found")
            self.transition(snap, Action.ACCEPT)
            low, high = pair_key(receiver, sender)
            store.delete_entity(snap.request)
            friendship = Friendship(user_id1=low, user_id2=high)
            store.put(friendship)
        return friendship

    def decline_request(self, db: Session, receiver: int, request_id: int) -> None:
        self._drop_request(db, receiver, request_id, Action.DECLINE, as_receiver=True)

    def cancel_request(self, db: Session, sender: int, request_id: int) -> None:
        self._drop_request(db, sender, request_id, Action.CANCEL, as_receiver=False)

    def _drop_request(self, db: Session, actor: int, request_id: int, action: Action, as_receiver: bool) -> None:
        store, request, other = self._resolve(db, actor, request_id, as_receiver)
        with self.locks.hold(actor, other, db):
            snap = self.snapshot(store, actor, other)
            if snap.request is None or snap.request.id != request_id:
                raise NotFound(f"Friend request {request_id} not found")
            self.transition(snap, action)
            store.delete_entity(snap.request)

    def unfriend(self, db: Session, user: int, other: int) -> None:
        if user == other:
            raise NotFound("Not friends")
        store = EntityStore(db)
        with self.locks.hold(user, other, db):
            snap = self.snapshot(store, user, other)
            self.transition(snap, Action.UNFRIEND)
            store.delete_entity(snap.friendship)

    def block(self, db: Session, blocker: int, target: int) -> Block:
        """Block ``target``; removes any request or friendship between the two."""
        if blocker == target:
            raise Conflict("Cannot block yourself")
        store = EntityStore(db)
        with self.locks.hold(blocker, target, db):
            snap = self.snapshot(store, blocker, target)
            self.transition(snap, Action.BLOCK)
            if snap.request is not None:
                store.delete_entity(snap.request)
            if snap.friendship is not None:
                store.delete_entity(snap.friendship)
            block = snap.own_block
            if block is None:
                block = Block(blocker_id=blocker, blocked_id=target)
                store.put(block)
        return block

    def unblock(self, db: Session, blocker: int, target: int) -> None:
        if blocker == target:
            raise NotFound("User is not blocked")
        store = EntityStore(db)
        with self.locks.hold(blocker, target, db):
            snap = self.snapshot(store, blocker, target)
            self.transition(snap, Action.UNBLOCK)
            store.delete_entity(snap.own_block)

    # Reads

    def are_friends(self, db: Session, a: int, b: int) -> bool:
        if a == b:
            return False
        return index_layer.first(db, "friendships_by_pair", pair_key(a, b)) is not None

    def is_blocked_either_way(self, db: Session, a: int, b: int) -> bool:
        return (
            index_layer.first(db, "blocks_by_pair", (a, b)) is not None
            or index_layer.first(db, "blocks_by_pair", (b, a)) is not None
        )

    def list_friends(self, db: Session, user: int) -> List[int]:
        store = EntityStore(db)
        friendships = store.lookup(Friendship, "friendships_by_user1", (user,))
        friendships += store.lookup(Friendship, "friendships_by_user2", (user,))
        friendships.sort(key=lambda f: (f.created_at, f.id), reverse=True)
        return [f.other(user) for f in friendships]

    def list_incoming_requests(self, db: Session, user: int) -> List[FriendRequest]:
        requests = EntityStore(db).lookup(FriendRequest, "friend_requests_by_receiver", (user,))
        return list(reversed(requests))

    def list_outgoing_requests(self, db: Session, user: int) -> List[FriendRequest]:
        requests = EntityStore(db).lookup(FriendRequest, "friend_requests_by_sender", (user,))
        return list(reversed(requests))

    def list_blocked(self, db: Session, user: int) -> List[int]:
        blocks = EntityStore(db).lookup(Block, "blocks_by_blocker", (user,))
        return [b.blocked_id for b in reversed(blocks)]

    def blocked_user_ids(self, db: Session, user: int) -> Set[int]:
        """Users hidden from ``user`` because a block exists in either direction."""
        store = EntityStore(db)
        ids = {b.blocked_id for b in store.lookup(Block, "blocks_by_blocker", (user,))}
        ids |= {b.blocker_id for b in store.lookup(Block, "blocks_by_blocked", (user,))}
        return ids

    def related_user_ids(self, db: Session, user: int) -> Set[int]:
        """Users with any block, friendship or pending request involving ``user``."""
        store = EntityStore(db)
        ids = self.blocked_user_ids(db, user)
        ids.update(self.list_friends(db, user))
        ids |= {r.receiver_id for r in store.lookup(FriendRequest, "friend_requests_by_sender", (user,))}
        ids |= {r.sender_id for r in store.lookup(FriendRequest, "friend_requests_by_receiver", (user,))}
        return ids


# Global service instance with the process-wide pair locks
relationship_service = RelationshipService()
