"""Shared request dependencies."""

from typing import Optional

from fastapi import Header

from socialgraph.errors import Unauthenticated


def current_user(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> int:
    """Caller identity as asserted by the upstream identity provider."""
    if not x_user_id:
        raise Unauthenticated("Missing X-User-Id header")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise Unauthenticated("X-User-Id must be an integer user id")
    if user_id < 1:
        raise Unauthenticated("X-User-Id must be a positive user id")
    return user_id
