"""FastAPI security dependencies for Summadoc.

Every document route is scoped to the caller: the user id comes from the
bearer token and nowhere else.

Usage:
    @router.get("/documents")
    async def list_documents(user_id: CurrentUserId):
        ...
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, Header, Request

from summadoc.api.deps import get_cache_dep
from summadoc.api.errors import Unauthorized
from summadoc.cache.redis import RedisCache
from summadoc.observability.logging import user_id_var
from summadoc.security.tokens import InvalidTokenError, User, get_token_validator

BEARER_PREFIX = "Bearer "


async def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> User:
    """Extract and validate the caller from the Authorization header.

    Raises Unauthorized (401) if the header is missing or the token is invalid.
    """
    if authorization is None:
        raise Unauthorized("Missing bearer token")
    if not authorization.startswith(BEARER_PREFIX):
        raise Unauthorized("Invalid authorization header format")

    token = authorization[len(BEARER_PREFIX) :]
    try:
        user = get_token_validator().validate_token(token)
    except InvalidTokenError as e:
        raise Unauthorized(str(e)) from e

    request.state.user = user
    user_id_var.set(user.sub)
    return user


async def get_current_user_id(
    user: User = Depends(get_current_user),
    cache: RedisCache = Depends(get_cache_dep),
) -> str:
    """Return the caller's id and refresh the ``session:{user}`` entry."""
    await cache.set_user_session(
        user.sub,
        {"userId": user.sub, "email": user.email, "lastSeen": datetime.now(UTC).isoformat()},
    )
    return user.sub


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
