"""Bearer-token authentication for Summadoc."""

from summadoc.security.deps import CurrentUserId, get_current_user, get_current_user_id
from summadoc.security.tokens import (
    InvalidTokenError,
    TokenValidator,
    User,
    get_token_validator,
)

__all__ = [
    "CurrentUserId",
    "InvalidTokenError",
    "TokenValidator",
    "User",
    "get_current_user",
    "get_current_user_id",
    "get_token_validator",
]
