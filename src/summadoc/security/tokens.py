"""Bearer token validation for Summadoc.

Tokens are HS256-signed JWTs. The ``sub`` claim identifies the owner of the
document collection; ``email`` is optional. Expiry is verified when present.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from summadoc.config import settings

logger = logging.getLogger(__name__)


@dataclass
class User:
    """Authenticated caller from a bearer token."""

    sub: str  # Subject (user ID)
    email: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


class InvalidTokenError(Exception):
    """Raised when token validation fails."""


class TokenValidator:
    """Validates bearer tokens signed with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def validate_token(self, token: str) -> User:
        """Validate a token and return the caller.

        Raises:
            InvalidTokenError: If the signature, expiry or subject is invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": True, "verify_aud": False},
            )
        except ExpiredSignatureError as e:
            raise InvalidTokenError("Token has expired") from e
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidTokenError("Token has no subject")

        return User(sub=subject, email=payload.get("email"), claims=payload)


# Global validator instance (configured lazily)
_validator: TokenValidator | None = None


def get_token_validator() -> TokenValidator:
    global _validator
    if _validator is None:
        if settings.jwt_secret == "change-me" and settings.env != "dev":
            logger.warning("JWT secret is the default value; set JWT_SECRET")
        _validator = TokenValidator(settings.jwt_secret, settings.jwt_algorithm)
    return _validator
