"""Domain exceptions for the document collection core.

The API layer maps these onto HTTP responses (see summadoc.api.errors).
Cache failures never leave the cache layer; everything else propagates.
"""

from __future__ import annotations


class SummadocError(Exception):
    """Base class for all domain errors."""


class NotFoundError(SummadocError):
    """An owner or a document does not exist. Terminal, never retried."""

    resource_type = "Resource"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{self.resource_type} with identifier '{identifier}' not found")


class UserNotFoundError(NotFoundError):
    resource_type = "User"


class UserAlreadyExistsError(SummadocError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User with identifier '{user_id}' already exists")


class DocumentNotFoundError(NotFoundError):
    resource_type = "Document"

    def __init__(self, identifier: str, user_id: str | None = None):
        self.user_id = user_id
        super().__init__(identifier)


class ConcurrentModificationError(SummadocError):
    """A compare-and-swap write found a newer aggregate version."""

    def __init__(self, user_id: str, expected_version: int):
        self.user_id = user_id
        self.expected_version = expected_version
        super().__init__(
            f"Document list of user '{user_id}' changed since version {expected_version}"
        )


class ConflictError(SummadocError):
    """Concurrent writers kept winning until the retry budget ran out."""

    def __init__(self, user_id: str, attempts: int):
        self.user_id = user_id
        self.attempts = attempts
        super().__init__(
            f"Could not apply update for user '{user_id}' after {attempts} attempts"
        )


class StoreUnavailableError(SummadocError):
    """The authoritative store could not be reached. Retryable by the caller."""


class CacheUnavailableError(SummadocError):
    """The cache could not be reached. Always absorbed as a miss."""


class CompletionError(SummadocError):
    """The completion service failed to produce a summary."""
