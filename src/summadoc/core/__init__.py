"""Domain core: model, errors, title search and write serialization."""

from summadoc.core.errors import (
    CacheUnavailableError,
    CompletionError,
    ConcurrentModificationError,
    ConflictError,
    DocumentNotFoundError,
    NotFoundError,
    StoreUnavailableError,
    SummadocError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from summadoc.core.model import (
    DocumentDetails,
    DocumentMetadata,
    DocumentRecord,
    Membership,
    SearchMatch,
    Summary,
    UserAggregate,
)

__all__ = [
    # Errors
    "SummadocError",
    "NotFoundError",
    "UserNotFoundError",
    "UserAlreadyExistsError",
    "DocumentNotFoundError",
    "ConcurrentModificationError",
    "ConflictError",
    "StoreUnavailableError",
    "CacheUnavailableError",
    "CompletionError",
    # Model
    "DocumentRecord",
    "DocumentDetails",
    "DocumentMetadata",
    "SearchMatch",
    "Summary",
    "Membership",
    "UserAggregate",
]
