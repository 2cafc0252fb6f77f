"""Shared FastAPI dependencies for Summadoc routers.

The service is built per request from process-wide parts: the session
factory, the cache client, the completion client and one OwnerLocks registry
(which must be shared for per-owner serialization to hold).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Path

from summadoc.cache.redis import RedisCache, get_cache
from summadoc.core.locks import OwnerLocks
from summadoc.persistence.db import get_session_factory
from summadoc.services.completion import get_completion_client
from summadoc.services.documents import DocumentCollectionService

_owner_locks = OwnerLocks()


async def get_cache_dep() -> RedisCache:
    """FastAPI dependency for the application cache."""
    return await get_cache()


async def get_document_service(
    cache: RedisCache = Depends(get_cache_dep),
) -> DocumentCollectionService:
    """FastAPI dependency for the document collection service."""
    return DocumentCollectionService(
        get_session_factory(),
        cache,
        locks=_owner_locks,
        summarizer=get_completion_client(),
    )


# Type aliases for cleaner router signatures
DocumentIdPath = Annotated[str, Path(alias="docId", min_length=1, description="Document id")]
DocumentService = Annotated[DocumentCollectionService, Depends(get_document_service)]
