"""Redis cache implementation for Summadoc.

The cache is a hint, never a source of truth. Every operation fails open:
an unreachable or slow Redis turns reads into misses and writes into no-ops,
logged and counted but never raised to the caller. Each call is bounded by
``settings.cache_timeout``.

Values are JSON encoded with orjson.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

import orjson
import redis.asyncio as redis

from summadoc.cache.keys import CacheKeys
from summadoc.config import settings
from summadoc.core.errors import CacheUnavailableError
from summadoc.core.model import DocumentMetadata, SearchMatch
from summadoc.observability.metrics import (
    record_cache_error,
    record_cache_hit,
    record_cache_miss,
    record_cache_operation,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Module-level connection pool
_redis_client: Redis | None = None

# Default TTL (1 hour)
DEFAULT_TTL = 3600


async def get_redis() -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            decode_responses=False,
            socket_timeout=settings.cache_timeout,
            socket_connect_timeout=settings.cache_timeout,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class RedisCache:
    """Fail-open key-value cache with per-entry TTL.

    A cache built without a client (or with ``enabled=False``) is an
    always-miss cache, which is how the service runs with caching disabled.
    """

    def __init__(
        self,
        client: Redis | None,
        ttl: int = DEFAULT_TTL,
        timeout: float | None = None,
        enabled: bool = True,
    ):
        self.client = client
        self.ttl = ttl
        self.timeout = settings.cache_timeout if timeout is None else timeout
        self.enabled = enabled and client is not None

    # -------------------------------------------------------------------------
    # Fail-open plumbing
    # -------------------------------------------------------------------------

    async def _call(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Run one Redis call under the timeout.

        ``call`` builds the awaitable, so encoding and client-side errors are
        raised inside the guard too.

        Raises:
            CacheUnavailableError: on any error or timeout
        """
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(call(), timeout=timeout or self.timeout)
        except Exception as e:
            record_cache_error(operation)
            raise CacheUnavailableError(f"cache {operation} failed: {e!r}") from e
        finally:
            record_cache_operation(operation, time.perf_counter() - start)

    # -------------------------------------------------------------------------
    # Generic operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Get a cached value, or None on miss, decode error or outage."""
        if not self.enabled:
            return None
        assert self.client is not None
        try:
            raw = await self._call("get", lambda: self.client.get(key))
        except CacheUnavailableError as e:
            logger.warning(f"Cache read for {key} treated as miss: {e}")
            record_cache_miss()
            return None

        if raw is None:
            record_cache_miss()
            return None

        try:
            value = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            record_cache_miss()
            return None

        record_cache_hit()
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value with TTL. Returns False if the write was dropped."""
        if not self.enabled:
            return False
        assert self.client is not None
        try:
            await self._call(
                "set", lambda: self.client.set(key, orjson.dumps(value), ex=ttl or self.ttl)
            )
        except CacheUnavailableError as e:
            logger.warning(f"Cache write for {key} dropped: {e}")
            return False
        return True

    async def set_many(self, values: Mapping[str, Any], ttl: int | None = None) -> bool:
        """Store several values with one pipeline round trip."""
        if not self.enabled or not values:
            return False
        assert self.client is not None
        expiry = ttl or self.ttl

        async def _write() -> None:
            assert self.client is not None
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value in values.items():
                    pipe.set(key, orjson.dumps(value), ex=expiry)
                await pipe.execute()

        try:
            await self._call("set_many", _write)
        except CacheUnavailableError as e:
            logger.warning(f"Cache pipeline write of {len(values)} keys dropped: {e}")
            return False
        return True

    async def delete(self, *keys: str) -> bool:
        """Delete keys. Returns False if the delete was dropped."""
        if not self.enabled or not keys:
            return False
        assert self.client is not None
        try:
            await self._call("delete", lambda: self.client.delete(*keys))
        except CacheUnavailableError as e:
            logger.warning(f"Cache delete for {', '.join(keys)} dropped: {e}")
            return False
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Uses SCAN in batches of ``cache_scan_count`` and runs under its own
        ``cache_invalidation_timeout`` budget. Returns the number of keys
        deleted; 0 if the cache is unavailable or the budget ran out.
        """
        if not self.enabled:
            return 0
        assert self.client is not None

        async def _scan_and_delete() -> int:
            assert self.client is not None
            found = [
                key
                async for key in self.client.scan_iter(
                    match=pattern, count=settings.cache_scan_count
                )
            ]
            if found:
                await self.client.delete(*found)
            return len(found)

        try:
            return await self._call(
                "delete_pattern", _scan_and_delete, timeout=settings.cache_invalidation_timeout
            )
        except CacheUnavailableError as e:
            logger.warning(f"Cache invalidation of {pattern} dropped: {e}")
            return 0

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        if not self.enabled:
            return False
        assert self.client is not None
        try:
            await self._call("ping", lambda: self.client.ping())
            return True
        except CacheUnavailableError:
            return False

    # -------------------------------------------------------------------------
    # Document metadata
    # -------------------------------------------------------------------------

    async def get_document_metadata(self, doc_id: str) -> DocumentMetadata | None:
        cached = await self.get(CacheKeys.document_metadata(doc_id))
        if cached is None:
            return None
        try:
            return DocumentMetadata.model_validate(cached)
        except ValueError:
            logger.warning(f"Ignoring malformed metadata entry for document {doc_id}")
            return None

    async def set_document_metadata(self, doc_id: str, metadata: DocumentMetadata) -> None:
        await self.set(
            CacheKeys.document_metadata(doc_id),
            metadata.model_dump(by_alias=True),
            ttl=settings.metadata_ttl,
        )

    async def set_document_metadata_many(self, entries: Mapping[str, DocumentMetadata]) -> None:
        await self.set_many(
            {
                CacheKeys.document_metadata(doc_id): metadata.model_dump(by_alias=True)
                for doc_id, metadata in entries.items()
            },
            ttl=settings.metadata_ttl,
        )

    async def delete_document_metadata(self, *doc_ids: str) -> None:
        await self.delete(*(CacheKeys.document_metadata(doc_id) for doc_id in doc_ids))

    # -------------------------------------------------------------------------
    # Search results
    # -------------------------------------------------------------------------

    async def get_query_results(self, user_id: str, term: str) -> list[dict[str, Any]] | None:
        """Cached search results, returned verbatim."""
        cached = await self.get(CacheKeys.search_results(user_id, term))
        if cached is not None and not isinstance(cached, list):
            logger.warning(f"Ignoring malformed search entry for user {user_id}")
            return None
        return cached

    async def set_query_results(
        self, user_id: str, term: str, results: list[SearchMatch]
    ) -> None:
        await self.set(
            CacheKeys.search_results(user_id, term),
            [match.model_dump(by_alias=True) for match in results],
            ttl=settings.search_ttl,
        )

    async def invalidate_query_results(self, user_id: str) -> int:
        """Drop every cached search of one owner."""
        return await self.delete_pattern(CacheKeys.search_invalidation_pattern(user_id))

    # -------------------------------------------------------------------------
    # Sessions and recently viewed documents
    # -------------------------------------------------------------------------

    async def get_user_session(self, user_id: str) -> dict[str, Any] | None:
        return await self.get(CacheKeys.session(user_id))

    async def set_user_session(self, user_id: str, session: dict[str, Any]) -> None:
        await self.set(CacheKeys.session(user_id), session, ttl=settings.session_ttl)

    async def get_recently_viewed(self, user_id: str) -> dict[str, Any] | None:
        return await self.get(CacheKeys.recently_viewed(user_id))

    async def set_recently_viewed(self, user_id: str, document: dict[str, Any]) -> None:
        await self.set(CacheKeys.recently_viewed(user_id), document, ttl=settings.recent_ttl)


async def get_cache() -> RedisCache:
    """Build the application cache from settings."""
    if not settings.cache_enabled:
        return RedisCache(None, enabled=False)
    return RedisCache(await get_redis())
