"""Cache layer for Summadoc.

Provides Redis caching with the cache-aside pattern:
- Document metadata entries written on create and rename
- Search result entries with a short TTL (bounded staleness)
- Session and recently-viewed entries
- Fail-open behavior: an unavailable cache only costs latency
"""

from summadoc.cache.keys import CacheKeys
from summadoc.cache.redis import RedisCache, close_redis, get_cache, get_redis

__all__ = [
    "CacheKeys",
    "RedisCache",
    "get_cache",
    "get_redis",
    "close_redis",
]
