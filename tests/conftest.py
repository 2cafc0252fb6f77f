"""Global pytest configuration and fixtures.

Store tests run against a file-backed SQLite database per test (aiosqlite);
cache tests run against an in-memory stand-in for the redis.asyncio client.
"""

from __future__ import annotations

import fnmatch
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from summadoc.cache.redis import RedisCache
from summadoc.persistence.db import init_db, session_context
from summadoc.persistence.repositories import UserRepository
from summadoc.security.tokens import TokenValidator
from summadoc.services.documents import DocumentCollectionService

TEST_SECRET = "test-secret"


def sign_token(
    user_id: str, secret: str = TEST_SECRET, expires_in: int | None = 3600, **claims: Any
) -> str:
    payload: dict[str, Any] = {"sub": user_id, **claims}
    if expires_in is not None:
        payload["exp"] = datetime.now(UTC) + timedelta(seconds=expires_in)
    return jwt.encode(payload, secret, algorithm="HS256")


class FakePipeline:
    """Buffered SET commands, applied on execute()."""

    def __init__(self, client: "FakeRedis") -> None:
        self._client = client
        self._commands: list[tuple[str, bytes, int | None]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *args: object) -> None:
        self._commands.clear()

    def set(self, key: str, value: bytes, ex: int | None = None) -> "FakePipeline":
        self._commands.append((key, value, ex))
        return self

    async def execute(self) -> list[bool]:
        for key, value, ex in self._commands:
            await self._client.set(key, value, ex=ex)
        return [True] * len(self._commands)


class FakeRedis:
    """Dict-backed subset of redis.asyncio.Redis used by RedisCache."""

    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> bytes | None:
        return self.store.get(key)

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(
        self, match: str | None = None, count: int | None = None
    ) -> AsyncIterator[str]:
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def expire_all(self) -> None:
        """Drop every entry, as if all TTLs had run out."""
        self.store.clear()
        self.ttls.clear()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> RedisCache:
    return RedisCache(fake_redis, timeout=1.0)  # type: ignore[arg-type]


@pytest.fixture
def disabled_cache() -> RedisCache:
    return RedisCache(None, enabled=False)


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Fresh SQLite database with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'summadoc.db'}")
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def register_user(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Register users directly through the repository."""

    async def _register(user_id: str, email: str | None = None) -> None:
        async with session_context(session_factory) as session:
            await UserRepository(session).create_user(user_id, email=email)

    return _register


@pytest_asyncio.fixture
async def user_id(register_user: Callable[..., Awaitable[None]]) -> str:
    """A registered user with an empty document list."""
    await register_user("u1", "u1@example.com")
    return "u1"


@pytest.fixture
def service(
    session_factory: async_sessionmaker[AsyncSession], cache: RedisCache
) -> DocumentCollectionService:
    return DocumentCollectionService(
        session_factory,
        cache,
        max_write_attempts=3,
        serialize_owner_writes=True,
        invalidate_search_on_write=False,
    )


@pytest.fixture
def token_validator(monkeypatch: pytest.MonkeyPatch) -> TokenValidator:
    """Validator with a known secret, installed as the process-wide one."""
    validator = TokenValidator(TEST_SECRET)
    monkeypatch.setattr("summadoc.security.tokens._validator", validator)
    return validator


@pytest.fixture
def auth_headers(token_validator: TokenValidator) -> Callable[[str], dict[str, str]]:
    """Build an Authorization header carrying a signed token for a user."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {sign_token(user_id)}"}

    return _headers
