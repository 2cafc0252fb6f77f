"""Engine and session handling for the authoritative store.

The API process shares one lazily built engine; the CLI commands build a
short-lived engine for the URL they are given. Both go through
``build_engine`` so pool settings are applied the same way.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from summadoc.config import settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(url: str) -> dict[str, Any]:
    """Pool settings for a database URL. SQLite keeps the driver defaults."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


def build_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, **engine_options(url))


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Records are read after commit, so nothing may be expired
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Return the process-wide engine for ``DATABASE_URL``."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings.database_url)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


@asynccontextmanager
async def session_context(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """One transaction: commit when the block succeeds, roll back if it raises."""
    session = (factory or get_session_factory())()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the users table if it does not exist."""
    from summadoc.persistence.tables import Base

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None


async def health_check(factory: async_sessionmaker[AsyncSession] | None = None) -> bool:
    """Run ``SELECT 1`` against the store."""
    try:
        async with session_context(factory) as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        return False
    return True
