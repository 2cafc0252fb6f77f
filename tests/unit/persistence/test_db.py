"""Tests for engine options, transactions and the store health check."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from summadoc.config import settings
from summadoc.persistence.db import (
    build_engine,
    build_session_factory,
    engine_options,
    health_check,
    session_context,
)
from summadoc.persistence.repositories import UserRepository
from summadoc.persistence.tables import UserTable


class TestEngineOptions:
    def test_sqlite_uses_driver_defaults(self) -> None:
        assert engine_options("sqlite+aiosqlite:///./x.db") == {}

    def test_postgres_gets_pool_settings(self) -> None:
        options = engine_options("postgresql+asyncpg://localhost/summadoc")
        assert options["pool_size"] == settings.db_pool_size
        assert options["max_overflow"] == settings.db_max_overflow
        assert options["pool_pre_ping"] is True


class TestSessionContext:
    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, session_factory) -> None:
        with pytest.raises(RuntimeError):
            async with session_context(session_factory) as session:
                await UserRepository(session).create_user("rolled-back")
                raise RuntimeError("abort")

        async with session_context(session_factory) as session:
            found = await session.scalar(
                select(UserTable.user_id).where(UserTable.user_id == "rolled-back")
            )
        assert found is None


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_reachable_store(self, session_factory) -> None:
        assert await health_check(session_factory) is True

    @pytest.mark.asyncio
    async def test_unreachable_store(self, tmp_path) -> None:
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
        try:
            assert await health_check(build_session_factory(engine)) is False
        finally:
            await engine.dispose()
