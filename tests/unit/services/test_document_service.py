"""Tests for DocumentCollectionService.

The store is SQLite; the cache is the in-memory FakeRedis from conftest, so
tests can look at (and expire) cache entries directly.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from summadoc.cache.keys import CacheKeys
from summadoc.cache.redis import RedisCache
from summadoc.core.errors import (
    ConcurrentModificationError,
    ConflictError,
    DocumentNotFoundError,
    StoreUnavailableError,
    UserNotFoundError,
)
from summadoc.core.model import DocumentMetadata, Summary
from summadoc.persistence.db import session_context
from summadoc.persistence.repositories import UserRepository
from summadoc.persistence.tables import UserTable
from summadoc.services.documents import DocumentCollectionService

LOREM = (
    "Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua. Ut enim ad minim veniam, quis nostrud "
    "exercitation ullamco laboris nisi ut aliquip ex ea commodo consequat."
)


class FakeSummarizer:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def summarize(self, text: str) -> Summary:
        self.calls.append(text)
        return Summary(summary=f"summary of {len(text)} chars", originalText=text)


class TestScenario:
    @pytest.mark.asyncio
    async def test_add_search_delete_with_stale_cache(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        """Add, search, delete; a stale cached search may lag, a cold one does not."""
        record = await service.add_document(user_id, "Notes", LOREM, "short summary")

        documents = await service.get_all(user_id)
        assert [doc.id for doc in documents] == [record.id]

        matches = await service.search(user_id, "note")
        assert len(matches) == 1
        assert matches[0].doc_id == record.id
        assert matches[0].snippet == LOREM[:150] + "..."

        await service.delete_one(user_id, record.id)
        assert await service.get_all(user_id) == []

        stale = await service.search(user_id, "note")
        assert [match.doc_id for match in stale] == [record.id]

        fake_redis.expire_all()
        assert await service.search(user_id, "note") == []


class TestProperties:
    @pytest.mark.asyncio
    async def test_added_ids_are_unique(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        records = [await service.add_document(user_id, f"t{i}", "x", "s") for i in range(25)]
        assert len({record.id for record in records}) == 25
        assert await service.count_documents(user_id) == 25

    @pytest.mark.asyncio
    async def test_disabling_cache_changes_no_result(
        self, session_factory, register_user, cache: RedisCache, disabled_cache: RedisCache
    ) -> None:
        await register_user("cached")
        await register_user("uncached")

        async def run(service: DocumentCollectionService, owner: str) -> list[object]:
            first = await service.add_document(owner, "Meeting notes", LOREM, "s1")
            await service.add_document(owner, "Invoice", "pay", "s2")
            results: list[object] = []
            results.append([m.title for m in await service.search(owner, "NOTES")])
            await service.rename_title(owner, first.id, "Renamed notes")
            results.append((await service.get_by_id(owner, first.id)).title)
            results.append((await service.get_metadata(owner, first.id)).title)
            results.append([doc.title for doc in await service.get_all(owner)])
            results.append(await service.count_documents(owner))
            await service.delete_all(owner)
            results.append(await service.get_all(owner))
            return results

        with_cache = DocumentCollectionService(session_factory, cache)
        without_cache = DocumentCollectionService(session_factory, disabled_cache)

        assert await run(with_cache, "cached") == await run(without_cache, "uncached")

    @pytest.mark.asyncio
    async def test_delete_all_is_idempotent(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        await service.add_document(user_id, "a", "x", "s")
        await service.add_document(user_id, "b", "x", "s")

        assert await service.delete_all(user_id) == 2
        assert await service.get_all(user_id) == []
        assert await service.delete_all(user_id) == 0
        assert await service.get_all(user_id) == []

    @pytest.mark.asyncio
    async def test_rename_round_trip(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        record = await service.add_document(user_id, "Draft", LOREM, "s")

        await service.rename_title(user_id, record.id, "Final report")

        assert (await service.get_by_id(user_id, record.id)).title == "Final report"
        fake_redis.expire_all()
        matches = await service.search(user_id, "final")
        assert [match.doc_id for match in matches] == [record.id]

    @pytest.mark.asyncio
    async def test_concurrent_renames_both_land(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        first = await service.add_document(user_id, "one", "x", "s")
        second = await service.add_document(user_id, "two", "x", "s")

        await asyncio.gather(
            service.rename_title(user_id, first.id, "ONE"),
            service.rename_title(user_id, second.id, "TWO"),
        )

        titles = {doc.id: doc.title for doc in await service.get_all(user_id)}
        assert titles == {first.id: "ONE", second.id: "TWO"}

    @pytest.mark.asyncio
    async def test_concurrent_adds_all_land(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        await asyncio.gather(
            *(service.add_document(user_id, f"t{i}", "x", "s") for i in range(10))
        )
        assert await service.count_documents(user_id) == 10


class TestCreate:
    @pytest.mark.asyncio
    async def test_add_caches_metadata(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        record = await service.add_document(user_id, "Notes", "x", "s")

        cached = orjson.loads(fake_redis.store[CacheKeys.document_metadata(record.id)])
        assert cached["title"] == "Notes"
        assert cached["author"] == user_id
        assert cached["createdAt"] == record.created_at

    @pytest.mark.asyncio
    async def test_add_for_unknown_user(self, service: DocumentCollectionService) -> None:
        with pytest.raises(UserNotFoundError):
            await service.add_document("nobody", "t", "x", "s")

    @pytest.mark.asyncio
    async def test_summarize_and_add(self, session_factory, cache, user_id: str) -> None:
        summarizer = FakeSummarizer()
        service = DocumentCollectionService(session_factory, cache, summarizer=summarizer)

        record = await service.summarize_and_add(user_id, "Notes", LOREM)

        assert summarizer.calls == [LOREM]
        assert record.original_text == LOREM
        assert record.summary == f"summary of {len(LOREM)} chars"
        assert (await service.get_by_id(user_id, record.id)).summary == record.summary

    @pytest.mark.asyncio
    async def test_summarize_for_unknown_user_skips_completion(
        self, session_factory, cache
    ) -> None:
        summarizer = FakeSummarizer()
        service = DocumentCollectionService(session_factory, cache, summarizer=summarizer)

        with pytest.raises(UserNotFoundError):
            await service.summarize_and_add("nobody", "Notes", LOREM)
        assert summarizer.calls == []

    @pytest.mark.asyncio
    async def test_summarize_without_summarizer(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        with pytest.raises(RuntimeError):
            await service.summarize_and_add(user_id, "Notes", LOREM)


class TestReads:
    @pytest.mark.asyncio
    async def test_get_all_refreshes_metadata(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        first = await service.add_document(user_id, "a", "x", "s")
        second = await service.add_document(user_id, "b", "x", "s")
        fake_redis.expire_all()

        await service.get_all(user_id)

        assert CacheKeys.document_metadata(first.id) in fake_redis.store
        assert CacheKeys.document_metadata(second.id) in fake_redis.store

    @pytest.mark.asyncio
    async def test_get_all_unknown_user(self, service: DocumentCollectionService) -> None:
        with pytest.raises(UserNotFoundError):
            await service.get_all("nobody")

    @pytest.mark.asyncio
    async def test_get_by_id_records_recent_view(
        self, service: DocumentCollectionService, user_id: str, cache: RedisCache
    ) -> None:
        record = await service.add_document(user_id, "Notes", "x", "s")

        await service.get_by_id(user_id, record.id)

        recent = await cache.get_recently_viewed(user_id)
        assert recent["docId"] == record.id
        assert recent["title"] == "Notes"

    @pytest.mark.asyncio
    async def test_get_by_id_missing(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.get_by_id(user_id, "missing")

    @pytest.mark.asyncio
    async def test_documents_are_scoped_to_owner(
        self, service: DocumentCollectionService, user_id: str, register_user
    ) -> None:
        await register_user("u2")
        record = await service.add_document(user_id, "private", "x", "s")

        with pytest.raises(DocumentNotFoundError):
            await service.get_by_id("u2", record.id)

    @pytest.mark.asyncio
    async def test_get_details(self, service: DocumentCollectionService, user_id: str) -> None:
        record = await service.add_document(user_id, "Notes", "body", "short")

        details = await service.get_details(user_id, record.id)

        assert details.model_dump(by_alias=True) == {
            "title": "Notes",
            "originalText": "body",
            "summary": "short",
        }

    @pytest.mark.asyncio
    async def test_membership(self, service: DocumentCollectionService, user_id: str) -> None:
        membership = await service.get_membership(user_id)
        assert membership.days == 0
        assert membership.joined_at is not None


class TestMetadata:
    """Cache-aside reads of document metadata."""

    @pytest.mark.asyncio
    async def test_hit_served_from_cache(
        self, service: DocumentCollectionService, user_id: str, cache: RedisCache
    ) -> None:
        cached = DocumentMetadata(title="from cache", author=user_id, createdAt="2024-01-01")
        await cache.set_document_metadata("not-in-store", cached)

        assert await service.get_metadata(user_id, "not-in-store") == cached

    @pytest.mark.asyncio
    async def test_miss_reads_store_and_populates(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        record = await service.add_document(user_id, "Notes", "x", "s")
        fake_redis.expire_all()

        metadata = await service.get_metadata(user_id, record.id)

        assert metadata.title == "Notes"
        assert metadata.created_at == record.created_at
        assert CacheKeys.document_metadata(record.id) in fake_redis.store

    @pytest.mark.asyncio
    async def test_foreign_cached_entry_ignored(
        self, service: DocumentCollectionService, user_id: str, register_user
    ) -> None:
        await register_user("u2")
        record = await service.add_document(user_id, "private", "x", "s")

        with pytest.raises(DocumentNotFoundError):
            await service.get_metadata("u2", record.id)

    @pytest.mark.asyncio
    async def test_rename_keeps_creation_time(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        record = await service.add_document(user_id, "Draft", "x", "s")
        await service.rename_title(user_id, record.id, "Final")

        metadata = await service.get_metadata(user_id, record.id)

        assert metadata.title == "Final"
        assert metadata.created_at == record.created_at


class TestSearch:
    @pytest.mark.asyncio
    async def test_result_cached_with_short_ttl(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        await service.add_document(user_id, "Notes", "x", "s")

        await service.search(user_id, "Note")

        key = CacheKeys.search_results(user_id, "note")
        assert key in fake_redis.store
        assert fake_redis.ttls[key] == 300

    @pytest.mark.asyncio
    async def test_empty_result_not_cached(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        assert await service.search(user_id, "nothing") == []
        assert CacheKeys.search_results(user_id, "nothing") not in fake_redis.store

    @pytest.mark.asyncio
    async def test_cached_result_returned_verbatim(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        fake_redis.store[CacheKeys.search_results(user_id, "x")] = orjson.dumps(
            [{"docId": "ghost", "title": "Ghost", "snippet": "boo..."}]
        )

        matches = await service.search(user_id, "X")

        assert [match.doc_id for match in matches] == ["ghost"]

    @pytest.mark.asyncio
    async def test_malformed_cached_result_falls_back_to_store(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        await service.add_document(user_id, "Notes", "x", "s")
        fake_redis.store[CacheKeys.search_results(user_id, "notes")] = orjson.dumps([{"bad": 1}])

        matches = await service.search(user_id, "notes")

        assert [match.title for match in matches] == ["Notes"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, service: DocumentCollectionService) -> None:
        with pytest.raises(UserNotFoundError):
            await service.search("nobody", "x")

    @pytest.mark.asyncio
    async def test_invalidate_on_write(self, session_factory, cache, user_id: str) -> None:
        service = DocumentCollectionService(
            session_factory, cache, invalidate_search_on_write=True
        )
        record = await service.add_document(user_id, "Notes", "x", "s")
        assert len(await service.search(user_id, "notes")) == 1

        await service.delete_one(user_id, record.id)

        assert await service.search(user_id, "notes") == []


class TestUpdatesAndDeletes:
    @pytest.mark.asyncio
    async def test_rename_missing_document(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.rename_title(user_id, "missing", "x")

    @pytest.mark.asyncio
    async def test_legacy_list_title_migrates_on_write(
        self, service: DocumentCollectionService, user_id: str, session_factory
    ) -> None:
        legacy = [
            {"id": "old", "title": ["Old", "style"], "originalText": "x", "summary": "s"},
            {"id": "other", "title": ["Untouched", "too"], "originalText": "y", "summary": "s"},
        ]
        async with session_context(session_factory) as session:
            await session.execute(
                update(UserTable).where(UserTable.user_id == user_id).values(documents=legacy)
            )

        assert (await service.get_by_id(user_id, "old")).title == "Old style"
        await service.rename_title(user_id, "old", "New style")

        async with session_context(session_factory) as session:
            row = await session.scalar(
                select(UserTable.documents).where(UserTable.user_id == user_id)
            )
        assert [doc["title"] for doc in row] == ["New style", "Untouched too"]

    @pytest.mark.asyncio
    async def test_null_text_rows_stay_readable(
        self, service: DocumentCollectionService, user_id: str, session_factory
    ) -> None:
        legacy = [{"id": "d1", "title": "Notes", "originalText": None, "summary": None}]
        async with session_context(session_factory) as session:
            await session.execute(
                update(UserTable).where(UserTable.user_id == user_id).values(documents=legacy)
            )

        matches = await service.search(user_id, "note")
        assert [(m.doc_id, m.snippet) for m in matches] == [("d1", "")]
        assert (await service.get_details(user_id, "d1")).original_text == ""
        assert [doc.id for doc in await service.get_all(user_id)] == ["d1"]

    @pytest.mark.asyncio
    async def test_delete_one_drops_metadata(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        keep = await service.add_document(user_id, "keep", "x", "s")
        drop = await service.add_document(user_id, "drop", "x", "s")

        await service.delete_one(user_id, drop.id)

        assert [doc.id for doc in await service.get_all(user_id)] == [keep.id]
        assert CacheKeys.document_metadata(drop.id) not in fake_redis.store

    @pytest.mark.asyncio
    async def test_delete_one_missing(
        self, service: DocumentCollectionService, user_id: str
    ) -> None:
        with pytest.raises(DocumentNotFoundError):
            await service.delete_one(user_id, "missing")

    @pytest.mark.asyncio
    async def test_delete_all_drops_metadata(
        self, service: DocumentCollectionService, user_id: str, fake_redis
    ) -> None:
        records = [await service.add_document(user_id, f"t{i}", "x", "s") for i in range(3)]

        await service.delete_all(user_id)

        for record in records:
            assert CacheKeys.document_metadata(record.id) not in fake_redis.store

    @pytest.mark.asyncio
    async def test_delete_all_unknown_user(self, service: DocumentCollectionService) -> None:
        with pytest.raises(UserNotFoundError):
            await service.delete_all("nobody")


class TestWriteRetries:
    """Lost version races are retried up to max_write_attempts."""

    @pytest.mark.asyncio
    async def test_single_lost_race_is_retried(
        self, service: DocumentCollectionService, user_id: str, monkeypatch
    ) -> None:
        record = await service.add_document(user_id, "old", "x", "s")
        original = UserRepository.replace_documents
        calls = {"count": 0}

        async def flaky(self, owner, documents, expected_version):
            calls["count"] += 1
            if calls["count"] == 1:
                raise ConcurrentModificationError(owner, expected_version)
            return await original(self, owner, documents, expected_version)

        monkeypatch.setattr(UserRepository, "replace_documents", flaky)

        await service.rename_title(user_id, record.id, "new")

        assert calls["count"] == 2
        assert (await service.get_by_id(user_id, record.id)).title == "new"

    @pytest.mark.asyncio
    async def test_conflict_after_retry_budget(
        self, service: DocumentCollectionService, user_id: str, monkeypatch
    ) -> None:
        record = await service.add_document(user_id, "old", "x", "s")
        calls = {"count": 0}

        async def always_stale(self, owner, documents, expected_version):
            calls["count"] += 1
            raise ConcurrentModificationError(owner, expected_version)

        monkeypatch.setattr(UserRepository, "replace_documents", always_stale)

        with pytest.raises(ConflictError) as exc_info:
            await service.rename_title(user_id, record.id, "new")

        assert calls["count"] == 3
        assert exc_info.value.attempts == 3
        monkeypatch.undo()
        assert (await service.get_by_id(user_id, record.id)).title == "old"

    @pytest.mark.asyncio
    async def test_writes_without_owner_lock(self, session_factory, cache, user_id: str) -> None:
        service = DocumentCollectionService(session_factory, cache, serialize_owner_writes=False)
        record = await service.add_document(user_id, "a", "x", "s")
        await service.rename_title(user_id, record.id, "b")

        assert len(service.locks) == 0
        assert (await service.get_by_id(user_id, record.id)).title == "b"

    @pytest.mark.asyncio
    async def test_separate_instances_race_on_version(
        self, session_factory, cache, user_id: str, monkeypatch
    ) -> None:
        """Two processes (separate lock tables) both land their renames."""
        first = DocumentCollectionService(session_factory, cache)
        second = DocumentCollectionService(session_factory, cache)
        doc_a = await first.add_document(user_id, "a", "x", "s")
        doc_b = await first.add_document(user_id, "b", "x", "s")

        original = UserRepository.get_aggregate
        stale_read = asyncio.Event()
        other_write_done = asyncio.Event()
        reads = {"count": 0}

        async def stalled(self, owner):
            aggregate = await original(self, owner)
            reads["count"] += 1
            if reads["count"] == 1:
                stale_read.set()
                await other_write_done.wait()
            return aggregate

        monkeypatch.setattr(UserRepository, "get_aggregate", stalled)

        pending = asyncio.create_task(second.rename_title(user_id, doc_b.id, "b2"))
        await stale_read.wait()
        await first.rename_title(user_id, doc_a.id, "a2")
        other_write_done.set()
        await pending

        assert reads["count"] == 3
        titles = [doc.title for doc in await first.get_all(user_id)]
        assert titles == ["a2", "b2"]


class TestDegradedDependencies:
    @pytest.mark.asyncio
    async def test_unreachable_cache_is_transparent(self, session_factory, user_id: str) -> None:
        client = AsyncMock()
        error = RedisConnectionError("connection refused")
        client.get.side_effect = error
        client.set.side_effect = error
        client.delete.side_effect = error
        client.ping.side_effect = error

        async def failing_scan(*_args: object, **_kwargs: object):
            raise error
            yield  # pragma: no cover

        client.scan_iter = MagicMock(side_effect=failing_scan)
        pipeline = MagicMock()
        pipeline.__aenter__ = AsyncMock(return_value=pipeline)
        pipeline.__aexit__ = AsyncMock(return_value=None)
        pipeline.execute = AsyncMock(side_effect=error)
        client.pipeline = MagicMock(return_value=pipeline)
        service = DocumentCollectionService(session_factory, RedisCache(client))

        record = await service.add_document(user_id, "Notes", "x", "s")
        assert [doc.id for doc in await service.get_all(user_id)] == [record.id]
        assert len(await service.search(user_id, "notes")) == 1
        assert (await service.get_metadata(user_id, record.id)).title == "Notes"
        await service.delete_one(user_id, record.id)
        assert await service.count_documents(user_id) == 0

    @pytest.mark.asyncio
    async def test_unreachable_store(self, tmp_path, cache: RedisCache) -> None:
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        service = DocumentCollectionService(factory, cache)

        try:
            with pytest.raises(StoreUnavailableError):
                await service.get_all("u1")
            with pytest.raises(StoreUnavailableError):
                await service.add_document("u1", "t", "x", "s")
        finally:
            await engine.dispose()
