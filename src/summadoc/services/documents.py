"""Document collection service.

Orchestrates the authoritative store and the cache for every user-facing
document operation.

Write path (add, rename, delete, delete-all):
1. Take the owner's in-process lock (if serialize_owner_writes is on)
2. Read the aggregate, derive the new list, replace it with a version check
3. On a lost version race, repeat step 2 up to max_write_attempts times
4. After the store commit, update or invalidate cache entries

Read path: store reads are always fresh; the cache serves search results and
document metadata (cache-aside) and is refreshed opportunistically. The
cache can be switched off entirely without changing any result.

Cached search results are not invalidated by writes unless
invalidate_search_on_write is set; they expire with search_ttl.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TypeVar

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from summadoc.cache.redis import RedisCache
from summadoc.config import settings
from summadoc.core import search as search_indexer
from summadoc.core.errors import (
    ConcurrentModificationError,
    ConflictError,
    DocumentNotFoundError,
    UserNotFoundError,
)
from summadoc.core.locks import OwnerLocks
from summadoc.core.model import (
    DocumentDetails,
    DocumentMetadata,
    DocumentRecord,
    Membership,
    SearchMatch,
)
from summadoc.observability.metrics import record_write_conflict
from summadoc.persistence.db import session_context
from summadoc.persistence.repositories import UserRepository, translate_store_errors
from summadoc.services.completion import Summarizer

T = TypeVar("T")

logger = logging.getLogger(__name__)


class DocumentCollectionService:
    """User-facing operations on a user's document collection."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: RedisCache,
        locks: OwnerLocks | None = None,
        summarizer: Summarizer | None = None,
        max_write_attempts: int | None = None,
        serialize_owner_writes: bool | None = None,
        invalidate_search_on_write: bool | None = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.locks = locks or OwnerLocks()
        self.summarizer = summarizer
        self.max_write_attempts = max(1, max_write_attempts or settings.max_write_attempts)
        self.serialize_owner_writes = (
            settings.serialize_owner_writes
            if serialize_owner_writes is None
            else serialize_owner_writes
        )
        self.invalidate_search_on_write = (
            settings.invalidate_search_on_write
            if invalidate_search_on_write is None
            else invalidate_search_on_write
        )

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    async def _read(self, apply: Callable[[UserRepository], Awaitable[T]]) -> T:
        with translate_store_errors():
            async with session_context(self.session_factory) as session:
                return await apply(UserRepository(session))

    @asynccontextmanager
    async def _owner_scope(self, user_id: str) -> AsyncIterator[None]:
        if not self.serialize_owner_writes:
            yield
            return
        async with self.locks.hold(user_id):
            yield

    async def _write(
        self,
        user_id: str,
        operation: str,
        apply: Callable[[UserRepository], Awaitable[T]],
    ) -> T:
        """Run one read-modify-replace cycle, retrying lost version races.

        ``apply`` must read the aggregate and replace the list through the
        repository it is given. Each attempt runs in its own transaction.

        Raises:
            ConflictError: If every attempt lost a race
        """
        async with self._owner_scope(user_id):
            for attempt in range(1, self.max_write_attempts + 1):
                try:
                    return await self._read(apply)
                except ConcurrentModificationError:
                    record_write_conflict(operation)
                    logger.info(
                        f"{operation} for user {user_id} lost a version race "
                        f"(attempt {attempt}/{self.max_write_attempts})"
                    )
        logger.warning(
            f"{operation} for user {user_id} gave up after {self.max_write_attempts} attempts"
        )
        raise ConflictError(user_id, self.max_write_attempts)

    async def _after_write(self, user_id: str) -> None:
        if self.invalidate_search_on_write:
            await self.cache.invalidate_query_results(user_id)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def add_document(
        self, user_id: str, title: str, original_text: str, summary: str
    ) -> DocumentRecord:
        """Append a new document and cache its metadata."""

        async def apply(repo: UserRepository) -> DocumentRecord:
            record, _ = await repo.append_document(user_id, title, original_text, summary)
            return record

        record = await self._write(user_id, "add", apply)
        logger.info(f"Added document {record.id} for user {user_id}")

        await self.cache.set_document_metadata(
            record.id, DocumentMetadata.for_record(record, author=user_id)
        )
        await self._after_write(user_id)
        return record

    async def summarize_and_add(self, user_id: str, title: str, text: str) -> DocumentRecord:
        """Summarize ``text`` with the completion service and store the result.

        The owner is checked first so no completion is requested for an
        unknown user.
        """
        if self.summarizer is None:
            raise RuntimeError("DocumentCollectionService was built without a summarizer")

        if not await self._read(lambda repo: repo.exists(user_id)):
            raise UserNotFoundError(user_id)

        result = await self.summarizer.summarize(text)
        return await self.add_document(user_id, title, result.original_text, result.summary)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_all(self, user_id: str) -> list[DocumentRecord]:
        """Return the full document list, read fresh from the store."""
        aggregate = await self._read(lambda repo: repo.get_aggregate(user_id))

        await self.cache.set_document_metadata_many(
            {
                record.id: DocumentMetadata.for_record(record, author=user_id)
                for record in aggregate.documents
            }
        )
        return aggregate.documents

    async def get_by_id(self, user_id: str, doc_id: str) -> DocumentRecord:
        record = await self._read(lambda repo: repo.get_document(user_id, doc_id))

        await self.cache.set_recently_viewed(
            user_id,
            {
                "docId": record.id,
                "title": record.title,
                "viewedAt": datetime.now(UTC).isoformat(),
            },
        )
        return record

    async def get_details(self, user_id: str, doc_id: str) -> DocumentDetails:
        record = await self.get_by_id(user_id, doc_id)
        return DocumentDetails(
            title=record.title,
            originalText=record.original_text,
            summary=record.summary,
        )

    async def get_metadata(self, user_id: str, doc_id: str) -> DocumentMetadata:
        """Cache-aside read of a document's metadata.

        A cached entry is only trusted if it names the caller as author.
        """
        cached = await self.cache.get_document_metadata(doc_id)
        if cached is not None and cached.author == user_id:
            return cached

        record = await self._read(lambda repo: repo.get_document(user_id, doc_id))
        metadata = DocumentMetadata.for_record(record, author=user_id)
        await self.cache.set_document_metadata(doc_id, metadata)
        return metadata

    async def count_documents(self, user_id: str) -> int:
        aggregate = await self._read(lambda repo: repo.get_aggregate(user_id))
        return len(aggregate.documents)

    async def get_membership(self, user_id: str) -> Membership:
        aggregate = await self._read(lambda repo: repo.get_aggregate(user_id))
        return Membership(joinedAt=aggregate.created_at, days=aggregate.days_since_joined())

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    async def search(self, user_id: str, term: str) -> list[SearchMatch]:
        """Title search with a cached result per (owner, term).

        A cache hit is returned as stored, even if the list has changed
        since; entries expire after search_ttl. Empty results are not cached.
        """
        cached = await self.cache.get_query_results(user_id, term)
        if cached is not None:
            try:
                return [SearchMatch.model_validate(item) for item in cached]
            except ValidationError:
                logger.warning(f"Ignoring malformed cached search for user {user_id}")

        aggregate = await self._read(lambda repo: repo.get_aggregate(user_id))
        matches = search_indexer.build_matches(aggregate.documents, term)

        if matches:
            await self.cache.set_query_results(user_id, term, matches)
        return matches

    # -------------------------------------------------------------------------
    # Updates and deletes
    # -------------------------------------------------------------------------

    async def rename_title(self, user_id: str, doc_id: str, new_title: str) -> DocumentRecord:
        """Rename one document, then overwrite its metadata entry."""

        async def apply(repo: UserRepository) -> DocumentRecord:
            aggregate = await repo.get_aggregate(user_id)
            index = aggregate.index_of(doc_id)
            if index == -1:
                raise DocumentNotFoundError(doc_id, user_id=user_id)

            documents = list(aggregate.documents)
            documents[index] = documents[index].renamed(new_title)
            await repo.replace_documents(user_id, documents, aggregate.version)
            return documents[index]

        record = await self._write(user_id, "rename", apply)
        logger.info(f"Renamed document {doc_id} for user {user_id}")

        await self.cache.set_document_metadata(
            doc_id, DocumentMetadata.for_record(record, author=user_id)
        )
        await self._after_write(user_id)
        return record

    async def delete_one(self, user_id: str, doc_id: str) -> None:
        """Remove one document from the list and drop its metadata entry."""

        async def apply(repo: UserRepository) -> None:
            aggregate = await repo.get_aggregate(user_id)
            if aggregate.find(doc_id) is None:
                raise DocumentNotFoundError(doc_id, user_id=user_id)

            documents = [record for record in aggregate.documents if record.id != doc_id]
            await repo.replace_documents(user_id, documents, aggregate.version)

        await self._write(user_id, "delete", apply)
        logger.info(f"Deleted document {doc_id} for user {user_id}")

        await self.cache.delete_document_metadata(doc_id)
        await self._after_write(user_id)

    async def delete_all(self, user_id: str) -> int:
        """Empty the document list. Returns how many documents were removed."""

        async def apply(repo: UserRepository) -> list[str]:
            aggregate = await repo.get_aggregate(user_id)
            await repo.replace_documents(user_id, [], aggregate.version)
            return [record.id for record in aggregate.documents]

        removed = await self._write(user_id, "delete_all", apply)
        logger.info(f"Deleted all {len(removed)} documents for user {user_id}")

        if removed:
            await self.cache.delete_document_metadata(*removed)
        await self._after_write(user_id)
        return len(removed)
