"""Repository for the user aggregate and its embedded document list.

Every document-list change is a whole-list replace guarded by the aggregate
version (compare-and-swap):

    aggregate = await repo.get_aggregate(user_id)
    documents = [...]  # derived from aggregate.documents
    await repo.replace_documents(user_id, documents, aggregate.version)

If another writer replaced the list in between, the UPDATE matches no row
and ConcurrentModificationError is raised; the caller re-reads and retries.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from summadoc.core.errors import (
    ConcurrentModificationError,
    DocumentNotFoundError,
    StoreUnavailableError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from summadoc.core.ids import new_document_id
from summadoc.core.model import DocumentRecord, UserAggregate
from summadoc.persistence.tables import UserTable


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """Re-raise connection-level database failures as StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
        raise StoreUnavailableError(f"authoritative store unavailable: {e}") from e


class UserRepository:
    """Repository for user aggregates."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # -------------------------------------------------------------------------
    # Aggregate lifecycle
    # -------------------------------------------------------------------------

    async def create_user(
        self, user_id: str, email: str | None = None, created_at: datetime | None = None
    ) -> UserAggregate:
        """Create an aggregate with an empty document list.

        Raises:
            UserAlreadyExistsError: If the user id is taken
        """
        created_at = created_at or datetime.now(UTC)
        stmt = insert(UserTable).values(
            user_id=user_id,
            email=email,
            documents=[],
            version=0,
            created_at=created_at,
        )
        try:
            await self.session.execute(stmt)
        except IntegrityError as e:
            raise UserAlreadyExistsError(user_id) from e

        return UserAggregate(id=user_id, email=email, documents=[], createdAt=created_at)

    async def exists(self, user_id: str) -> bool:
        stmt = select(UserTable.pk).where(UserTable.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_aggregate(self, user_id: str) -> UserAggregate:
        """Load a user's aggregate, including the version token.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        stmt = select(
            UserTable.user_id,
            UserTable.email,
            UserTable.documents,
            UserTable.version,
            UserTable.created_at,
        ).where(UserTable.user_id == user_id)
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            raise UserNotFoundError(user_id)

        return UserAggregate(
            id=row.user_id,
            email=row.email,
            documents=[DocumentRecord.model_validate(doc) for doc in row.documents or []],
            createdAt=row.created_at,
            version=row.version,
        )

    async def get_document(self, user_id: str, doc_id: str) -> DocumentRecord:
        """Find one document by linear scan of the owner's list.

        Raises:
            UserNotFoundError: If the user does not exist
            DocumentNotFoundError: If the document is not in the list
        """
        aggregate = await self.get_aggregate(user_id)
        record = aggregate.find(doc_id)
        if record is None:
            raise DocumentNotFoundError(doc_id, user_id=user_id)
        return record

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def replace_documents(
        self,
        user_id: str,
        documents: Sequence[DocumentRecord],
        expected_version: int,
    ) -> int:
        """Overwrite the whole document list if the version is unchanged.

        Returns:
            The new aggregate version.

        Raises:
            ConcurrentModificationError: If the list changed since expected_version
            UserNotFoundError: If the user does not exist
        """
        stmt = (
            update(UserTable)
            .where(UserTable.user_id == user_id, UserTable.version == expected_version)
            .values(
                documents=[record.to_doc() for record in documents],
                version=UserTable.version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            if not await self.exists(user_id):
                raise UserNotFoundError(user_id)
            raise ConcurrentModificationError(user_id, expected_version)
        return expected_version + 1

    async def append_document(
        self,
        user_id: str,
        title: str,
        original_text: str,
        summary: str,
    ) -> tuple[DocumentRecord, int]:
        """Append a new document with a fresh id unique within the aggregate.

        Returns:
            Tuple of (record, new_version).

        Raises:
            ConcurrentModificationError: If the list changed while appending
            UserNotFoundError: If the user does not exist
        """
        aggregate = await self.get_aggregate(user_id)
        record = DocumentRecord(
            id=new_document_id(aggregate.document_ids()),
            title=title,
            originalText=original_text,
            summary=summary,
            createdAt=datetime.now(UTC).isoformat(),
        )
        version = await self.replace_documents(
            user_id, [*aggregate.documents, record], aggregate.version
        )
        return record, version
