"""SQLAlchemy ORM models for the authoritative store.

One row per user. The user's documents live inside the row as a JSON array
(JSONB on PostgreSQL), so every change to the list rewrites that column.
The version column is the optimistic-concurrency token: it is bumped by each
successful document-list write and compared by the next one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
DocumentsType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserTable(Base):
    """User aggregate table.

    Holds the user's identity fields and the embedded, ordered document list.
    """

    __tablename__ = "users"

    # Internal surrogate key
    pk: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)

    # User identifier assigned at registration by the auth provider
    user_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False, index=True)

    email: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Ordered list of document records
    documents: Mapped[list[dict[str, Any]]] = mapped_column(
        DocumentsType, nullable=False, default=list
    )

    # Optimistic-concurrency token for the document list
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
