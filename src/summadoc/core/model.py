"""Domain model for the per-user document collection.

A UserAggregate is the single authoritative record of a user. Documents are
embedded in it and never stored on their own.

Titles were historically written either as a string or as a list of strings.
Both forms are accepted on read; a list is joined with single spaces. Writes
always store the string form, so legacy rows migrate on their next write.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

SNIPPET_LENGTH = 150
SNIPPET_SUFFIX = "..."


def title_text(title: Any) -> str:
    """Return the canonical string form of a stored title."""
    if isinstance(title, (list, tuple)):
        return " ".join(str(part) for part in title)
    if title is None:
        return ""
    return str(title)


class DomainModel(BaseModel):
    """Base model for the document domain (camelCase on the wire)."""

    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
    }


class DocumentRecord(DomainModel):
    """A summarized document embedded in its owner's aggregate."""

    # Unknown keys on legacy rows survive whole-list replaces
    model_config = {**DomainModel.model_config, "extra": "allow"}

    id: str = Field(..., min_length=1)
    title: str
    original_text: str = Field(default="", alias="originalText")
    summary: str = ""
    # Absent on records written before creation times were kept
    created_at: str | None = Field(default=None, alias="createdAt")

    @field_validator("title", mode="before")
    @classmethod
    def _join_title(cls, value: Any) -> str:
        return title_text(value)

    @field_validator("original_text", "summary", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    def renamed(self, new_title: str) -> "DocumentRecord":
        return self.model_copy(update={"title": new_title})

    def to_doc(self) -> dict[str, Any]:
        """Serialize for storage in the aggregate's JSON column."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DocumentDetails(DomainModel):
    title: str
    original_text: str = Field(alias="originalText")
    summary: str


class DocumentMetadata(DomainModel):
    """Cached per-document metadata (key doc:meta:{docId})."""

    title: str
    author: str
    created_at: str = Field(alias="createdAt")
    tags: list[str] = Field(default_factory=list)

    @classmethod
    def for_record(cls, record: DocumentRecord, author: str) -> "DocumentMetadata":
        return cls(
            title=record.title,
            author=author,
            createdAt=record.created_at or datetime.now(UTC).isoformat(),
            tags=[],
        )


class SearchMatch(DomainModel):
    """One search hit: id, title and a fixed-length text snippet.

    Records without text (null on legacy rows) get an empty snippet.
    """

    doc_id: str = Field(alias="docId")
    title: str
    snippet: str

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "SearchMatch":
        return cls(
            docId=record.id,
            title=record.title,
            snippet=(
                record.original_text[:SNIPPET_LENGTH] + SNIPPET_SUFFIX
                if record.original_text
                else ""
            ),
        )


class UserAggregate(DomainModel):
    """The authoritative record of one user and their documents."""

    model_config = {**DomainModel.model_config, "extra": "ignore"}

    id: str
    email: str | None = None
    documents: list[DocumentRecord] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    version: int = 0

    def find(self, doc_id: str) -> DocumentRecord | None:
        for record in self.documents:
            if record.id == doc_id:
                return record
        return None

    def index_of(self, doc_id: str) -> int:
        for index, record in enumerate(self.documents):
            if record.id == doc_id:
                return index
        return -1

    def document_ids(self) -> set[str]:
        return {record.id for record in self.documents}

    def days_since_joined(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return (now - created).days


class Summary(DomainModel):
    """Result of the completion service's summarize capability."""

    summary: str
    original_text: str = Field(alias="originalText")


class Membership(DomainModel):
    joined_at: datetime = Field(alias="joinedAt")
    days: int
