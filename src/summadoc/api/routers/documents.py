"""Document collection API router.

Every route operates on the caller's own collection; the owner is taken from
the bearer token.

- POST   /documents                    - Summarize a text and store it
- GET    /documents                    - List all documents
- GET    /documents/count              - Number of documents
- GET    /documents/search             - Title search (cached, bounded staleness)
- GET    /documents/{docId}            - One document
- GET    /documents/{docId}/details    - Title, text and summary
- GET    /documents/{docId}/metadata   - Cached metadata (cache-aside)
- PATCH  /documents/{docId}/title      - Rename
- DELETE /documents/{docId}            - Delete one
- DELETE /documents                    - Delete all
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, Field, field_validator

from summadoc.api.deps import DocumentIdPath, DocumentService
from summadoc.core.model import (
    DocumentDetails,
    DocumentMetadata,
    DocumentRecord,
    SearchMatch,
    title_text,
)
from summadoc.security.deps import CurrentUserId

router = APIRouter(prefix="/documents", tags=["Documents"])


class CreateDocumentRequest(BaseModel):
    """Text to summarize. A title sent as a list of words is joined with spaces."""

    title: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)

    @field_validator("title", mode="before")
    @classmethod
    def _join_title(cls, value: Any) -> str:
        return title_text(value)


class RenameTitleRequest(BaseModel):
    model_config = {"populate_by_name": True}

    new_title: str = Field(..., alias="newTitle", min_length=1)


class CountResponse(BaseModel):
    count: int


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=DocumentRecord,
    response_model_exclude_none=True,
)
async def create_document(
    body: CreateDocumentRequest, user_id: CurrentUserId, service: DocumentService
) -> DocumentRecord:
    return await service.summarize_and_add(user_id, body.title, body.text)


@router.get("", response_model=list[DocumentRecord], response_model_exclude_none=True)
async def list_documents(user_id: CurrentUserId, service: DocumentService) -> list[DocumentRecord]:
    return await service.get_all(user_id)


@router.get("/count")
async def count_documents(user_id: CurrentUserId, service: DocumentService) -> CountResponse:
    return CountResponse(count=await service.count_documents(user_id))


@router.get("/search")
async def search_documents(
    user_id: CurrentUserId,
    service: DocumentService,
    search_term: Annotated[str, Query(alias="searchTerm")],
) -> list[SearchMatch]:
    """Case-insensitive substring search over titles.

    Results may lag recent writes by up to the search cache TTL. No match is
    an empty list, not an error.
    """
    return await service.search(user_id, search_term)


@router.get("/{docId}", response_model=DocumentRecord, response_model_exclude_none=True)
async def get_document(
    doc_id: DocumentIdPath, user_id: CurrentUserId, service: DocumentService
) -> DocumentRecord:
    return await service.get_by_id(user_id, doc_id)


@router.get("/{docId}/details")
async def get_document_details(
    doc_id: DocumentIdPath, user_id: CurrentUserId, service: DocumentService
) -> DocumentDetails:
    return await service.get_details(user_id, doc_id)


@router.get("/{docId}/metadata")
async def get_document_metadata(
    doc_id: DocumentIdPath, user_id: CurrentUserId, service: DocumentService
) -> DocumentMetadata:
    return await service.get_metadata(user_id, doc_id)


@router.patch("/{docId}/title", status_code=status.HTTP_204_NO_CONTENT)
async def rename_document(
    doc_id: DocumentIdPath,
    body: RenameTitleRequest,
    user_id: CurrentUserId,
    service: DocumentService,
) -> Response:
    await service.rename_title(user_id, doc_id, body.new_title)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{docId}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    doc_id: DocumentIdPath, user_id: CurrentUserId, service: DocumentService
) -> Response:
    await service.delete_one(user_id, doc_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_all_documents(user_id: CurrentUserId, service: DocumentService) -> Response:
    await service.delete_all(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
