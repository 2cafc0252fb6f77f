"""Application services: the document collection and the completion client."""

from summadoc.services.completion import (
    CompletionClient,
    Summarizer,
    close_completion_client,
    get_completion_client,
)
from summadoc.services.documents import DocumentCollectionService

__all__ = [
    "CompletionClient",
    "DocumentCollectionService",
    "Summarizer",
    "close_completion_client",
    "get_completion_client",
]
