"""In-process title search over a user's document list.

Matching is a case-insensitive substring test against the title only; the
document body is not searched. Results keep the order of the input list.
"""

from __future__ import annotations

from collections.abc import Iterable

from summadoc.core.model import DocumentRecord, SearchMatch, title_text


def normalize_term(term: str) -> str:
    """Case-fold a search term. Shared with the cache key builder."""
    return term.casefold()


def match(documents: Iterable[DocumentRecord], term: str) -> list[DocumentRecord]:
    """Return the documents whose title contains ``term``."""
    needle = normalize_term(term)
    return [doc for doc in documents if needle in title_text(doc.title).casefold()]


def build_matches(documents: Iterable[DocumentRecord], term: str) -> list[SearchMatch]:
    """Run ``match`` and shape the hits as search results."""
    return [SearchMatch.from_record(doc) for doc in match(documents, term)]
