"""Cache key schema for Summadoc.

Key format: {namespace}:{owner}:{qualifier...}

- query:results:{user_id}:search:{term}  cached search results
- doc:meta:{doc_id}                      document metadata
- session:{user_id}                      session record
- recent:{user_id}                       most recently viewed document

Variable components are percent-encoded, so an identifier or search term
containing ":" or "*" can never produce another target's key or widen an
invalidation pattern. Search terms are case-folded before encoding.
"""

from __future__ import annotations

from urllib.parse import quote, unquote

from summadoc.core.search import normalize_term


def _component(value: str) -> str:
    return quote(value, safe="")


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    QUERY_RESULTS = "query:results"
    DOC_META = "doc:meta"
    SESSION = "session"
    RECENT = "recent"

    @classmethod
    def search_results(cls, user_id: str, term: str) -> str:
        """Key for the cached result of one search."""
        return (
            f"{cls.QUERY_RESULTS}:{_component(user_id)}:search:"
            f"{_component(normalize_term(term))}"
        )

    @classmethod
    def document_metadata(cls, doc_id: str) -> str:
        """Key for a document's metadata entry."""
        return f"{cls.DOC_META}:{_component(doc_id)}"

    @classmethod
    def session(cls, user_id: str) -> str:
        """Key for a user's session record."""
        return f"{cls.SESSION}:{_component(user_id)}"

    @classmethod
    def recently_viewed(cls, user_id: str) -> str:
        """Key for the document a user viewed last."""
        return f"{cls.RECENT}:{_component(user_id)}"

    @classmethod
    def search_invalidation_pattern(cls, user_id: str) -> str:
        """Pattern matching every cached search of one owner.

        Use with Redis SCAN + DEL.
        """
        return f"{cls.QUERY_RESULTS}:{_component(user_id)}:search:*"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse a cache key into namespace, owner and qualifier.

        Returns None if the key doesn't match a known namespace.
        """
        for namespace in (cls.QUERY_RESULTS, cls.DOC_META, cls.SESSION, cls.RECENT):
            prefix = f"{namespace}:"
            if not key.startswith(prefix):
                continue
            parts = key[len(prefix) :].split(":")
            if not parts[0]:
                return None
            return {
                "namespace": namespace,
                "owner": unquote(parts[0]),
                "qualifier": ":".join(unquote(part) for part in parts[1:]),
            }
        return None
