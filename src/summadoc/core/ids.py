from __future__ import annotations

from collections.abc import Container
from uuid import uuid4


def new_document_id(existing: Container[str] = ()) -> str:
    """Generate a 128-bit document id not present in ``existing``."""
    while True:
        candidate = uuid4().hex
        if candidate not in existing:
            return candidate
