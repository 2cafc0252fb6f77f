"""Per-owner write serialization.

Every document-list write is a read-modify-replace of the whole list, so two
writers for the same owner must not interleave. ``OwnerLocks`` hands out one
asyncio.Lock per owner; owners never share a lock. Locks are dropped as soon
as no task holds or waits on them.

This only serializes writers inside one process. Writers in other processes
are caught by the version check in UserRepository.replace_documents.

Example:
    locks = OwnerLocks()
    async with locks.hold(user_id):
        aggregate = await repo.get_aggregate(user_id)
        ...
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class OwnerLocks:
    """Registry of per-owner asyncio locks."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, owner: str) -> AsyncIterator[None]:
        lock = self._locks.get(owner)
        if lock is None:
            lock = self._locks[owner] = asyncio.Lock()
        self._users[owner] = self._users.get(owner, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[owner] -= 1
            if self._users[owner] == 0:
                del self._users[owner]
                del self._locks[owner]

    def is_locked(self, owner: str) -> bool:
        lock = self._locks.get(owner)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
