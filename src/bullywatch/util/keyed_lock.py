"""Per-key asyncio locks.

Serialises updates to a single logical key (a group's conversation window or
a sender's history) while leaving different keys fully concurrent. Locks are
reference counted and dropped once no task holds or waits on them, so the
registry stays bounded by the number of keys in flight.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple


class KeyedLockRegistry:
    """Registry handing out one ``asyncio.Lock`` per key."""

    def __init__(self, name: str = "locks") -> None:
        self._name = name
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _acquire_ref(self, key: str) -> asyncio.Lock:
        lock, refs = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, refs + 1)
        return lock

    def _release_ref(self, key: str) -> None:
        lock, refs = self._locks[key]
        if refs <= 1:
            del self._locks[key]
        else:
            self._locks[key] = (lock, refs - 1)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Logical key, e.g. ``"group:123"``.
        """
        lock = self._acquire_ref(key)
        try:
            async with lock:
                yield
        finally:
            self._release_ref(key)

    def is_locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return bool(entry and entry[0].locked())
