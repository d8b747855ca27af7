"""
Key-value persistence boundary.

The pipeline persists violation history, whitelist entries, feedback stats,
ensemble statistics and lexicon weights through this small interface:
get / set / increment / expire / ttl / delete, with optional per-key TTL.
Values are strings; ``get_json``/``set_json`` wrap JSON encoding.

``MemoryKeyValueStore`` is the in-process implementation used for tests, for
``storage.backend: memory`` and as the fallback when the configured store is
unavailable.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Tuple

from bullywatch.util.logger import get_logger

logger = get_logger("kv_store")


class KeyValueStore(ABC):
    """Abstract async key-value store with TTL support."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value of ``key`` or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, optionally expiring after ``ttl`` seconds."""

    @abstractmethod
    async def increment(self, key: str, amount: int = 1) -> int:
        """Add ``amount`` to the integer at ``key`` (missing counts as 0) and return it."""

    @abstractmethod
    async def expire(self, key: str, ttl: float) -> bool:
        """Set a TTL on an existing key. Returns False when the key does not exist."""

    @abstractmethod
    async def ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, or None if it has no expiry or does not exist."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True when something was removed."""

    async def purge_expired(self) -> int:
        """Remove expired keys eagerly. Returns the number removed."""
        return 0

    async def close(self) -> None:
        return None

    async def get_json(self, key: str, default: Any = None) -> Any:
        raw = await self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("[KV] Discarding undecodable JSON at %s", key)
            return default

    async def set_json(self, key: str, value: Any, ttl: float | None = None) -> None:
        await self.set(key, json.dumps(value, ensure_ascii=False), ttl)


class MemoryKeyValueStore(KeyValueStore):
    """
    In-process TTL store.

    Entries carry an absolute expiry timestamp and are dropped lazily on
    access, or eagerly by :meth:`purge_expired`.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._data: Dict[str, Tuple[str, float | None]] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._data)

    def _live(self, key: str) -> Tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            logger.debug("[KV] Expired key: %s", key)
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (str(value), expires_at)

    async def increment(self, key: str, amount: int = 1) -> int:
        entry = self._live(key)
        current, expires_at = (int(entry[0]), entry[1]) if entry else (0, None)
        new_value = current + amount
        self._data[key] = (str(new_value), expires_at)
        return new_value

    async def expire(self, key: str, ttl: float) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self._clock() + ttl)
        return True

    async def ttl(self, key: str) -> float | None:
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return max(0.0, entry[1] - self._clock())

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._data.items() if exp is not None and now >= exp]
        for key in expired:
            del self._data[key]
        return len(expired)
