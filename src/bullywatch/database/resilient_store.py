"""
Degrading wrapper around the configured key-value store.

The first failure of the primary store is logged once as a warning; from
then on every call goes to an in-memory store for the rest of the session.
There are no retries, so a broken backend never stalls message scoring.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from bullywatch.database.kv_store import KeyValueStore, MemoryKeyValueStore
from bullywatch.util.logger import get_logger

logger = get_logger("resilient_store")

T = TypeVar("T")


class ResilientKeyValueStore(KeyValueStore):
    """Route calls to ``primary`` until it fails once, then to ``fallback``.

    Args:
        primary: The configured store, or None when it could not even be opened.
        fallback: In-memory store used after degradation.
    """

    def __init__(self, primary: KeyValueStore | None, fallback: KeyValueStore | None = None) -> None:
        self._primary = primary
        self._fallback = fallback or MemoryKeyValueStore()
        self._degraded = primary is None
        if primary is None:
            logger.warning("[KV] Persistence store unavailable, running memory-only for this session")

    @property
    def degraded(self) -> bool:
        return self._degraded

    def degrade(self, reason: Any) -> None:
        if self._degraded:
            return
        self._degraded = True
        logger.warning("[KV] Persistence store failed (%s), running memory-only for this session", reason)

    async def _call(self, op: Callable[[KeyValueStore], Awaitable[T]]) -> T:
        if not self._degraded and self._primary is not None:
            try:
                return await op(self._primary)
            except Exception as exc:
                self.degrade(exc)
        return await op(self._fallback)

    async def get(self, key: str) -> str | None:
        return await self._call(lambda s: s.get(key))

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        await self._call(lambda s: s.set(key, value, ttl))

    async def increment(self, key: str, amount: int = 1) -> int:
        return await self._call(lambda s: s.increment(key, amount))

    async def expire(self, key: str, ttl: float) -> bool:
        return await self._call(lambda s: s.expire(key, ttl))

    async def ttl(self, key: str) -> float | None:
        return await self._call(lambda s: s.ttl(key))

    async def delete(self, key: str) -> bool:
        return await self._call(lambda s: s.delete(key))

    async def purge_expired(self) -> int:
        return await self._call(lambda s: s.purge_expired())

    async def close(self) -> None:
        if self._primary is not None:
            try:
                await self._primary.close()
            except Exception:
                logger.exception("[KV] Error closing persistence store")
        await self._fallback.close()
