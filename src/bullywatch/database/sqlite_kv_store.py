"""aiosqlite-backed implementation of the key-value persistence boundary."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

from bullywatch.database.db_connection import ConnectionManager
from bullywatch.database.db_schema import SchemaManager
from bullywatch.database.kv_store import KeyValueStore
from bullywatch.util.logger import get_logger

logger = get_logger("sqlite_kv_store")


class SqliteKeyValueStore(KeyValueStore):
    """
    Key-value store persisted in a single SQLite table.

    Expired rows are ignored on read and removed by :meth:`purge_expired`.
    Read-modify-write operations (``increment``, ``expire``) run inside one
    serialised transaction.
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time) -> None:
        self._path = path
        self._clock = clock
        self._db = ConnectionManager()

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        await self._db.open(self._path)
        await SchemaManager.initialize_schema(self._db.connection)

    async def close(self) -> None:
        await self._db.close()

    def _is_live(self, expires_at: float | None) -> bool:
        return expires_at is None or self._clock() < expires_at

    async def get(self, key: str) -> str | None:
        async with self._db.read() as conn:
            cursor = await conn.execute("SELECT value, expires_at FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None or not self._is_live(row["expires_at"]):
            return None
        return row["value"]

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO kv_store (key, value, expires_at, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, str(value), expires_at),
            )

    async def increment(self, key: str, amount: int = 1) -> int:
        async with self._db.transaction() as conn:
            cursor = await conn.execute("SELECT value, expires_at FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
            if row is not None and self._is_live(row["expires_at"]):
                current, expires_at = int(row["value"]), row["expires_at"]
            else:
                current, expires_at = 0, None
            new_value = current + amount
            await conn.execute(
                """
                INSERT INTO kv_store (key, value, expires_at, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, str(new_value), expires_at),
            )
        return new_value

    async def expire(self, key: str, ttl: float) -> bool:
        now = self._clock()
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE kv_store SET expires_at = ? WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (now + ttl, key, now),
            )
            return cursor.rowcount > 0

    async def ttl(self, key: str) -> float | None:
        async with self._db.read() as conn:
            cursor = await conn.execute("SELECT expires_at FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None or row["expires_at"] is None or not self._is_live(row["expires_at"]):
            return None
        return max(0.0, row["expires_at"] - self._clock())

    async def delete(self, key: str) -> bool:
        async with self._db.transaction() as conn:
            cursor = await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return cursor.rowcount > 0

    async def purge_expired(self) -> int:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM kv_store WHERE expires_at IS NOT NULL AND expires_at <= ?", (self._clock(),)
            )
            removed = cursor.rowcount
        if removed:
            logger.info("[KV SQLITE] Purged %d expired keys", removed)
        return removed
