"""
Single long-lived aiosqlite connection for the key-value store.

Pragmas are applied once on open. SQLite has one writer, so write
transactions are serialised with an ``asyncio.Lock`` and begin with
``BEGIN IMMEDIATE``: read-modify-write operations such as ``increment`` hold
the write lock from their first read. Reads share the connection and run
without the lock (WAL mode).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Sequence

import aiosqlite

from bullywatch.util.logger import get_logger

logger = get_logger("db_connection")

DEFAULT_PRAGMAS: Sequence[str] = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA temp_store = MEMORY",
    "PRAGMA busy_timeout = 2000",
)


class ConnectionManager:
    """
    Owns the connection used by ``SqliteKeyValueStore``.

    Args:
        pragmas: Statements run once after connecting.
    """

    def __init__(self, pragmas: Sequence[str] = DEFAULT_PRAGMAS) -> None:
        self._pragmas = tuple(pragmas)
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self.path: Path | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, path: Path) -> None:
        if self._conn is not None:
            logger.warning("[DB] open() called on an open connection (%s), ignoring", self.path)
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        try:
            for pragma in self._pragmas:
                await conn.execute(pragma)
        except aiosqlite.Error:
            await conn.close()
            raise
        self._conn = conn
        self.path = path
        logger.info("[DB] Opened %s", path)

    async def close(self) -> None:
        """Checkpoint the WAL into the main file and close."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except aiosqlite.Error as exc:
            logger.warning("[DB] WAL checkpoint failed on close: %s", exc)
        finally:
            await conn.close()
            logger.info("[DB] Closed %s", self.path)

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("database connection is not open; call open(path) first")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialised write transaction: commit on clean exit, roll back otherwise."""
        conn = self.connection
        async with self._write_lock:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        yield self.connection
