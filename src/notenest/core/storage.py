"""Async key-value byte stores backing the notes store."""

import asyncio
import sqlite3
import time
from pathlib import Path

from loguru import logger

from notenest.core.database.schema import migrate_schema, set_metadata


class SqliteStorage:
    """Byte store kept in a single SQLite table.

    Each call opens its own connection and runs in a worker thread, so the
    event loop never blocks on disk I/O.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            migrate_schema(conn)
        logger.debug("Storage ready: {}", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _get(self, key: str) -> bytes | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return bytes(row[0]) if row else None

    def _set(self, key: str, value: bytes) -> None:
        now_ms = int(time.time() * 1000)
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, now_ms),
            )
            conn.commit()
            set_metadata(conn, "last_write_at", str(now_ms))
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def get(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._set, key, value)
        logger.debug("Wrote {} bytes to {!r}", len(value), key)


class MemoryStorage:
    """In-process byte store. Contents are lost with the process."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self.data: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self.data[key] = value
