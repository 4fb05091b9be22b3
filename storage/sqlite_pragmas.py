"""
Connection settings for the issue database.

Label rows cascade from their issue, so foreign keys must be on for every
connection. File databases also get WAL so `run_sync.py stats` can read
while a sync is writing.

Usage:
    from storage.sqlite_pragmas import apply_sqlite_pragmas

    db = await aiosqlite.connect(path)
    await apply_sqlite_pragmas(db, wal=path != ":memory:")
"""

import logging
from typing import Any, Optional

import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000


async def apply_sqlite_pragmas(
    conn: aiosqlite.Connection,
    wal: bool = True,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> None:
    """
    Configure a fresh connection.

    Args:
        conn: aiosqlite connection
        wal: Switch to WAL journaling (not supported for in-memory databases)
        busy_timeout_ms: How long a writer waits on a locked database

    Raises:
        RuntimeError: SQLite refused to enable foreign keys
    """
    await conn.execute("PRAGMA foreign_keys = ON")
    if await read_pragma(conn, "foreign_keys") != 1:
        raise RuntimeError("SQLite build does not support foreign keys")

    if wal:
        mode = await read_pragma(conn, "journal_mode = WAL")
        if str(mode).lower() != "wal":
            logger.warning(f"WAL not enabled; journal mode is {mode}")

    if busy_timeout_ms > 0:
        await conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")

    logger.debug(f"SQLite pragmas applied (wal={wal}, busy_timeout={busy_timeout_ms}ms)")


async def read_pragma(conn: aiosqlite.Connection, pragma: str) -> Optional[Any]:
    """Run a PRAGMA statement and return the first column of its first row."""
    cursor = await conn.execute(f"PRAGMA {pragma}")
    row = await cursor.fetchone()
    return row[0] if row else None
