# src/storage/sqlite_store.py — v1
"""SQLite-based blob store (STORAGE_BACKEND=sqlite).

Uses stdlib sqlite3 — no external dependency.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from storyloom.storage.base_store import BaseBlobStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS blobs (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class SqliteBlobStore(BaseBlobStore):
    """SQLite-backed store, one row per key."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, key: str) -> str | None:
        cursor = self._conn.execute("SELECT data FROM blobs WHERE key = ?", (key,))
        row = cursor.fetchone()
        return None if row is None else row[0]

    async def put(self, key: str, value: str) -> None:
        """Store a blob (upsert)."""
        self._conn.execute(
            """INSERT OR REPLACE INTO blobs (key, data, updated_at)
               VALUES (?, ?, CURRENT_TIMESTAMP)""",
            (key, value),
        )
        self._conn.commit()

    async def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
        self._conn.commit()

    async def list_keys(self, prefix: str = "") -> list[str]:
        # substr comparison avoids LIKE wildcards inside user ids
        cursor = self._conn.execute(
            "SELECT key FROM blobs WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        )
        return [row[0] for row in cursor.fetchall()]

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
