# src/cache/sqlite_store.py — v2
"""SQLite-based cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. One row per entry plus one
row per artifact file; an overwrite replaces both inside one transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from conveyor.cache.base_cache_store import BaseCacheStore
from conveyor.cache.models import CacheEntry, CacheLookupResult

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS cache_artifacts (
    key TEXT NOT NULL REFERENCES cache_entries(key) ON DELETE CASCADE,
    path TEXT NOT NULL,
    data BLOB NOT NULL,
    PRIMARY KEY (key, path)
);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store for a single host with many entries."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)

    async def store(self, key: str, artifacts: Mapping[str, bytes]) -> CacheEntry:
        """Store an entry (upsert), replacing its artifact rows."""
        entry = CacheEntry(key=key, artifacts=dict(artifacts))
        with self._conn:
            self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self._conn.execute(
                "INSERT INTO cache_entries (key, created_at) VALUES (?, ?)",
                (key, entry.created_at.isoformat()),
            )
            self._conn.executemany(
                "INSERT INTO cache_artifacts (key, path, data) VALUES (?, ?, ?)",
                [(key, path, data) for path, data in entry.artifacts.items()],
            )
        return entry

    async def restore(self, key: str) -> CacheLookupResult:
        row = self._conn.execute(
            "SELECT created_at FROM cache_entries WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return CacheLookupResult(key=key)
        cursor = self._conn.execute(
            "SELECT path, data FROM cache_artifacts WHERE key = ?", (key,)
        )
        artifacts = {path: bytes(data) for path, data in cursor.fetchall()}
        return CacheLookupResult(
            key=key,
            entry=CacheEntry(
                key=key, artifacts=artifacts, created_at=datetime.fromisoformat(row[0]),
            ),
        )

    async def delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))

    async def list_keys(self, prefix: str = "") -> list[str]:
        cursor = self._conn.execute("SELECT key FROM cache_entries ORDER BY key")
        return [row[0] for row in cursor.fetchall() if row[0].startswith(prefix)]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
