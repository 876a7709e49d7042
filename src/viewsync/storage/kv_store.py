"""Key/value persistence capability and its SQLite backend."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Async get/set storage; ``set(key, None)`` deletes the key."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any | None) -> None: ...


class SqliteKeyValueStore:
    """JSON values in a single SQLite table.

    Calls are local and short, so the async methods run the queries inline.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

    def init_db(self) -> None:
        """Create the table and index (idempotent)."""
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_kv_store_updated ON kv_store(updated_at);
            """
        )
        self._conn.commit()

    async def get(self, key: str) -> Any | None:
        cur = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cur.fetchone()
        return json.loads(row["value"]) if row else None

    async def set(self, key: str, value: Any | None) -> None:
        if value is None:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        else:
            now = datetime.now(timezone.utc).isoformat()
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), now),
            )
        self._conn.commit()

    def keys(self, prefix: str = "") -> list[str]:
        """All keys starting with ``prefix``, sorted."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        cur = self._conn.execute(
            "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (escaped + "%",),
        )
        return [row["key"] for row in cur.fetchall()]

    def get_updated_at(self, key: str) -> str | None:
        cur = self._conn.execute("SELECT updated_at FROM kv_store WHERE key = ?", (key,))
        row = cur.fetchone()
        return row["updated_at"] if row else None

    def count(self) -> int:
        cur = self._conn.execute("SELECT COUNT(*) FROM kv_store")
        return cur.fetchone()[0]

    def close(self) -> None:
        self._conn.close()
