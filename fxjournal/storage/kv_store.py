"""
Local Key-Value Storage — durable string store for journal bookkeeping
======================================================================

Holds the schema version tag, migration completion stamps and migration
backups. Values are strings (JSON documents for backups).

InMemoryKeyValueStore  — dict-backed, for tests and ephemeral sessions
SqliteKeyValueStore    — single-table SQLite file, thread-local connections

Both enforce an optional byte quota (key + value lengths) and raise
StorageQuotaError when a write would exceed it.
"""

from __future__ import annotations
import os
import sqlite3
import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

from fxjournal.utils.config import get_settings
from fxjournal.utils.exceptions import StorageError, StorageQuotaError
from fxjournal.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    quota_bytes: Optional[int]

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...

    def __len__(self) -> int: ...


def _item_size(key: str, value: str) -> int:
    return len(key) + len(value)


class InMemoryKeyValueStore:
    """Dict-backed store. Not durable."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._items: Dict[str, str] = {}

    def _used_bytes(self, excluding: str = "") -> int:
        return sum(_item_size(k, v) for k, v in self._items.items() if k != excluding)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value must be str, got {type(value).__name__}", key)
        if self.quota_bytes is not None:
            required = self._used_bytes(excluding=key) + _item_size(key, value)
            if required > self.quota_bytes:
                raise StorageQuotaError(key, required, self.quota_bytes)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class SqliteKeyValueStore:
    """
    SQLite-backed store.
    Thread-safe via per-thread connections; WAL journal for concurrent readers.
    """

    def __init__(self, db_path: Optional[str] = None,
                 quota_bytes: Optional[int] = None):
        settings = get_settings()
        db_path = db_path or settings.storage_db_path
        self._db_path = db_path
        self.quota_bytes = quota_bytes if quota_bytes is not None else settings.storage_quota_bytes
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._local = threading.local()
        self._init_db()
        logger.info("kv_store_initialized", db_path=db_path)

    def _get_conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self._db_path, timeout=10)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    def _init_db(self):
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_items (
                key         TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                size        INTEGER DEFAULT 0,
                updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
        """)
        conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        try:
            row = self._get_conn().execute(
                "SELECT value FROM kv_items WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Read failed: {e}", key) from e
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value must be str, got {type(value).__name__}", key)
        size = _item_size(key, value)
        try:
            conn = self._get_conn()
            if self.quota_bytes is not None:
                row = conn.execute(
                    "SELECT COALESCE(SUM(size), 0) AS used FROM kv_items WHERE key != ?",
                    (key,)).fetchone()
                required = row["used"] + size
                if required > self.quota_bytes:
                    raise StorageQuotaError(key, required, self.quota_bytes)
            conn.execute("""
                INSERT OR REPLACE INTO kv_items (key, value, size, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            """, (key, value, size))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Write failed: {e}", key) from e

    def remove_item(self, key: str) -> None:
        try:
            conn = self._get_conn()
            conn.execute("DELETE FROM kv_items WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Delete failed: {e}", key) from e

    def keys(self) -> List[str]:
        try:
            rows = self._get_conn().execute("SELECT key FROM kv_items ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Key listing failed: {e}") from e
        return [r["key"] for r in rows]

    def clear(self) -> None:
        try:
            conn = self._get_conn()
            conn.execute("DELETE FROM kv_items")
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Clear failed: {e}") from e

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def __len__(self) -> int:
        try:
            row = self._get_conn().execute("SELECT COUNT(*) AS cnt FROM kv_items").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Count failed: {e}") from e
        return row["cnt"] if row else 0
