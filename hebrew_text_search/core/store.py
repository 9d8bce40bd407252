"""Local key-value stores for the persisted index."""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Narrow read/write interface over a local key-value store.

    Values are JSON-serializable structures.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get a value, or None if the key is absent."""

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store a value under a key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""

    @abstractmethod
    def swap(self, source_key: str, target_key: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """
        Atomically move a value to another key, writing extra records in the same step.

        Args:
            source_key: Key holding the new value (removed afterwards)
            target_key: Key the value is moved to (replaced)
            extra: Additional key/value records written atomically with the move
        """

    @abstractmethod
    def keys(self) -> List[str]:
        """All stored keys."""

    def close(self) -> None:
        """Release resources."""


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store; values are round-tripped through JSON like the SQLite store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def swap(self, source_key: str, target_key: str, extra: Optional[Dict[str, Any]] = None) -> None:
        encoded = {key: json.dumps(value, ensure_ascii=False) for key, value in (extra or {}).items()}
        with self._lock:
            if source_key not in self._data:
                raise KeyError(source_key)
            data = dict(self._data)
            data[target_key] = data.pop(source_key)
            data.update(encoded)
            self._data = data

    def keys(self) -> List[str]:
        return list(self._data)


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed store with one row per key."""

    def __init__(self, db_path: str) -> None:
        """
        Open (or create) the store.

        Args:
            db_path: SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL) WITHOUT ROWID"
        )
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else json.loads(row[0])

    def put(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        with self._transaction() as conn:
            conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, raw))

    def delete(self, key: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def swap(self, source_key: str, target_key: str, extra: Optional[Dict[str, Any]] = None) -> None:
        encoded = [(key, json.dumps(value, ensure_ascii=False)) for key, value in (extra or {}).items()]
        with self._transaction() as conn:
            row = conn.execute("SELECT 1 FROM kv WHERE key = ?", (source_key,)).fetchone()
            if row is None:
                raise KeyError(source_key)
            conn.execute("DELETE FROM kv WHERE key = ?", (target_key,))
            conn.execute("UPDATE kv SET key = ? WHERE key = ?", (target_key, source_key))
            conn.executemany("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", encoded)
        logger.debug("Store records swapped", source_key=source_key, target_key=target_key)

    def keys(self) -> List[str]:
        with self._lock:
            return [row[0] for row in self._conn.execute("SELECT key FROM kv ORDER BY key")]

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.warning("Failed to close index store", error=str(e))


def create_store(path: str = "") -> KeyValueStore:
    """Create an SQLite store for a path, or an in-memory store for an empty path."""
    if path:
        return SQLiteKeyValueStore(path)
    return InMemoryKeyValueStore()
