"""
Batch State Persistence
Image Optimizer - Batch Queue System

Key-value backends plus the queue, progress and failed-conversion stores
built on top of them. Queue and progress are always written together through
write_batch so a crash can't separate a counter update from its queue change.
"""

import copy
import json
import os
import sqlite3
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from config.constants import QUEUE_KEY, PROGRESS_KEY, FAILED_CONVERSIONS_KEY
from config.logging_config import get_logger

from .batch_item import QueueItem, Progress
from .errors import StoreError

logger = get_logger(__name__)


# =========================================
# Key-Value Backends
# =========================================

class KeyValueStore(ABC):
    """Durable get/set/delete of JSON-compatible values"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get value, default if missing"""
        pass

    @abstractmethod
    def write_batch(self, updates: Dict[str, Any], deletions: Iterable[str] = ()) -> None:
        """Apply all updates and deletions as one unit"""
        pass

    def set(self, key: str, value: Any) -> None:
        self.write_batch({key: value})

    def delete(self, key: str) -> None:
        self.write_batch({}, [key])


class MemoryKeyValueStore(KeyValueStore):
    """
    In-process store. Values are deep-copied on the way in and out so callers
    never share mutable state with the store.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def write_batch(self, updates: Dict[str, Any], deletions: Iterable[str] = ()) -> None:
        with self._lock:
            for key, value in updates.items():
                self._data[key] = copy.deepcopy(value)
            for key in deletions:
                self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())


class JsonFileKeyValueStore(KeyValueStore):
    """
    Single JSON document on disk. Every write replaces the file atomically.
    """

    def __init__(self, storage_path: str = "./data/batch_state.json"):
        self.storage_path = Path(storage_path)
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, Any]:
        if not self.storage_path.exists():
            return {}
        try:
            with open(self.storage_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading batch state from {self.storage_path}: {e}")
            raise StoreError(f"Unreadable batch state file: {self.storage_path}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Corrupt batch state file: {self.storage_path}")
        return data

    def _save(self, data: Dict[str, Any]):
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.storage_path.parent),
            prefix=".batch_state-",
            suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.storage_path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Error saving batch state: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def write_batch(self, updates: Dict[str, Any], deletions: Iterable[str] = ()) -> None:
        with self._lock:
            data = self._load()
            data.update(updates)
            for key in deletions:
                data.pop(key, None)
            self._save(data)


class SqliteKeyValueStore(KeyValueStore):
    """
    SQLite-backed store; each write_batch is one transaction.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=30)

    def _init_db(self):
        """Initialize database schema"""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,  -- JSON
                    updated_at REAL NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?",
                    (key,)
                ).fetchone()
            finally:
                conn.close()
        if not row:
            return default
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise StoreError(f"Corrupt value for key {key!r}") from e

    def write_batch(self, updates: Dict[str, Any], deletions: Iterable[str] = ()) -> None:
        now = time.time()
        with self._lock:
            conn = self._connect()
            try:
                # Connection context commits on success, rolls back on error
                with conn:
                    for key, value in updates.items():
                        conn.execute(
                            "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                            (key, json.dumps(value), now)
                        )
                    for key in deletions:
                        conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            except sqlite3.Error as e:
                raise StoreError(f"Error writing batch state: {e}") from e
            finally:
                conn.close()


def create_key_value_store(backend: str, path: Optional[Path] = None) -> KeyValueStore:
    """Build a backend by name: memory, json or sqlite"""
    if backend == "memory":
        return MemoryKeyValueStore()
    if path is None:
        raise ValueError(f"Backend {backend!r} needs a storage path")
    if backend == "json":
        return JsonFileKeyValueStore(str(path))
    if backend == "sqlite":
        return SqliteKeyValueStore(Path(path))
    raise ValueError(f"Unknown store backend: {backend}")


# =========================================
# Batch Stores
# =========================================

class QueueStore:
    """Persisted queue, kept sorted by (priority, created_time)"""

    def __init__(self, kv: KeyValueStore, key: str = QUEUE_KEY):
        self.kv = kv
        self.key = key

    def load(self) -> List[QueueItem]:
        raw = self.kv.get(self.key, [])
        return [QueueItem.from_dict(d) for d in raw or []]

    def encode(self, queue: List[QueueItem]) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in queue]

    def save(self, queue: List[QueueItem]):
        self.kv.set(self.key, self.encode(queue))

    def clear(self):
        self.kv.delete(self.key)

    def size(self) -> int:
        return len(self.kv.get(self.key, []) or [])


class ProgressStore:
    """Persisted Progress record"""

    def __init__(self, kv: KeyValueStore, key: str = PROGRESS_KEY):
        self.kv = kv
        self.key = key

    def load(self) -> Optional[Progress]:
        raw = self.kv.get(self.key)
        if not raw:
            return None
        return Progress.from_dict(raw)

    def save(self, progress: Progress):
        self.kv.set(self.key, progress.to_dict())

    def delete(self):
        self.kv.delete(self.key)


class FailedConversionStore:
    """
    Per-item failure history: {item_id: {timestamp: {"error", "kind"}}}.
    Timestamps are stored as string keys (JSON object keys).
    """

    def __init__(self, kv: KeyValueStore, key: str = FAILED_CONVERSIONS_KEY):
        self.kv = kv
        self.key = key

    def load(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        return self.kv.get(self.key, {}) or {}

    def save(self, records: Dict[str, Dict[str, Dict[str, Any]]]):
        if records:
            self.kv.set(self.key, records)
        else:
            self.kv.delete(self.key)


class BatchStateStore:
    """Queue + progress + failure records sharing one backend"""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        # Serializes read-check-write sequences within this process
        self.lock = threading.RLock()
        self.queue = QueueStore(kv)
        self.progress = ProgressStore(kv)
        self.failures = FailedConversionStore(kv)

    def commit(
        self,
        progress: Progress,
        queue: Optional[List[QueueItem]] = None,
        clear_queue: bool = False,
        failures: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None,
    ):
        """Write progress with the queue (or its removal) in one unit"""
        updates: Dict[str, Any] = {self.progress.key: progress.to_dict()}
        deletions: List[str] = []

        if clear_queue:
            deletions.append(self.queue.key)
        elif queue is not None:
            updates[self.queue.key] = self.queue.encode(queue)

        if failures is not None:
            updates[self.failures.key] = failures

        self.kv.write_batch(updates, deletions)
