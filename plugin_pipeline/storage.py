"""
State storage backends.

Each backend stores one record in the persisted shape:

    {
      "plugins": {"<pluginId>": {"active": bool}},
      "pluginOptions": {"<pluginId>": {"<optionId>": any}},
      "history": [ExecutionResult.to_dict(), ...]
    }
"""

import copy
import json
import logging
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .types import utc_now


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when persisted state cannot be read or has the wrong shape."""
    pass


def validate_state(state: Any) -> Dict[str, Any]:
    """
    Check that a record has the persisted shape.

    Missing sections are filled with empty values.

    Raises:
        StorageError: If a section has the wrong type.
    """
    if not isinstance(state, dict):
        raise StorageError(f"Persisted state must be a mapping, got {type(state).__name__}")

    plugins = state.get("plugins") or {}
    options = state.get("pluginOptions") or {}
    history = state.get("history") or []

    if not isinstance(plugins, dict):
        raise StorageError("'plugins' must be a mapping of plugin id to {active}")
    if not isinstance(options, dict):
        raise StorageError("'pluginOptions' must be a mapping of plugin id to options")
    if not isinstance(history, list):
        raise StorageError("'history' must be a list of execution results")

    for plugin_id, flags in plugins.items():
        if flags is not None and not isinstance(flags, dict):
            raise StorageError(f"'plugins' entry for {plugin_id!r} must be a mapping")
    for plugin_id, values in options.items():
        if values is not None and not isinstance(values, dict):
            raise StorageError(f"'pluginOptions' entry for {plugin_id!r} must be a mapping")
    for index, entry in enumerate(history):
        if not isinstance(entry, dict):
            raise StorageError(
                f"'history' entry {index} must be a mapping, got {type(entry).__name__}"
            )

    return {"plugins": plugins, "pluginOptions": options, "history": history}


class StateStorage(ABC):
    """Abstract base class for state storage backends."""

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load the stored record.

        Returns:
            The record, or None if nothing has been saved yet.
        """
        pass

    @abstractmethod
    def save(self, state: Dict[str, Any]) -> None:
        """
        Store a record, replacing any previous one.

        Args:
            state: Record in the persisted shape.
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored record."""
        pass


class InMemoryStateStorage(StateStorage):
    """Keeps the record in memory. Used by tests and short-lived processes."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._state = copy.deepcopy(initial) if initial is not None else None

    def load(self) -> Optional[Dict[str, Any]]:
        if self._state is None:
            return None
        return validate_state(copy.deepcopy(self._state))

    def save(self, state: Dict[str, Any]) -> None:
        self._state = copy.deepcopy(validate_state(state))

    def clear(self) -> None:
        self._state = None


class JSONFileStateStorage(StateStorage):
    """
    Stores the record as a JSON file.

    Writes go to a temporary file in the same directory that then replaces
    the target, so a crash never leaves a half-written file behind.
    """

    DEFAULT_PATH = ".plugin_pipeline/state.json"

    def __init__(self, path: Optional[str] = None):
        if path is None:
            path = str(Path.home() / self.DEFAULT_PATH)
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt state file {self.path}: {e}") from e
        return validate_state(data)

    def save(self, state: Dict[str, Any]) -> None:
        data = validate_state(state)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Saved pipeline state to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class SQLiteStateStorage(StateStorage):
    """
    Stores the record in a SQLite key-value table.

    Thread-safe with one connection per thread.
    """

    DEFAULT_DB_PATH = ".plugin_pipeline/state.db"
    STATE_KEY = "pipeline_state"

    def __init__(self, db_path: Optional[str] = None, key: str = STATE_KEY):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to the database file. If None, uses default.
            key: Row key, allowing several pipelines to share a database.
        """
        if db_path is None:
            db_path = str(Path.home() / self.DEFAULT_DB_PATH)

        self.db_path = db_path
        self.key = key
        self._local = threading.local()

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def _conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, 'conn') or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
        return self._local.conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database transactions."""
        cursor = self._conn.cursor()
        try:
            yield cursor
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            cursor.close()

    def _ensure_schema(self) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS pipeline_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def load(self) -> Optional[Dict[str, Any]]:
        with self._transaction() as cursor:
            cursor.execute("SELECT value FROM pipeline_state WHERE key = ?", (self.key,))
            row = cursor.fetchone()

        if row is None:
            return None
        try:
            data = json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt state row '{self.key}' in {self.db_path}: {e}") from e
        return validate_state(data)

    def save(self, state: Dict[str, Any]) -> None:
        value = json.dumps(validate_state(state), default=str)
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO pipeline_state (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (self.key, value, utc_now().isoformat()),
            )

    def clear(self) -> None:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM pipeline_state WHERE key = ?", (self.key,))

    def close(self) -> None:
        """Close the current thread's connection."""
        if getattr(self._local, 'conn', None) is not None:
            self._local.conn.close()
            self._local.conn = None


def create_storage(backend: str, path: Optional[str] = None) -> StateStorage:
    """
    Create a storage backend by name.

    Args:
        backend: "memory", "json" or "sqlite".
        path: File path for the file-based backends.

    Raises:
        ValueError: If the backend name is unknown.
    """
    backend = backend.lower()
    if backend == "memory":
        return InMemoryStateStorage()
    if backend == "json":
        return JSONFileStateStorage(path)
    if backend == "sqlite":
        return SQLiteStateStorage(path)
    raise ValueError(f"Unknown storage backend: {backend}. Available: memory, json, sqlite")
