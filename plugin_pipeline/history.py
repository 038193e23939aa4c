"""
Execution History - Bounded FIFO log of plugin execution results.
"""

import threading
from collections import deque
from typing import Deque, Iterable, List, Optional

from .types import ExecutionResult


DEFAULT_HISTORY_LIMIT = 20


class ExecutionHistory:
    """
    Bounded audit trail of executions from both pipeline modes.

    Appending past the limit evicts the oldest entry. Entries are frozen
    ``ExecutionResult`` snapshots and are never modified after insertion.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT):
        if limit < 1:
            raise ValueError(f"History limit must be positive, got {limit}")
        self.limit = limit
        self._entries: Deque[ExecutionResult] = deque(maxlen=limit)
        self._lock = threading.Lock()

    def append(self, result: ExecutionResult) -> None:
        """Append a result, evicting the oldest if the limit is exceeded."""
        with self._lock:
            self._entries.append(result)

    def list(self) -> List[ExecutionResult]:
        """Get all entries, oldest first and most recent last."""
        with self._lock:
            return list(self._entries)

    def latest(self) -> Optional[ExecutionResult]:
        """Get the most recent entry, if any."""
        with self._lock:
            return self._entries[-1] if self._entries else None

    def for_plugin(self, plugin_id: str) -> List[ExecutionResult]:
        """Get the entries produced by a single plugin."""
        return [entry for entry in self.list() if entry.plugin_id == plugin_id]

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def load(self, results: Iterable[ExecutionResult]) -> None:
        """Replace the contents, keeping only the newest ``limit`` results."""
        with self._lock:
            self._entries = deque(results, maxlen=self.limit)

    def to_list(self, limit: Optional[int] = None) -> List[dict]:
        """
        Serialize entries for persistence.

        Args:
            limit: Keep only the most recent ``limit`` entries.
        """
        entries = self.list()
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return [entry.to_dict() for entry in entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self.list())

    def __repr__(self) -> str:
        return f"ExecutionHistory(entries={len(self)}, limit={self.limit})"
