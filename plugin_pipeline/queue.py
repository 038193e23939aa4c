"""
Plugin Queue - Caller-managed ordered list of plugin ids for explicit chains.
"""

import threading
from typing import Iterable, List, Optional


class PluginQueue:
    """
    Ordered, mutable sequence of plugin ids.

    The queue is independent of activation flags: a plugin can be queued
    without being active and vice versa. The same id may appear more than
    once.

    Example:
        queue = PluginQueue(["trim_whitespace", "upper_case"])
        queue.add("text_analyzer")
        queue.move(2, 0)
        queue.ids()  # ["text_analyzer", "trim_whitespace", "upper_case"]
    """

    def __init__(self, plugin_ids: Optional[Iterable[str]] = None):
        self._ids: List[str] = list(plugin_ids or [])
        self._lock = threading.Lock()

    def add(self, plugin_id: str) -> None:
        """Append a plugin id to the end of the queue."""
        with self._lock:
            self._ids.append(plugin_id)

    def remove(self, plugin_id: str) -> bool:
        """
        Remove the first occurrence of a plugin id.

        Returns:
            True if removed, False if the id was not queued.
        """
        with self._lock:
            try:
                self._ids.remove(plugin_id)
            except ValueError:
                return False
            return True

    def remove_at(self, index: int) -> str:
        """
        Remove and return the id at a position.

        Raises:
            IndexError: If the index is out of range.
        """
        with self._lock:
            return self._ids.pop(index)

    def move(self, from_index: int, to_index: int) -> None:
        """
        Move an entry to a new position.

        Raises:
            IndexError: If either index is out of range.
        """
        with self._lock:
            size = len(self._ids)
            if not -size <= from_index < size or not -size <= to_index < size:
                raise IndexError(f"Queue index out of range: {from_index} -> {to_index}")
            plugin_id = self._ids.pop(from_index)
            self._ids.insert(to_index % size, plugin_id)

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._ids.clear()

    def ids(self) -> List[str]:
        """Get a snapshot of the queued ids."""
        with self._lock:
            return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self.ids())

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._ids

    def __repr__(self) -> str:
        return f"PluginQueue({self.ids()})"
