"""Tests for the plugin queue."""

import pytest

from plugin_pipeline.queue import PluginQueue


class TestPluginQueue:
    """Tests for PluginQueue."""

    def test_add_and_ids(self):
        """Test appending ids."""
        queue = PluginQueue()
        queue.add("a")
        queue.add("b")

        assert queue.ids() == ["a", "b"]
        assert len(queue) == 2
        assert "a" in queue

    def test_duplicates_allowed(self):
        """Test the same id can be queued twice."""
        queue = PluginQueue(["a", "a"])

        assert queue.ids() == ["a", "a"]

    def test_remove_first_occurrence(self):
        """Test removal by id."""
        queue = PluginQueue(["a", "b", "a"])

        assert queue.remove("a") is True
        assert queue.ids() == ["b", "a"]
        assert queue.remove("missing") is False

    def test_remove_at(self):
        """Test removal by position."""
        queue = PluginQueue(["a", "b", "c"])

        assert queue.remove_at(1) == "b"
        assert queue.ids() == ["a", "c"]
        with pytest.raises(IndexError):
            queue.remove_at(5)

    def test_move(self):
        """Test reordering entries."""
        queue = PluginQueue(["a", "b", "c"])

        queue.move(2, 0)

        assert queue.ids() == ["c", "a", "b"]

    def test_move_out_of_range(self):
        """Test moving with a bad index."""
        queue = PluginQueue(["a"])

        with pytest.raises(IndexError):
            queue.move(0, 3)

    def test_ids_is_snapshot(self):
        """Test mutating the returned list leaves the queue alone."""
        queue = PluginQueue(["a"])

        queue.ids().append("b")

        assert queue.ids() == ["a"]

    def test_clear(self):
        """Test clearing the queue."""
        queue = PluginQueue(["a", "b"])

        queue.clear()

        assert len(queue) == 0
