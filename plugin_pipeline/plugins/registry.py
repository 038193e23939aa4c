"""
Plugin Registry - In-memory catalog of the plugins available to a pipeline.
"""

import logging
import threading
from typing import Dict, List, Optional

from .base import Plugin


logger = logging.getLogger(__name__)


class PluginRegistry:
    """
    Catalog mapping plugin ids to their runtime implementation.

    The registry is rebuilt on every process start and never persisted.
    It is an ordinary object: construct one per pipeline and pass it in,
    so independent pipelines never share plugins.

    Example:
        registry = PluginRegistry()
        registry.register(UpperCasePlugin())

        plugin = registry.get("upper_case")

        for plugin in registry.all():
            print(f"{plugin.id}: {plugin.description}")
    """

    def __init__(self):
        self._plugins: Dict[str, Plugin] = {}
        self._lock = threading.Lock()

    def register(self, plugin: Plugin) -> None:
        """
        Register a plugin instance.

        Registering an id that already exists replaces the previous
        implementation in place, keeping its position in ``all()``.

        Args:
            plugin: The plugin to register.
        """
        with self._lock:
            if plugin.id in self._plugins:
                logger.warning(
                    f"Plugin {plugin.id} already registered, overwriting previous registration"
                )
            self._plugins[plugin.id] = plugin
        logger.info(f"Registered plugin: {plugin.id} (v{plugin.version})")

    def unregister(self, plugin_id: str) -> bool:
        """
        Unregister a plugin by id.

        Args:
            plugin_id: Plugin id to unregister.

        Returns:
            True if unregistered, False if not found.
        """
        with self._lock:
            if plugin_id in self._plugins:
                del self._plugins[plugin_id]
                logger.info(f"Unregistered plugin: {plugin_id}")
                return True
        return False

    def get(self, plugin_id: str) -> Optional[Plugin]:
        """
        Get a plugin by id.

        Args:
            plugin_id: Plugin id.

        Returns:
            The plugin if registered, None otherwise.
        """
        return self._plugins.get(plugin_id)

    def all(self) -> List[Plugin]:
        """
        Get all registered plugins in registration order.

        Returns:
            List of plugins.
        """
        with self._lock:
            return list(self._plugins.values())

    def ids(self) -> List[str]:
        """Get all registered plugin ids in registration order."""
        with self._lock:
            return list(self._plugins.keys())

    def clear(self) -> None:
        """Clear all registered plugins."""
        with self._lock:
            self._plugins.clear()
        logger.info("Cleared all plugins from registry")

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self._plugins

    def __repr__(self) -> str:
        return f"PluginRegistry(plugins={self.ids()})"
