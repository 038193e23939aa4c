"""
Activation Store - Tracks which plugins are active and how they are configured.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from .plugins.registry import PluginRegistry
from .types import ExecutionResult, utc_now


logger = logging.getLogger(__name__)


@dataclass
class ActivationState:
    """
    Activation and configuration state for a single plugin id.

    Only ``active`` and ``options`` survive a restart; the last result
    slots are transient.
    """

    active: bool = False
    options: Dict[str, Any] = field(default_factory=dict)
    last_result: Optional[ExecutionResult] = None
    last_executed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "active": self.active,
            "options": dict(self.options),
            "lastResult": self.last_result.to_dict() if self.last_result else None,
            "lastExecutedAt": self.last_executed_at.isoformat() if self.last_executed_at else None,
        }


def _drop_unset(values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Remove keys whose value is None so defaults show through."""
    if not values:
        return {}
    return {key: value for key, value in values.items() if value is not None}


class ActivationStore:
    """
    Authoritative source of plugin activation flags and options.

    Entries are created lazily on the first toggle or configuration and
    are never removed. Ids do not have to be registered to be toggled;
    the pipeline skips unregistered ids when it runs.

    Example:
        store = ActivationStore(registry)
        store.toggle("upper_case", True)
        store.set_options("find_replace", {"find": "foo", "replace": "bar"})

        store.list_active()                    # ["upper_case"]
        store.resolve_options("find_replace")  # defaults + stored options
    """

    def __init__(self, registry: PluginRegistry):
        """
        Initialize the store.

        Args:
            registry: Registry used for option defaults and ordering.
        """
        self.registry = registry
        self._states: Dict[str, ActivationState] = {}
        self._lock = threading.RLock()

    def _entry(self, plugin_id: str) -> ActivationState:
        state = self._states.get(plugin_id)
        if state is None:
            state = ActivationState()
            self._states[plugin_id] = state
        return state

    def _defaults(self, plugin_id: str) -> Dict[str, Any]:
        plugin = self.registry.get(plugin_id)
        return plugin.default_options() if plugin else {}

    def toggle(self, plugin_id: str, active: bool) -> None:
        """
        Set the active flag for a plugin.

        Args:
            plugin_id: Plugin id, registered or not.
            active: New flag value.
        """
        with self._lock:
            self._entry(plugin_id).active = bool(active)
        logger.debug(f"Plugin {plugin_id} {'activated' if active else 'deactivated'}")

    def set_options(self, plugin_id: str, options: Dict[str, Any]) -> None:
        """
        Replace the stored options for a plugin.

        This is a full replace. Callers wanting merge semantics pass
        ``{**store.get_state(id).options, **changes}``.
        """
        with self._lock:
            self._entry(plugin_id).options = dict(options or {})

    def is_active(self, plugin_id: str) -> bool:
        """Check if a plugin is flagged active."""
        with self._lock:
            state = self._states.get(plugin_id)
            return bool(state and state.active)

    def get_state(self, plugin_id: str) -> Optional[ActivationState]:
        """
        Get a copy of the state for a plugin.

        Returns:
            ActivationState copy, or None if the id was never touched.
        """
        with self._lock:
            state = self._states.get(plugin_id)
            if state is None:
                return None
            return replace(state, options=dict(state.options))

    def list_active(self) -> List[str]:
        """
        Get the ids of active plugins in registry registration order.

        Active ids that are not registered are omitted.
        """
        with self._lock:
            return [
                plugin_id for plugin_id in self.registry.ids()
                if self._states.get(plugin_id) is not None and self._states[plugin_id].active
            ]

    def resolve_options(
        self,
        plugin_id: str,
        override: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Resolve the options to pass to a plugin.

        Precedence (highest first): ``override``, stored options, schema
        defaults. None values count as unset.

        Args:
            plugin_id: Plugin id.
            override: Per-call options.

        Returns:
            A fresh dictionary containing every schema key.
        """
        with self._lock:
            state = self._states.get(plugin_id)
            stored = state.options if state else {}
            resolved = self._defaults(plugin_id)
            resolved.update(_drop_unset(stored))
        resolved.update(_drop_unset(override))
        return resolved

    def record_result(self, plugin_id: str, result: ExecutionResult) -> None:
        """Store the most recent execution result for a plugin."""
        with self._lock:
            state = self._entry(plugin_id)
            state.last_result = result
            state.last_executed_at = result.timestamp or utc_now()

    def reset(self) -> None:
        """Deactivate every plugin and restore every entry's default options."""
        with self._lock:
            for plugin_id, state in self._states.items():
                state.active = False
                state.options = self._defaults(plugin_id)
        logger.info("Reset all plugin activation state")

    def known_ids(self) -> List[str]:
        """Get every id with a state entry."""
        with self._lock:
            return list(self._states.keys())

    def load(self, persisted: Dict[str, Any]) -> List[str]:
        """
        Reconcile persisted activation data with the live registry.

        Ids missing from the registry are dropped. Registered ids get their
        schema defaults filled in under any persisted options. Existing
        entries are replaced.

        Args:
            persisted: Mapping with ``plugins`` and ``pluginOptions`` keys.

        Returns:
            The ids that were dropped.
        """
        flags = persisted.get("plugins") or {}
        options = persisted.get("pluginOptions") or {}
        dropped = []

        with self._lock:
            self._states = {}
            for plugin_id in list(dict.fromkeys(list(flags) + list(options))):
                if plugin_id not in self.registry:
                    dropped.append(plugin_id)
                    continue
                merged = self._defaults(plugin_id)
                merged.update(options.get(plugin_id) or {})
                self._states[plugin_id] = ActivationState(
                    active=bool((flags.get(plugin_id) or {}).get("active", False)),
                    options=merged,
                )

        if dropped:
            logger.info(f"Dropped persisted state for unregistered plugins: {dropped}")
        return dropped

    def to_persisted(self) -> Dict[str, Any]:
        """Export the durable subset in the persisted shape."""
        with self._lock:
            return {
                "plugins": {
                    plugin_id: {"active": state.active}
                    for plugin_id, state in self._states.items()
                },
                "pluginOptions": {
                    plugin_id: dict(state.options)
                    for plugin_id, state in self._states.items()
                },
            }

    def __repr__(self) -> str:
        return f"ActivationStore(active={self.list_active()})"
