"""
Plugin Loader - Registers plugins from explicit lists and packages, and
applies activation settings from YAML/JSON files.
"""

import importlib
import inspect
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Type

import yaml

from .base import FunctionPlugin, Plugin
from .registry import PluginRegistry

if TYPE_CHECKING:
    from ..activation import ActivationStore


logger = logging.getLogger(__name__)


@dataclass
class PluginConfig:
    """
    Activation settings for one plugin, as read from YAML/JSON.

    Example YAML config:
        plugins:
          - id: find_replace
            active: true
            options:
              find: "colour"
              replace: "color"
    """

    id: str
    active: bool = False
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "PluginConfig":
        """Create from dictionary."""
        return cls(
            id=data.get("id", ""),
            active=bool(data.get("active", False)),
            options=dict(data.get("options") or {}),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"id": self.id, "active": self.active, "options": dict(self.options)}

    @classmethod
    def from_data(cls, data: Any) -> List["PluginConfig"]:
        """
        Parse configs from loaded YAML/JSON data.

        Accepts a list of entries, a mapping with a ``plugins`` list, or a
        single entry mapping.
        """
        if not data:
            return []
        if isinstance(data, dict):
            data = data["plugins"] if "plugins" in data else [data]
        if not isinstance(data, list):
            raise ValueError(f"Expected a list of plugin entries, got {type(data).__name__}")

        configs = []
        for item in data:
            if not isinstance(item, dict):
                raise ValueError(f"Plugin entry must be a mapping, got {type(item).__name__}")
            configs.append(cls.from_dict(item))
        return configs

    @classmethod
    def from_yaml(cls, path: str) -> List["PluginConfig"]:
        """Load plugin configs from YAML file."""
        with open(path, 'r') as f:
            return cls.from_data(yaml.safe_load(f))

    @classmethod
    def from_json(cls, path: str) -> List["PluginConfig"]:
        """Load plugin configs from JSON file."""
        with open(path, 'r') as f:
            return cls.from_data(json.load(f))


class PluginValidationError(Exception):
    """Raised when a plugin fails validation."""
    pass


class PluginLoader:
    """
    Registers plugins from a fixed, explicit set of sources.

    Supports:
    - Explicit lists of plugin instances
    - The built-in plugins
    - Importable Python packages exposing ``Plugin`` subclasses
    - Activation settings from YAML/JSON files

    Example:
        registry = PluginRegistry()
        loader = PluginLoader(registry)

        loader.register_builtins()
        loader.load_from_package("my_company.text_plugins")

        store = ActivationStore(registry)
        loader.load_from_config("plugins.yaml", store)
    """

    def __init__(self, registry: PluginRegistry):
        """
        Initialize the plugin loader.

        Args:
            registry: The registry that receives loaded plugins.
        """
        self.registry = registry

    def register_all(self, plugins: Iterable[Plugin]) -> List[str]:
        """
        Register plugin instances in the given order.

        Returns:
            Ids of the registered plugins.
        """
        loaded = []
        for plugin in plugins:
            self._validate_plugin(type(plugin), plugin.id)
            self.registry.register(plugin)
            loaded.append(plugin.id)
        return loaded

    def register_builtins(self) -> List[str]:
        """Register the built-in plugins."""
        from .builtin import builtin_plugins

        return self.register_all(builtin_plugins())

    def load_from_package(self, package_name: str) -> List[str]:
        """
        Register plugins defined in an importable module.

        Every concrete ``Plugin`` subclass exposed by the module is
        instantiated without arguments. Errors are logged, not raised.

        Args:
            package_name: Dotted module name to import.

        Returns:
            Ids of the registered plugins.
        """
        loaded = []
        try:
            module = importlib.import_module(package_name)
        except ImportError as e:
            logger.error(f"Could not import package {package_name}: {e}")
            return loaded

        for name, obj in inspect.getmembers(module, inspect.isclass):
            if not issubclass(obj, Plugin) or obj in (Plugin, FunctionPlugin) or inspect.isabstract(obj):
                continue
            try:
                self._validate_plugin(obj, getattr(obj, "id", ""))
                plugin = obj()
                self.registry.register(plugin)
                loaded.append(plugin.id)
            except PluginValidationError as e:
                logger.warning(f"Plugin {name} failed validation: {e}")
            except Exception as e:
                logger.error(f"Error registering plugin {name}: {e}")

        logger.info(f"Loaded {len(loaded)} plugins from package {package_name}")
        return loaded

    def read_config(self, config_path: str) -> List[PluginConfig]:
        """
        Read plugin activation entries from a YAML/JSON file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the format is unsupported or malformed.
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        if path.suffix in ['.yaml', '.yml']:
            return PluginConfig.from_yaml(str(path))
        if path.suffix == '.json':
            return PluginConfig.from_json(str(path))
        raise ValueError(f"Unsupported config format: {path.suffix}")

    def load_from_config(self, config_path: str, store: "ActivationStore") -> List[str]:
        """
        Apply activation settings from a YAML/JSON file to a store.

        Returns:
            Ids of the entries that were applied.
        """
        configs = self.read_config(config_path)
        applied = self.apply_configs(configs, store)
        logger.info(f"Loaded config for {len(applied)} plugins from {config_path}")
        return applied

    def apply_configs(
        self,
        configs: Iterable[PluginConfig],
        store: "ActivationStore",
    ) -> List[str]:
        """
        Apply activation entries to a store.

        Entries for unregistered ids are still applied; the pipeline
        skips them at execution time.
        """
        applied = []
        for config in configs:
            if not config.id:
                logger.warning("Ignoring plugin config entry without an id")
                continue
            if config.id not in self.registry:
                logger.warning(f"Config references unregistered plugin: {config.id}")
            store.toggle(config.id, config.active)
            if config.options:
                store.set_options(config.id, config.options)
            applied.append(config.id)
        return applied

    def _validate_plugin(self, plugin_class: Type[Plugin], plugin_id: str) -> None:
        """
        Validate that a plugin class meets requirements.

        Raises:
            PluginValidationError: If validation fails.
        """
        if not issubclass(plugin_class, Plugin):
            raise PluginValidationError(f"{plugin_class.__name__} must inherit from Plugin")

        if inspect.isabstract(plugin_class):
            raise PluginValidationError(f"{plugin_class.__name__} is abstract and cannot be instantiated")

        if not inspect.iscoroutinefunction(plugin_class.process):
            raise PluginValidationError(f"{plugin_class.__name__}.process must be async")

        if not plugin_id:
            raise PluginValidationError(f"{plugin_class.__name__} must declare an id")

    def __repr__(self) -> str:
        return f"PluginLoader(registry={self.registry})"
