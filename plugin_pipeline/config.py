"""
Configuration Module - Load and manage pipeline configuration.

This module provides support for loading configuration from:
- YAML configuration files (.plugin-pipeline.yml)
- Environment variables
- Programmatic configuration

Configuration precedence (highest to lowest):
1. Programmatic overrides (keyword arguments to ``load_config``)
2. Environment variables
3. Configuration file
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .history import DEFAULT_HISTORY_LIMIT
from .pipeline import DEFAULT_PLUGIN_TIMEOUT
from .plugins.loader import PluginConfig


logger = logging.getLogger(__name__)


# Default configuration file names (in order of precedence)
CONFIG_FILE_NAMES = [
    ".plugin-pipeline.yml",
    ".plugin-pipeline.yaml",
    "plugin-pipeline.yml",
    "plugin-pipeline.yaml",
]

ENV_PREFIX = "PLUGIN_PIPELINE_"


class ConfigError(Exception):
    """Raised when a configuration file cannot be used."""
    pass


@dataclass
class StorageConfig:
    """Where the durable pipeline state lives."""

    backend: str = "json"  # "memory", "json" or "sqlite"
    path: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging output settings."""

    level: str = "INFO"
    json_output: bool = False


@dataclass
class PipelineConfig:
    """
    Complete configuration for the plugin pipeline.

    Example YAML configuration:
        ```yaml
        pipeline:
          history_limit: 20
          persist_history_limit: 20
          plugin_timeout: 30

        storage:
          backend: "sqlite"
          path: "~/.plugin_pipeline/state.db"

        logging:
          level: "INFO"
          json: false

        plugins:
          - id: trim_whitespace
            active: true
          - id: find_replace
            active: true
            options:
              find: "colour"
              replace: "color"
        ```
    """

    history_limit: int = DEFAULT_HISTORY_LIMIT
    persist_history_limit: int = DEFAULT_HISTORY_LIMIT
    plugin_timeout: Optional[float] = DEFAULT_PLUGIN_TIMEOUT

    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Initial activation entries
    plugins: List[PluginConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Create configuration from dictionary."""
        pipeline_data = data.get("pipeline") or {}
        storage_data = data.get("storage") or {}
        logging_data = data.get("logging") or {}

        try:
            history_limit = int(pipeline_data.get("history_limit", DEFAULT_HISTORY_LIMIT))
            persist_limit = int(pipeline_data.get("persist_history_limit", history_limit))
            timeout = _parse_timeout(pipeline_data.get("plugin_timeout", DEFAULT_PLUGIN_TIMEOUT))
            plugins = PluginConfig.from_data(data.get("plugins") or [])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        if history_limit < 1:
            raise ConfigError(f"history_limit must be positive, got {history_limit}")

        path = storage_data.get("path")
        return cls(
            history_limit=history_limit,
            persist_history_limit=persist_limit,
            plugin_timeout=timeout,
            storage=StorageConfig(
                backend=str(storage_data.get("backend", "json")),
                path=os.path.expanduser(path) if path else None,
            ),
            logging=LoggingConfig(
                level=str(logging_data.get("level", "INFO")).upper(),
                json_output=bool(logging_data.get("json", False)),
            ),
            plugins=plugins,
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "pipeline": {
                "history_limit": self.history_limit,
                "persist_history_limit": self.persist_history_limit,
                "plugin_timeout": self.plugin_timeout,
            },
            "storage": {
                "backend": self.storage.backend,
                "path": self.storage.path,
            },
            "logging": {
                "level": self.logging.level,
                "json": self.logging.json_output,
            },
            "plugins": [plugin.to_dict() for plugin in self.plugins],
        }


def _parse_timeout(value: Any) -> Optional[float]:
    """Parse a timeout; None, "none" and non-positive values disable it."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in ("", "none", "off"):
        return None
    timeout = float(value)
    return timeout if timeout > 0 else None


def find_config_file(start_path: Optional[str] = None) -> Optional[Path]:
    """
    Find the configuration file starting from the given path.

    Searches in the following order:
    1. The specified start_path directory
    2. Current working directory
    3. Parent directories up to the root
    4. User home directory

    Returns:
        Path to configuration file if found, None otherwise.
    """
    search_dirs = []

    if start_path:
        search_dirs.append(Path(start_path))

    search_dirs.append(Path.cwd())

    current = Path.cwd()
    while current.parent != current:
        current = current.parent
        search_dirs.append(current)

    search_dirs.append(Path.home())

    for directory in search_dirs:
        for config_name in CONFIG_FILE_NAMES:
            config_path = directory / config_name
            if config_path.exists() and config_path.is_file():
                logger.debug(f"Found config file: {config_path}")
                return config_path

    return None


def load_yaml_file(file_path: Path) -> dict:
    """
    Load a YAML configuration file.

    Raises:
        ConfigError: If the file cannot be read or is not a mapping.
    """
    try:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading config file {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {file_path} must contain a mapping")
    return data


def load_config_from_env() -> dict:
    """
    Load configuration from environment variables.

    Supported environment variables:
    - PLUGIN_PIPELINE_HISTORY_LIMIT: History size
    - PLUGIN_PIPELINE_PERSIST_HISTORY_LIMIT: History entries kept when saving
    - PLUGIN_PIPELINE_PLUGIN_TIMEOUT: Seconds per plugin call ("none" disables)
    - PLUGIN_PIPELINE_STORAGE: Storage backend name
    - PLUGIN_PIPELINE_STATE_PATH: Storage file path
    - PLUGIN_PIPELINE_LOG_LEVEL: Log level

    Returns:
        Dictionary with configuration from environment.
    """
    config: dict = {"pipeline": {}, "storage": {}, "logging": {}}

    for env_name, key in [
        ("HISTORY_LIMIT", "history_limit"),
        ("PERSIST_HISTORY_LIMIT", "persist_history_limit"),
    ]:
        value = os.environ.get(ENV_PREFIX + env_name)
        if value:
            try:
                config["pipeline"][key] = int(value)
            except ValueError:
                logger.warning(f"Ignoring non-integer {ENV_PREFIX + env_name}={value!r}")

    if os.environ.get(ENV_PREFIX + "PLUGIN_TIMEOUT"):
        config["pipeline"]["plugin_timeout"] = os.environ[ENV_PREFIX + "PLUGIN_TIMEOUT"]

    if os.environ.get(ENV_PREFIX + "STORAGE"):
        config["storage"]["backend"] = os.environ[ENV_PREFIX + "STORAGE"]

    if os.environ.get(ENV_PREFIX + "STATE_PATH"):
        config["storage"]["path"] = os.environ[ENV_PREFIX + "STATE_PATH"]

    if os.environ.get(ENV_PREFIX + "LOG_LEVEL"):
        config["logging"]["level"] = os.environ[ENV_PREFIX + "LOG_LEVEL"]

    return config


def load_config(
    config_path: Optional[str] = None,
    search_path: Optional[str] = None,
    **overrides: Any,
) -> PipelineConfig:
    """
    Load configuration from all sources.

    Args:
        config_path: Optional explicit path to config file. Must exist.
        search_path: Optional directory to start searching for a config
            file when ``config_path`` is not given.
        **overrides: Configuration overrides. Pipeline keys
            (``history_limit``, ``persist_history_limit``,
            ``plugin_timeout``) are recognised directly.

    Returns:
        Merged PipelineConfig.

    Raises:
        ConfigError: If the explicit config file is missing or invalid.
    """
    merged_config: dict = {}

    if config_path:
        file_path = Path(config_path)
        if not file_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        merged_config = _deep_merge(merged_config, load_yaml_file(file_path))
    else:
        config_file = find_config_file(search_path)
        if config_file:
            try:
                merged_config = _deep_merge(merged_config, load_yaml_file(config_file))
            except ConfigError as e:
                logger.warning(f"Ignoring discovered config file: {e}")

    merged_config = _deep_merge(merged_config, load_config_from_env())

    if overrides:
        override_config: dict = {"pipeline": {}}
        for key, value in overrides.items():
            if key in ["history_limit", "persist_history_limit", "plugin_timeout"]:
                override_config["pipeline"][key] = value
            else:
                override_config[key] = value
        merged_config = _deep_merge(merged_config, override_config)

    return PipelineConfig.from_dict(merged_config)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    None values in ``override`` never replace existing values.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        elif value is not None:
            result[key] = value

    return result


def create_default_config_file(path: Optional[str] = None) -> Path:
    """
    Create a default configuration file.

    Returns:
        Path to the created config file.
    """
    config_path = Path(path) if path else Path.cwd() / ".plugin-pipeline.yml"

    default_content = """# Plugin Pipeline Configuration

pipeline:
  # Execution results kept in memory
  history_limit: 20
  # Execution results written with the saved state
  persist_history_limit: 20
  # Seconds allowed per plugin call ("none" disables)
  plugin_timeout: 300

storage:
  # memory, json or sqlite
  backend: "json"
  # path: "~/.plugin_pipeline/state.json"

logging:
  level: "INFO"
  json: false

# Plugins active on first start
plugins:
  - id: trim_whitespace
    active: true
"""

    config_path.write_text(default_content)
    logger.info(f"Created default config file: {config_path}")

    return config_path
