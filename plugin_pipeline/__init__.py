"""
Plugin Pipeline - run text through chains of small, independent plugins.

Key Features:
- Plugin contract with declared option schemas
- Registry of available plugins in registration order
- Per-plugin activation flags and stored options
- Fail-open message processing over the active plugins
- Fail-closed queue execution with an ordered result list
- Bounded execution history
- Durable state in memory, JSON or SQLite
- Structured logging and execution metrics

The REST API lives in ``plugin_pipeline.api`` and needs FastAPI installed.
"""

__version__ = "0.1.0"

from .types import ExecutionResult
from .activation import ActivationState, ActivationStore
from .history import DEFAULT_HISTORY_LIMIT, ExecutionHistory
from .queue import PluginQueue
from .pipeline import (
    DEFAULT_PLUGIN_TIMEOUT,
    CancellationToken,
    PluginPipeline,
    PluginTimeoutError,
)

# Plugins
from .plugins import (
    FunctionPlugin,
    OptionField,
    OptionType,
    Plugin,
    PluginConfig,
    PluginLoader,
    PluginRegistry,
    PluginValidationError,
    builtin_plugins,
)

# Persistence
from .storage import (
    InMemoryStateStorage,
    JSONFileStateStorage,
    SQLiteStateStorage,
    StateStorage,
    StorageError,
    create_storage,
)

# Configuration
from .config import ConfigError, PipelineConfig, load_config

# Observability
from .observability import (
    LogLevel,
    MetricsCollector,
    PipelineFormatter,
    configure_logging,
)

__all__ = [
    # Core pipeline
    "PluginPipeline",
    "CancellationToken",
    "PluginTimeoutError",
    "ExecutionResult",
    "ActivationState",
    "ActivationStore",
    "ExecutionHistory",
    "PluginQueue",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_PLUGIN_TIMEOUT",
    # Plugins
    "Plugin",
    "FunctionPlugin",
    "OptionField",
    "OptionType",
    "PluginRegistry",
    "PluginLoader",
    "PluginConfig",
    "PluginValidationError",
    "builtin_plugins",
    # Persistence
    "StateStorage",
    "InMemoryStateStorage",
    "JSONFileStateStorage",
    "SQLiteStateStorage",
    "StorageError",
    "create_storage",
    # Configuration
    "PipelineConfig",
    "ConfigError",
    "load_config",
    # Observability
    "MetricsCollector",
    "PipelineFormatter",
    "LogLevel",
    "configure_logging",
]
