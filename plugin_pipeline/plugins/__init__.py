"""
Plugin system for the text processing pipeline.

This module provides:
- Plugin: Base class every text plugin implements
- PluginRegistry: In-memory catalog of available plugins
- PluginLoader: Registers plugins from explicit lists and packages
- PluginConfig: Activation settings via YAML/JSON
- Built-in plugins

Example Usage:
    from plugin_pipeline.plugins import PluginRegistry, PluginLoader

    registry = PluginRegistry()
    loader = PluginLoader(registry)
    loader.register_builtins()

    for plugin in registry.all():
        print(plugin.id)
"""

from .base import FunctionPlugin, OptionField, OptionType, Plugin
from .registry import PluginRegistry
from .loader import PluginConfig, PluginLoader, PluginValidationError
from .builtin import (
    builtin_plugins,
    FindReplacePlugin,
    TextAnalyzerPlugin,
    TrimWhitespacePlugin,
    UpperCasePlugin,
    WrapTemplatePlugin,
)

__all__ = [
    # Contract
    "Plugin",
    "FunctionPlugin",
    "OptionField",
    "OptionType",
    # Registry
    "PluginRegistry",
    # Loader
    "PluginLoader",
    "PluginConfig",
    "PluginValidationError",
    # Built-in plugins
    "builtin_plugins",
    "FindReplacePlugin",
    "TextAnalyzerPlugin",
    "TrimWhitespacePlugin",
    "UpperCasePlugin",
    "WrapTemplatePlugin",
]
