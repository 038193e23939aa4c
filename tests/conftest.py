"""
Pytest configuration and shared fixtures.
"""

import asyncio
from typing import Any, Dict, List

import pytest

from plugin_pipeline.history import ExecutionHistory
from plugin_pipeline.pipeline import PluginPipeline
from plugin_pipeline.plugins.base import FunctionPlugin, OptionField, OptionType, Plugin
from plugin_pipeline.plugins.registry import PluginRegistry


class MarkerPlugin(Plugin):
    """Appends a marker and records every call it receives."""

    description = "Appends a marker"

    def __init__(self, plugin_id: str, marker: str = None):
        self.id = plugin_id
        self.name = plugin_id.title()
        self.marker = marker if marker is not None else f"[{plugin_id}]"
        self.calls: List[str] = []

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        self.calls.append(input)
        return input + self.marker


class FailingPlugin(Plugin):
    """Always raises."""

    description = "Always fails"

    def __init__(self, plugin_id: str = "fail_always", message: str = "boom"):
        self.id = plugin_id
        self.name = plugin_id
        self.message = message
        self.calls: List[str] = []

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        self.calls.append(input)
        raise RuntimeError(self.message)


class SlowPlugin(Plugin):
    """Sleeps before echoing its input with a suffix."""

    def __init__(self, plugin_id: str = "slow", delay: float = 0.05, suffix: str = ""):
        self.id = plugin_id
        self.name = plugin_id
        self.delay = delay
        self.suffix = suffix
        self.started = 0
        self.running = 0
        self.max_running = 0

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        self.started += 1
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.running -= 1
        return input + self.suffix


class OptionEchoPlugin(Plugin):
    """Appends the resolved options so tests can see them."""

    id = "echo_options"
    name = "Echo Options"
    options_schema = [
        OptionField("greeting", "Greeting", OptionType.TEXT, default="hi"),
        OptionField("times", "Times", OptionType.NUMBER, default=1),
    ]

    async def process(self, input: str, options: Dict[str, Any]) -> str:
        return f"{input}|{options['greeting']}x{options['times']}"


def make_upper():
    """Plugin `upper` uppercasing its input."""
    return FunctionPlugin("upper", lambda text, opts: text.upper(), name="Upper")


@pytest.fixture
def registry():
    """Create an empty registry."""
    return PluginRegistry()


@pytest.fixture
def markers():
    """Three marker plugins a, b, c."""
    return [MarkerPlugin("a"), MarkerPlugin("b"), MarkerPlugin("c")]


@pytest.fixture
def pipeline(registry):
    """Create a pipeline over the empty registry."""
    return PluginPipeline(registry, history=ExecutionHistory(20))


@pytest.fixture
def marker_pipeline(registry, markers):
    """Create a pipeline with a, b, c registered."""
    for plugin in markers:
        registry.register(plugin)
    return PluginPipeline(registry)
