"""
REST API for the plugin pipeline.

Provides HTTP endpoints for managing plugins and running pipelines remotely.
"""

from .app import create_app
from .models import (
    ErrorResponse,
    ExecuteQueueRequest,
    ExecuteQueueResponse,
    HealthResponse,
    OptionsRequest,
    PluginResponse,
    ProcessRequest,
    ProcessResponse,
    QueueRequest,
    QueueResponse,
    ToggleRequest,
)

__all__ = [
    "create_app",
    "ErrorResponse",
    "ExecuteQueueRequest",
    "ExecuteQueueResponse",
    "HealthResponse",
    "OptionsRequest",
    "PluginResponse",
    "ProcessRequest",
    "ProcessResponse",
    "QueueRequest",
    "QueueResponse",
    "ToggleRequest",
]
