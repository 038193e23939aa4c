"""
Pydantic models for API request/response schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = Field(default="healthy", description="Service health status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Current server timestamp")
    plugins: int = Field(..., description="Number of registered plugins")
    processing: bool = Field(default=False, description="Whether a queue run is in flight")


class PluginResponse(BaseModel):
    """A registered plugin with its activation state."""
    id: str = Field(..., description="Plugin id")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="What the plugin does")
    version: str = Field(..., description="Plugin version")
    options_schema: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Declared option fields"
    )
    active: bool = Field(default=False, description="Whether implicit runs apply it")
    options: Dict[str, Any] = Field(
        default_factory=dict,
        description="Effective options (defaults merged with stored values)"
    )
    last_result: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Most recent execution result"
    )


class ToggleRequest(BaseModel):
    """Request model for activating or deactivating a plugin."""
    active: bool = Field(..., description="New activation flag")


class OptionsRequest(BaseModel):
    """Request model for replacing a plugin's stored options."""
    options: Dict[str, Any] = Field(default_factory=dict, description="Option values")


class ProcessRequest(BaseModel):
    """Request model for running plugins over a message."""
    input: str = Field(..., description="Message text")
    plugin_ids: Optional[List[str]] = Field(
        default=None,
        description="Plugins to apply in order; the active plugins when omitted"
    )
    options: Optional[Dict[str, Dict[str, Any]]] = Field(
        default=None,
        description="Per-plugin options for this run, keyed by plugin id"
    )


class ProcessResponse(BaseModel):
    """Response model for a message run."""
    output: str = Field(..., description="Transformed text")
    plugin_ids: List[str] = Field(..., description="Plugins the run considered, in order")


class QueueRequest(BaseModel):
    """Request model for replacing the queue."""
    plugin_ids: List[str] = Field(default_factory=list, description="Plugin ids in order")


class QueueResponse(BaseModel):
    """Current queue contents."""
    plugin_ids: List[str] = Field(..., description="Queued plugin ids in order")
    processing: bool = Field(default=False, description="Whether a queue run is in flight")


class ExecuteQueueRequest(BaseModel):
    """Request model for running the queue."""
    input: str = Field(..., description="Text handed to the first queued plugin")


class ExecuteQueueResponse(BaseModel):
    """Response model for a queue run."""
    results: List[Dict[str, Any]] = Field(..., description="Execution results in order")
    output: str = Field(..., description="Output of the last successful step")
    completed: bool = Field(..., description="False when the chain stopped on a failure")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: str = Field(..., description="Error message")
