"""
Execution result types shared by the pipeline, history and storage.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a datetime from string or return as-is if already datetime.

    Handles ISO format strings including 'Z' suffix for UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        return datetime.fromisoformat(value)
    return None


@dataclass(frozen=True)
class ExecutionResult:
    """
    Snapshot of a single plugin invocation.

    Attributes:
        plugin_id: Identity of the plugin that ran.
        input: Text handed to the plugin.
        output: Text produced by the plugin. Equals ``input`` when the
            plugin failed.
        execution_time_ms: Wall-clock duration of the ``process`` call.
        success: Whether the plugin completed without raising.
        error: Error message when ``success`` is False.
        timestamp: When the invocation finished (UTC).
    """

    plugin_id: str
    input: str
    output: str
    execution_time_ms: float
    success: bool
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def succeeded(
        cls,
        plugin_id: str,
        input: str,
        output: str,
        execution_time_ms: float,
    ) -> "ExecutionResult":
        return cls(
            plugin_id=plugin_id,
            input=input,
            output=output,
            execution_time_ms=execution_time_ms,
            success=True,
        )

    @classmethod
    def failed(
        cls,
        plugin_id: str,
        input: str,
        error: str,
        execution_time_ms: float,
    ) -> "ExecutionResult":
        return cls(
            plugin_id=plugin_id,
            input=input,
            output=input,
            execution_time_ms=execution_time_ms,
            success=False,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted dictionary shape."""
        return {
            "pluginId": self.plugin_id,
            "input": self.input,
            "output": self.output,
            "executionTimeMs": self.execution_time_ms,
            "success": self.success,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionResult":
        """Create from the persisted dictionary shape."""
        return cls(
            plugin_id=data.get("pluginId", ""),
            input=data.get("input", ""),
            output=data.get("output", data.get("input", "")),
            execution_time_ms=float(data.get("executionTimeMs", 0.0)),
            success=bool(data.get("success", False)),
            error=data.get("error"),
            timestamp=parse_datetime(data.get("timestamp")) or utc_now(),
        )
