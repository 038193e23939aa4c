"""
Observability module - log formatting and metrics for the pipeline.
"""

from .metrics import (
    MetricsCollector,
    MetricType,
    Metric,
)
from .logging import (
    PipelineFormatter,
    PipelineLogHandler,
    LogLevel,
    configure_logging,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "MetricType",
    "Metric",
    # Logging
    "PipelineFormatter",
    "PipelineLogHandler",
    "LogLevel",
    "configure_logging",
]
