"""
Log formatting for pipeline records.

Pipeline modules log through ``logging.getLogger(__name__)`` and attach run
details with ``extra={"attributes": {...}}``: the ``plugin_id`` of a step,
the run ``mode``, the queue ``step`` number. ``PipelineFormatter`` renders
those details either as one JSON object per line or as a readable text line,
and ``configure_logging`` installs it on the package logger.
"""

import json
import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, TextIO, Union


ROOT_LOGGER_NAME = "plugin_pipeline"

# Attributes rendered first, in this order
PIPELINE_FIELDS = ("mode", "plugin_id", "step", "steps")


class LogLevel(str, Enum):
    """Log levels matching Python logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        """Convert to Python logging level."""
        return getattr(logging, self.value)


class PipelineFormatter(logging.Formatter):
    """
    Formatter for pipeline log records.

    Text output looks like::

        2024-05-01 12:00:00 [WARNING] plugin_pipeline.pipeline - Queue stopped [mode=queue plugin_id=fail step=2]

    JSON output carries the same data under ``timestamp``, ``level``,
    ``logger``, ``message``, ``attributes`` and ``exception``.
    """

    def __init__(self, json_output: bool = False):
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self.json_output = json_output

    @staticmethod
    def attributes(record: logging.LogRecord) -> Dict[str, Any]:
        """Return the record's attributes with the pipeline fields first."""
        attributes = getattr(record, "attributes", None) or {}
        ordered = {key: attributes[key] for key in PIPELINE_FIELDS if key in attributes}
        ordered.update((key, value) for key, value in attributes.items() if key not in ordered)
        return ordered

    def format(self, record: logging.LogRecord) -> str:
        attributes = self.attributes(record)
        exception = self.formatException(record.exc_info) if record.exc_info else None

        if self.json_output:
            data = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            if attributes:
                data["attributes"] = attributes
            if exception:
                data["exception"] = exception
            return json.dumps(data, default=str)

        text = (
            f"{self.formatTime(record, self.datefmt)} [{record.levelname}] "
            f"{record.name} - {record.getMessage()}"
        )
        if attributes:
            text += " [" + " ".join(f"{key}={value}" for key, value in attributes.items()) + "]"
        if exception:
            text += f"\n{exception}"
        return text


class PipelineLogHandler(logging.StreamHandler):
    """Stream handler installed by ``configure_logging``."""
    pass


def configure_logging(
    level: Union[LogLevel, str] = LogLevel.INFO,
    json_output: bool = False,
    output: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Send every ``plugin_pipeline.*`` log record to one formatted stream.

    Calling it again replaces the handler installed by the previous call.

    Args:
        level: Log level
        json_output: Whether to output JSON lines
        output: Output stream, stderr by default

    Returns:
        The package logger
    """
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if isinstance(handler, PipelineLogHandler):
            package_logger.removeHandler(handler)

    handler = PipelineLogHandler(output or sys.stderr)
    handler.setFormatter(PipelineFormatter(json_output))
    package_logger.addHandler(handler)
    package_logger.setLevel(LogLevel(level).to_python_level())
    package_logger.propagate = False
    return package_logger
