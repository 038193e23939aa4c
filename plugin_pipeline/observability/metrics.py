"""
Metrics collection for observability.

Counters and histograms tracking plugin executions, failures and
durations, exportable as dictionaries or Prometheus text.

Values are folded into per-label-set totals as they are recorded, so a
long-running process keeps a fixed amount of state per plugin. Histograms
also keep a bounded window of recent observations for percentiles.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple


LabelSet = Tuple[Tuple[str, str], ...]

DEFAULT_BUCKETS = [0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]

# Observations kept per histogram for percentile queries
DEFAULT_SAMPLE_LIMIT = 1000


class MetricType(str, Enum):
    """Type of metric."""
    COUNTER = "counter"
    HISTOGRAM = "histogram"


def _label_key(labels: Optional[Dict[str, str]]) -> LabelSet:
    return tuple(sorted((labels or {}).items()))


def _escape(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(key: LabelSet, le: Optional[str] = None) -> str:
    pairs = list(key)
    if le is not None:
        pairs.append(("le", le))
    if not pairs:
        return ""
    return "{" + ",".join(f'{name}="{_escape(value)}"' for name, value in pairs) + "}"


def _format_value(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


@dataclass
class Series:
    """Totals for one label set of a metric."""
    count: int = 0
    sum: float = 0.0
    bucket_counts: List[int] = field(default_factory=list)


@dataclass
class Metric:
    """A tracked metric and its per-label-set totals."""

    name: str
    type: MetricType
    description: str = ""
    unit: str = ""

    # For histograms, in seconds
    buckets: List[float] = field(default_factory=lambda: list(DEFAULT_BUCKETS))
    sample_limit: int = DEFAULT_SAMPLE_LIMIT

    series: Dict[LabelSet, Series] = field(default_factory=dict)
    samples: Deque[float] = field(init=False, repr=False)

    def __post_init__(self):
        self.samples = deque(maxlen=self.sample_limit)

    def record(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Record a metric value."""
        key = _label_key(labels)
        series = self.series.get(key)
        if series is None:
            series = Series(bucket_counts=[0] * len(self.buckets))
            self.series[key] = series

        series.count += 1
        series.sum += value
        if self.type == MetricType.HISTOGRAM:
            for index, bound in enumerate(self.buckets):
                if value <= bound:
                    series.bucket_counts[index] += 1
            self.samples.append(value)

    @property
    def count(self) -> int:
        """Number of values recorded across every label set."""
        return sum(series.count for series in self.series.values())

    def get_sum(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Get sum of values, optionally only those matching every label."""
        return sum(series.sum for series in self._matching(labels))

    def get_average(self) -> Optional[float]:
        """Get average of all values."""
        count = self.count
        if count:
            return self.get_sum() / count
        return None

    def get_percentile(self, percentile: float) -> Optional[float]:
        """Get a percentile value (0-100) over the recent observations."""
        if not self.samples:
            return None
        sorted_values = sorted(self.samples)
        index = int(len(sorted_values) * percentile / 100)
        return sorted_values[min(index, len(sorted_values) - 1)]

    def get_histogram_buckets(self) -> Dict[str, int]:
        """Get cumulative histogram bucket counts across all label sets."""
        bucket_counts = {f"le_{b}": 0 for b in self.buckets}
        for series in self.series.values():
            for bound, count in zip(self.buckets, series.bucket_counts):
                bucket_counts[f"le_{bound}"] += count
        bucket_counts["le_inf"] = self.count
        return bucket_counts

    def _matching(self, labels: Optional[Dict[str, str]]) -> List[Series]:
        if not labels:
            return list(self.series.values())
        return [
            series for key, series in self.series.items()
            if all(dict(key).get(name) == value for name, value in labels.items())
        ]

    def clear(self) -> None:
        """Drop every recorded value."""
        self.series.clear()
        self.samples.clear()

    def to_dict(self) -> Dict[str, Any]:
        """Convert metric to dictionary."""
        base = {
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "unit": self.unit,
            "value_count": self.count,
        }

        if self.type == MetricType.COUNTER:
            base["sum"] = self.get_sum()
            base["series"] = [
                {"labels": dict(key), "value": series.sum}
                for key, series in self.series.items()
            ]
        elif self.type == MetricType.HISTOGRAM:
            base["buckets"] = self.get_histogram_buckets()
            base["average"] = self.get_average()
            base["p50"] = self.get_percentile(50)
            base["p95"] = self.get_percentile(95)

        return base

    def to_prometheus(self) -> str:
        """Export metric in Prometheus text format, one sample per label set."""
        lines = []

        if self.description:
            lines.append(f"# HELP {self.name} {self.description}")
        lines.append(f"# TYPE {self.name} {self.type.value}")

        if self.type == MetricType.COUNTER:
            suffix = "" if self.name.endswith("_total") else "_total"
            for key, series in self.series.items():
                lines.append(f"{self.name}{suffix}{_format_labels(key)} {_format_value(series.sum)}")
        elif self.type == MetricType.HISTOGRAM:
            for key, series in self.series.items():
                for bound, count in zip(self.buckets, series.bucket_counts):
                    lines.append(f"{self.name}_bucket{_format_labels(key, str(bound))} {count}")
                lines.append(f"{self.name}_bucket{_format_labels(key, '+Inf')} {series.count}")
                lines.append(f"{self.name}_count{_format_labels(key)} {series.count}")
                lines.append(f"{self.name}_sum{_format_labels(key)} {_format_value(series.sum)}")

        return "\n".join(lines)


class MetricsCollector:
    """
    Central collector for pipeline metrics.

    Usage:
        collector = MetricsCollector()
        pipeline = PluginPipeline(registry, metrics=collector)

        await pipeline.process_message("hello")
        collector.get_summary()
    """

    def __init__(self, prefix: str = "plugin_pipeline"):
        self.prefix = prefix
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()
        self._setup_default_metrics()

    def _setup_default_metrics(self) -> None:
        self._create_metric(
            "plugin_execution_duration_seconds",
            MetricType.HISTOGRAM,
            "Plugin process() duration in seconds",
            "seconds",
        )
        self._create_metric(
            "plugin_executions_total",
            MetricType.COUNTER,
            "Total number of plugin executions",
        )
        self._create_metric(
            "plugin_errors_total",
            MetricType.COUNTER,
            "Total number of failed plugin executions",
        )
        self._create_metric(
            "pipeline_runs_total",
            MetricType.COUNTER,
            "Total number of pipeline runs by mode",
        )

    def _create_metric(
        self,
        name: str,
        metric_type: MetricType,
        description: str = "",
        unit: str = "",
    ) -> Metric:
        full_name = f"{self.prefix}_{name}"
        metric = Metric(
            name=full_name,
            type=metric_type,
            description=description,
            unit=unit,
        )
        self._metrics[full_name] = metric
        return metric

    def _record(self, name: str, value: float, labels: Dict[str, str]) -> None:
        metric = self._metrics.get(f"{self.prefix}_{name}")
        if metric:
            with self._lock:
                metric.record(value, labels)

    def record_plugin_execution(
        self,
        plugin_id: str,
        duration_seconds: float,
        success: bool = True,
    ) -> None:
        """Record a single plugin execution."""
        self._record("plugin_execution_duration_seconds", duration_seconds, {"plugin": plugin_id})
        self._record(
            "plugin_executions_total",
            1,
            {"plugin": plugin_id, "status": "success" if success else "error"},
        )
        if not success:
            self._record("plugin_errors_total", 1, {"plugin": plugin_id})

    def record_pipeline_run(self, mode: str) -> None:
        """Count a pipeline run ("implicit", "explicit" or "queue")."""
        self._record("pipeline_runs_total", 1, {"mode": mode})

    def get_metric(self, name: str) -> Optional[Metric]:
        """Get a metric by name (without prefix)."""
        return self._metrics.get(f"{self.prefix}_{name}")

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get all metrics as dictionaries."""
        with self._lock:
            return {name: metric.to_dict() for name, metric in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of key metrics."""
        durations = self.get_metric("plugin_execution_duration_seconds")
        executions = self.get_metric("plugin_executions_total")
        errors = self.get_metric("plugin_errors_total")

        with self._lock:
            total_executions = executions.get_sum() if executions else 0
            total_errors = errors.get_sum() if errors else 0
            return {
                "total_executions": int(total_executions),
                "total_errors": int(total_errors),
                "success_rate": (total_executions - total_errors) / total_executions * 100 if total_executions > 0 else 0,
                "avg_execution_time_seconds": (durations.get_average() if durations else None) or 0,
                "p95_execution_time_seconds": (durations.get_percentile(95) if durations else None) or 0,
            }

    def to_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        lines = []
        with self._lock:
            for metric in self._metrics.values():
                lines.append(metric.to_prometheus())
                lines.append("")
        return "\n".join(lines)

    def clear(self) -> None:
        """Clear all metric values."""
        with self._lock:
            for metric in self._metrics.values():
                metric.clear()
