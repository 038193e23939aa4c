"""Tests for the observability module."""

import json
import logging
import sys
from io import StringIO

import pytest

from conftest import FailingPlugin, make_upper
from plugin_pipeline.observability.logging import (
    ROOT_LOGGER_NAME,
    LogLevel,
    PipelineFormatter,
    PipelineLogHandler,
    configure_logging,
)
from plugin_pipeline.observability.metrics import Metric, MetricsCollector, MetricType
from plugin_pipeline.pipeline import PluginPipeline


@pytest.fixture
def restore_root_logger():
    """Undo handler and propagation changes to the package logger."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    root.handlers = []
    yield root
    root.handlers = handlers
    root.setLevel(level)
    root.propagate = propagate


class TestMetric:
    """Tests for the Metric class."""

    def test_counter(self):
        """Test counter sums and label filtering."""
        metric = Metric(name="runs", type=MetricType.COUNTER)
        metric.record(1, {"mode": "implicit"})
        metric.record(1, {"mode": "queue"})
        metric.record(1, {"mode": "queue"})

        assert metric.get_sum() == 3
        assert metric.get_sum({"mode": "queue"}) == 2
        assert metric.to_dict()["sum"] == 3

    def test_histogram(self):
        """Test histogram buckets are cumulative."""
        metric = Metric(name="duration", type=MetricType.HISTOGRAM, buckets=[0.1, 1.0])
        for value in [0.05, 0.5, 2.0]:
            metric.record(value)

        buckets = metric.get_histogram_buckets()

        assert buckets == {"le_0.1": 1, "le_1.0": 2, "le_inf": 3}

    def test_percentile(self):
        """Test percentile lookup."""
        metric = Metric(name="duration", type=MetricType.HISTOGRAM)
        for value in range(1, 101):
            metric.record(value)

        assert metric.get_percentile(50) == 51
        assert metric.get_percentile(100) == 100
        assert Metric(name="empty", type=MetricType.HISTOGRAM).get_percentile(95) is None

    def test_memory_is_bounded(self):
        """Test repeated observations fold into totals and a capped sample window."""
        metric = Metric(name="duration", type=MetricType.HISTOGRAM, sample_limit=10)
        for value in range(1000):
            metric.record(value % 4, {"plugin": "p"})

        assert len(metric.series) == 1
        assert len(metric.samples) == 10
        assert metric.count == 1000
        assert metric.get_average() == pytest.approx(1.5)
        assert metric.get_histogram_buckets()["le_inf"] == 1000

    def test_series_per_label_set(self):
        """Test each distinct label set gets its own totals."""
        metric = Metric(name="runs", type=MetricType.COUNTER)
        metric.record(1, {"mode": "implicit"})
        metric.record(1, {"mode": "implicit"})
        metric.record(1, {"mode": "queue"})

        series = {entry["labels"]["mode"]: entry["value"] for entry in metric.to_dict()["series"]}
        assert series == {"implicit": 2, "queue": 1}



class TestMetricsCollector:
    """Tests for the MetricsCollector class."""

    def test_init(self):
        """Test default metrics exist."""
        collector = MetricsCollector()

        assert collector.get_metric("plugin_executions_total") is not None
        assert collector.get_metric("pipeline_runs_total") is not None

    def test_record_plugin_execution(self):
        """Test successes and errors are counted per plugin."""
        collector = MetricsCollector()
        collector.record_plugin_execution("upper", 0.01, success=True)
        collector.record_plugin_execution("upper", 0.02, success=False)

        executions = collector.get_metric("plugin_executions_total")
        errors = collector.get_metric("plugin_errors_total")
        assert executions.get_sum({"plugin": "upper"}) == 2
        assert executions.get_sum({"status": "error"}) == 1
        assert errors.get_sum() == 1

    def test_record_pipeline_run(self):
        """Test runs are counted by mode."""
        collector = MetricsCollector()
        collector.record_pipeline_run("queue")

        runs = collector.get_metric("pipeline_runs_total")
        assert runs.get_sum({"mode": "queue"}) == 1

    def test_get_summary(self):
        """Test the summary figures."""
        collector = MetricsCollector()
        for success in (True, True, True, False):
            collector.record_plugin_execution("p", 0.1, success=success)

        summary = collector.get_summary()

        assert summary["total_executions"] == 4
        assert summary["total_errors"] == 1
        assert summary["success_rate"] == 75.0
        assert summary["avg_execution_time_seconds"] == pytest.approx(0.1)

    def test_empty_summary(self):
        """Test the summary before anything ran."""
        summary = MetricsCollector().get_summary()

        assert summary["total_executions"] == 0
        assert summary["success_rate"] == 0

    def test_to_prometheus(self):
        """Test Prometheus export writes one sample per label set."""
        collector = MetricsCollector()
        collector.record_plugin_execution("p", 0.003)
        collector.record_plugin_execution("q", 0.2, success=False)

        output = collector.to_prometheus()

        assert "# TYPE plugin_pipeline_plugin_executions_total counter" in output
        assert 'plugin_pipeline_plugin_executions_total{plugin="p",status="success"} 1' in output
        assert 'plugin_pipeline_plugin_executions_total{plugin="q",status="error"} 1' in output
        assert "_total_total" not in output
        assert 'plugin_pipeline_plugin_execution_duration_seconds_bucket{plugin="p",le="0.005"} 1' in output
        assert 'plugin_pipeline_plugin_execution_duration_seconds_bucket{plugin="q",le="0.1"} 0' in output
        assert 'plugin_pipeline_plugin_execution_duration_seconds_bucket{plugin="q",le="+Inf"} 1' in output
        assert 'plugin_pipeline_plugin_execution_duration_seconds_count{plugin="p"} 1' in output

    @pytest.mark.asyncio
    async def test_pipeline_runs_labelled_by_mode(self, registry):
        """Test runs from each mode appear as separate Prometheus samples."""
        collector = MetricsCollector()
        registry.register(make_upper())
        pipeline = PluginPipeline(registry, metrics=collector)
        pipeline.store.toggle("upper", True)
        pipeline.queue.add("upper")

        await pipeline.process_message("a")
        await pipeline.process_message("b")
        await pipeline.execute_queue("c")

        output = collector.to_prometheus()
        assert 'plugin_pipeline_pipeline_runs_total{mode="implicit"} 2' in output
        assert 'plugin_pipeline_pipeline_runs_total{mode="queue"} 1' in output
        assert "plugin_pipeline_pipeline_runs_total 3" not in output

    def test_label_values_are_escaped(self):
        """Test quotes in label values are escaped."""
        collector = MetricsCollector()
        collector.record_pipeline_run('odd"mode')

        assert 'mode="odd\\"mode"' in collector.to_prometheus()

    def test_empty_counter_has_no_samples(self):
        """Test a counter with nothing recorded exports only its header."""
        metric = Metric(name="runs_total", type=MetricType.COUNTER, description="Runs")

        assert metric.to_prometheus() == "# HELP runs_total Runs\n# TYPE runs_total counter"


    def test_clear(self):
        """Test clearing recorded values."""
        collector = MetricsCollector()
        collector.record_pipeline_run("implicit")

        collector.clear()

        assert collector.get_summary()["total_executions"] == 0
        assert collector.get_metric("pipeline_runs_total").get_sum() == 0


class TestPipelineFormatter:
    """Tests for pipeline log formatting."""

    def make_record(self, level=logging.INFO, message="Plugin ran", attributes=None, exc_info=None):
        record = logging.LogRecord(
            "plugin_pipeline.pipeline", level, __file__, 1, message, None, exc_info
        )
        if attributes is not None:
            record.attributes = attributes
        return record

    def test_log_levels(self):
        """Test log level conversion."""
        assert LogLevel.DEBUG.to_python_level() == 10
        assert LogLevel.WARNING.to_python_level() == 30
        assert LogLevel.CRITICAL.to_python_level() == 50

    def test_text_output(self):
        """Test text lines carry level, logger, message and attributes."""
        record = self.make_record(
            logging.WARNING,
            "Queue stopped",
            {"step": 2, "plugin_id": "fail_always", "mode": "queue"},
        )

        text = PipelineFormatter().format(record)

        assert "[WARNING] plugin_pipeline.pipeline - Queue stopped" in text
        assert text.endswith("[mode=queue plugin_id=fail_always step=2]")

    def test_text_without_attributes(self):
        """Test records without attributes have no attribute block."""
        text = PipelineFormatter().format(self.make_record())

        assert text.endswith("plugin_pipeline.pipeline - Plugin ran")

    def test_json_output(self):
        """Test JSON lines keep pipeline fields first and other attributes after."""
        record = self.make_record(attributes={"path": "state.json", "plugin_id": "upper"})

        data = json.loads(PipelineFormatter(json_output=True).format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "plugin_pipeline.pipeline"
        assert data["message"] == "Plugin ran"
        assert list(data["attributes"]) == ["plugin_id", "path"]
        assert "exception" not in data

    def test_json_exception(self):
        """Test exceptions are included in JSON output."""
        try:
            raise ValueError("bad")
        except ValueError:
            record = self.make_record(logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(PipelineFormatter(json_output=True).format(record))

        assert "ValueError: bad" in data["exception"]


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_routes_package_loggers(self, restore_root_logger):
        """Test module loggers under the package reach the configured stream."""
        stream = StringIO()
        configure_logging(LogLevel.INFO, json_output=False, output=stream)

        logging.getLogger("plugin_pipeline.pipeline").info(
            "Pipeline run", extra={"attributes": {"mode": "queue"}}
        )
        logging.getLogger("plugin_pipeline.pipeline").debug("hidden")

        output = stream.getvalue()
        assert "Pipeline run" in output
        assert "[mode=queue]" in output
        assert "hidden" not in output

    def test_reconfigure_replaces_handler(self, restore_root_logger):
        """Test a second call swaps the handler instead of adding another."""
        first, second = StringIO(), StringIO()
        configure_logging("INFO", output=first)
        logger = configure_logging("DEBUG", json_output=True, output=second)

        logging.getLogger("plugin_pipeline.storage").debug("Saved state")

        assert first.getvalue() == ""
        assert json.loads(second.getvalue())["message"] == "Saved state"
        assert sum(isinstance(h, PipelineLogHandler) for h in logger.handlers) == 1

    @pytest.mark.asyncio
    async def test_pipeline_failure_log_carries_plugin_id(self, restore_root_logger, registry):
        """Test a failed plugin step is logged with its plugin id and traceback."""
        stream = StringIO()
        configure_logging(LogLevel.WARNING, json_output=True, output=stream)
        registry.register(FailingPlugin())
        pipeline = PluginPipeline(registry)
        pipeline.queue.add("fail_always")

        await pipeline.execute_queue("x")

        records = [json.loads(line) for line in stream.getvalue().splitlines() if line.startswith("{")]
        failure, stopped = records
        assert failure["attributes"] == {"plugin_id": "fail_always"}
        assert "RuntimeError: boom" in failure["exception"]
        assert stopped["attributes"] == {"mode": "queue", "plugin_id": "fail_always", "step": 1}
