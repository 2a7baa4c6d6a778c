"""
Unit tests for utility modules.

Tests for error_handling and advanced_logging.
"""

import logging
import logging.handlers
import time

import pytest
import structlog
from structlog.testing import capture_logs

from adaptive_clustering.utils.advanced_logging import (
    BatchLogger,
    LogContext,
    MetricsLogger,
    PerformanceLogger,
    add_service_context,
    configure_logging,
    get_logger,
    timed,
)
from adaptive_clustering.utils.error_handling import (
    ClusteringEngineError,
    ClusteringError,
    ClusteringFailedError,
    ConfigurationError,
    ConvergenceWarning,
    ErrorTracker,
    FusionError,
    InvalidAlgorithmError,
    NumericalError,
)


@pytest.mark.unit
class TestErrorHandling:
    """Test the exception hierarchy."""

    def test_hierarchy(self):
        assert issubclass(ConfigurationError, ClusteringEngineError)
        assert issubclass(ConfigurationError, ValueError)
        assert issubclass(InvalidAlgorithmError, ConfigurationError)
        assert issubclass(ClusteringFailedError, ClusteringError)
        assert issubclass(FusionError, ClusteringError)
        assert issubclass(NumericalError, ClusteringEngineError)
        assert not issubclass(NumericalError, ValueError)
        assert issubclass(ConvergenceWarning, UserWarning)

    def test_to_dict(self):
        error = ClusteringFailedError("kmeans failed", details={"algorithm": "kmeans"})

        data = error.to_dict()

        assert str(error) == "kmeans failed"
        assert data["error_type"] == "ClusteringFailedError"
        assert data["error_code"] == "ClusteringFailedError"
        assert data["message"] == "kmeans failed"
        assert data["details"] == {"algorithm": "kmeans"}
        assert data["timestamp"] <= time.time()

    def test_explicit_error_code(self):
        error = ConfigurationError("bad eps", error_code="EPS_RANGE")
        assert error.error_code == "EPS_RANGE"
        assert error.details == {}


@pytest.mark.unit
class TestErrorTracker:
    """Test per-run failure tracking."""

    def test_record_and_stats(self):
        tracker = ErrorTracker()

        tracker.record(NumericalError("singular"), source="gmm")
        tracker.record(ClusteringFailedError("empty"), source="dbscan")

        stats = tracker.get_stats()
        assert stats["total_errors"] == 2
        assert stats["error_types"] == {"NumericalError": 1, "ClusteringFailedError": 1}
        assert tracker.sources == ["gmm", "dbscan"]

    def test_alert_threshold(self):
        tracker = ErrorTracker(alert_threshold=2)

        with capture_logs() as logs:
            tracker.record(NumericalError("a"), source="gmm")
            tracker.record(NumericalError("b"), source="gmm")

        events = [entry["event"] for entry in logs]
        assert events == ["error_recorded", "error_recorded", "error_threshold_exceeded"]
        assert logs[-1]["error_types"] == {"NumericalError": 2}

    def test_reset(self):
        tracker = ErrorTracker()
        tracker.record(ValueError("x"))

        tracker.reset()

        assert tracker.get_stats()["total_errors"] == 0
        assert tracker.sources == []


@pytest.mark.unit
class TestLogContext:
    """Test correlation id handling."""

    def test_set_and_clear(self):
        LogContext.set_correlation_id("run-1")
        assert LogContext.get_correlation_id() == "run-1"
        LogContext.clear_correlation_id()
        assert LogContext.get_correlation_id() is None

    def test_nested_contexts_restore(self):
        with LogContext.correlation_context("outer"):
            with LogContext.correlation_context("inner"):
                assert LogContext.get_correlation_id() == "inner"
            assert LogContext.get_correlation_id() == "outer"
        assert LogContext.get_correlation_id() is None

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.correlation_context("run-2"):
                raise RuntimeError("boom")
        assert LogContext.get_correlation_id() is None

    def test_get_logger_binds_correlation_id(self):
        with capture_logs() as logs:
            with LogContext.correlation_context("run-3"):
                get_logger(__name__).info("inside")
            get_logger(__name__).info("outside")

        assert logs[0]["correlation_id"] == "run-3"
        assert "correlation_id" not in logs[1]


@pytest.mark.unit
class TestPerformanceLogger:
    """Test operation timing."""

    def test_completed_operation(self):
        logger = structlog.get_logger("test")

        with capture_logs() as logs:
            with PerformanceLogger("vectorize", logger, item_count=10, stage="text") as perf:
                time.sleep(0.01)

        assert perf.elapsed_time >= 0.01
        assert perf.elapsed_ms == pytest.approx(perf.elapsed_time * 1000.0)
        completed = logs[-1]
        assert completed["event"] == "operation_completed"
        assert completed["operation"] == "vectorize"
        assert completed["stage"] == "text"
        assert completed["item_count"] == 10

    def test_failed_operation(self):
        logger = structlog.get_logger("test")

        with capture_logs() as logs:
            with pytest.raises(NumericalError):
                with PerformanceLogger("execute_algorithm", logger):
                    raise NumericalError("singular covariance")

        failed = logs[-1]
        assert failed["event"] == "operation_failed"
        assert failed["error_type"] == "NumericalError"
        assert failed["log_level"] == "error"

    def test_elapsed_before_enter(self):
        assert PerformanceLogger("idle").elapsed_time == 0.0

    def test_timed_decorator(self):
        @timed(operation="double_all", log_level="debug")
        def double_all(values):
            return [v * 2 for v in values]

        with capture_logs() as logs:
            assert double_all([1, 2]) == [2, 4]

        assert double_all.__name__ == "double_all"
        completed = logs[-1]
        assert completed["operation"] == "double_all"
        assert completed["log_level"] == "debug"

    def test_timed_defaults_to_function_name(self):
        @timed()
        def analyze():
            return "done"

        with capture_logs() as logs:
            analyze()

        assert logs[-1]["operation"] == "analyze"


@pytest.mark.unit
class TestBatchLogger:
    """Test batch progress logging."""

    def test_progress_interval(self):
        with capture_logs() as logs:
            progress = BatchLogger(total_items=10, operation="cluster_batches", log_interval=4)
            for _ in range(10):
                progress.update()
            progress.complete()

        events = [entry for entry in logs if entry["event"] == "batch_progress"]
        assert [e["processed"] for e in events] == [4, 8, 10]
        assert events[-1]["progress_pct"] == 100.0
        assert logs[-1]["event"] == "batch_completed"
        assert logs[-1]["total_items"] == 10

    def test_empty_batch(self):
        with capture_logs() as logs:
            progress = BatchLogger(total_items=0, operation="noop")
            progress.update(0)
        assert logs[0]["progress_pct"] == 0


@pytest.mark.unit
class TestMetricsLogger:
    """Test process resource snapshots."""

    def test_memory_mb(self):
        assert MetricsLogger().memory_mb() > 0.0

    def test_log_cpu_memory(self):
        with capture_logs() as logs:
            metrics = MetricsLogger().log_cpu_memory(context="run_completed")

        assert set(metrics) == {"cpu_percent", "memory_mb", "memory_percent", "context"}
        assert logs[0]["event"] == "cpu_memory_metrics"
        assert logs[0]["context"] == "run_completed"


@pytest.mark.unit
class TestConfigureLogging:
    """Test structlog configuration."""

    def test_service_context_processor(self):
        processor = add_service_context("clustering-test")
        assert processor(None, "info", {"event": "x"}) == {"event": "x", "service": "clustering-test"}

    def test_configure_json(self, restore_logging):
        configure_logging(log_level="DEBUG", log_format="json")

        config = structlog.get_config()
        assert isinstance(config["processors"][-1], structlog.processors.JSONRenderer)
        assert config["wrapper_class"] is structlog.stdlib.BoundLogger

    def test_configure_text(self, restore_logging):
        configure_logging(log_level="WARNING", log_format="text")

        config = structlog.get_config()
        assert isinstance(config["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_configure_log_file(self, restore_logging, tmp_path):
        log_file = tmp_path / "logs" / "clustering.log"

        configure_logging(log_level="INFO", log_file=str(log_file))

        assert log_file.parent.is_dir()
        assert any(
            isinstance(h, logging.handlers.RotatingFileHandler) and h.baseFilename == str(log_file)
            for h in logging.root.handlers
        )
