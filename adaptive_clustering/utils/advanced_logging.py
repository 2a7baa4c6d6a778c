"""
Advanced Logging Module

Structured logging for clustering runs:
- structlog configuration (JSON or console output, optional rotating file)
- One correlation id per orchestrator run, bound into every event
- Stage timing (PerformanceLogger, @timed)
- Chunk progress for batched runs (BatchLogger)
- Process memory and CPU snapshots (MetricsLogger)
"""

import contextlib
import functools
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import psutil
import structlog
from structlog.types import EventDict, Processor

LOG_FILE_MAX_BYTES = 50 * 1024 * 1024
LOG_FILE_BACKUPS = 3


# =============================================================================
# Structured Logging Configuration
# =============================================================================


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    service_name: str = "adaptive-clustering",
) -> None:
    """
    Route structlog through the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text" (console renderer)
        log_file: Also write to this file, rotated by size
        service_name: Value of the "service" field on every event
    """
    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(format="%(message)s", level=level)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        handler.setLevel(level)
        logging.root.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    processors: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        add_service_context(service_name),
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_service_context(service_name: str) -> Processor:
    """Processor stamping every event with the service name."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["service"] = service_name
        return event_dict

    return processor


# =============================================================================
# Correlation ID Context
# =============================================================================


class LogContext:
    """
    Run-scoped correlation id.

    Held on the class rather than in a contextvar so batch worker threads
    started inside a run log under the same id.
    """

    _correlation_id: Optional[str] = None

    @classmethod
    def set_correlation_id(cls, correlation_id: Optional[str]) -> None:
        cls._correlation_id = correlation_id

    @classmethod
    def get_correlation_id(cls) -> Optional[str]:
        return cls._correlation_id

    @classmethod
    def clear_correlation_id(cls) -> None:
        cls._correlation_id = None

    @classmethod
    @contextlib.contextmanager
    def correlation_context(cls, correlation_id: str) -> Iterator[None]:
        """Use correlation_id inside the block, then restore the outer one."""
        outer = cls._correlation_id
        cls._correlation_id = correlation_id
        try:
            yield
        finally:
            cls._correlation_id = outer


def get_logger(name: str) -> structlog.BoundLogger:
    """structlog logger bound to the current run's correlation id, if any."""
    logger = structlog.get_logger(name)
    correlation_id = LogContext.get_correlation_id()
    if correlation_id:
        logger = logger.bind(correlation_id=correlation_id)
    return logger


# =============================================================================
# Stage Timing
# =============================================================================


class PerformanceLogger:
    """
    Times one pipeline stage and logs its outcome.

    Emits "operation_completed" at log_level, or "operation_failed" at error
    level when the block raises; the exception is never suppressed.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.BoundLogger] = None,
        log_level: str = "info",
        item_count: Optional[int] = None,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level
        self.item_count = item_count
        self.context = context
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug("operation_started", operation=self.operation, **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end_time = time.perf_counter()
        fields = self._fields()

        if exc_type is None:
            getattr(self.logger, self.log_level)("operation_completed", **fields)
        else:
            self.logger.error(
                "operation_failed", error_type=exc_type.__name__, error=str(exc_val), **fields
            )

    def _fields(self) -> Dict[str, Any]:
        seconds = self.elapsed_time
        fields: Dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": round(seconds, 3),
            **self.context,
        }
        if self.item_count:
            fields["item_count"] = self.item_count
            if seconds > 0:
                fields["items_per_second"] = round(self.item_count / seconds, 2)
        return fields

    @property
    def elapsed_time(self) -> float:
        """Seconds since entry (up to exit once the block has finished)."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_time * 1000.0


def timed(operation: Optional[str] = None, log_level: str = "info") -> Callable:
    """
    Decorator wrapping a call in a PerformanceLogger.

    Example:
        @timed(operation="plan_strategy", log_level="debug")
        def plan(self, corpus, target_k=None):
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = operation or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with PerformanceLogger(name, log_level=log_level):
                return func(*args, **kwargs)

        return wrapper

    return decorator


# =============================================================================
# Batch Progress
# =============================================================================


class BatchLogger:
    """
    Progress of a batched run, logged every log_interval documents and on
    the last one.
    """

    def __init__(
        self,
        total_items: int,
        operation: str,
        log_interval: int = 100,
        logger: Optional[structlog.BoundLogger] = None,
    ):
        self.total_items = total_items
        self.operation = operation
        self.log_interval = log_interval
        self.logger = logger or get_logger(__name__)
        self.processed_items = 0
        self._logged_at = 0
        self._started = time.perf_counter()

    def update(self, count: int = 1) -> None:
        self.processed_items += count
        due = self.processed_items - self._logged_at >= self.log_interval
        if due or self.processed_items >= self.total_items:
            self._logged_at = self.processed_items
            self.logger.info(
                "batch_progress",
                operation=self.operation,
                processed=self.processed_items,
                total=self.total_items,
                progress_pct=self._percent(),
                elapsed_seconds=round(time.perf_counter() - self._started, 1),
            )

    def complete(self) -> None:
        seconds = time.perf_counter() - self._started
        self.logger.info(
            "batch_completed",
            operation=self.operation,
            total_items=self.processed_items,
            duration_seconds=round(seconds, 3),
            items_per_second=round(self.processed_items / seconds, 2) if seconds > 0 else 0.0,
        )

    def _percent(self) -> float:
        if self.total_items <= 0:
            return 0
        return round(100.0 * self.processed_items / self.total_items, 1)


# =============================================================================
# Resource Snapshots
# =============================================================================


class MetricsLogger:
    """psutil snapshots of the current process, used for per-run memory deltas."""

    def __init__(self, logger: Optional[structlog.BoundLogger] = None):
        self.logger = logger or get_logger(__name__)
        self.process = psutil.Process()

    def memory_mb(self) -> float:
        """Resident set size in MB."""
        return self.process.memory_info().rss / (1024 * 1024)

    def log_cpu_memory(self, context: Optional[str] = None) -> Dict[str, Any]:
        """Log and return CPU percent, RSS and memory percent."""
        metrics: Dict[str, Any] = {
            "cpu_percent": self.process.cpu_percent(),
            "memory_mb": self.memory_mb(),
            "memory_percent": self.process.memory_percent(),
        }
        if context:
            metrics["context"] = context
        self.logger.debug("cpu_memory_metrics", **metrics)
        return metrics
