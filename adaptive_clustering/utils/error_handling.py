"""
Error Handling Module

Provides the error taxonomy of the clustering engine:
- Custom exception hierarchy (configuration, numerical, clustering failures)
- ConvergenceWarning for iteration caps reached before tolerance
- Error tracking for per-run failure reporting
"""

import time
from typing import Any, Optional

import structlog


logger = structlog.get_logger(__name__)


# =============================================================================
# Custom Exception Hierarchy
# =============================================================================


class ClusteringEngineError(Exception):
    """Base exception for all clustering engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging and reporting."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Configuration Errors
class ConfigurationError(ClusteringEngineError, ValueError):
    """Invalid engine configuration or parameter range. Never recovered silently."""
    pass


class InvalidAlgorithmError(ConfigurationError):
    """Unknown or unsupported clustering algorithm key."""
    pass


# Numerical Errors
class NumericalError(ClusteringEngineError):
    """Zero-norm vector or singular covariance, recovered locally."""
    pass


# Clustering Errors
class ClusteringError(ClusteringEngineError):
    """Base class for clustering algorithm errors."""
    pass


class ClusteringFailedError(ClusteringError):
    """Clustering algorithm failed; the orchestrator moves on to a fallback."""
    pass


class FusionError(ClusteringError):
    """Fusion produced an inconsistent result."""
    pass


# =============================================================================
# Warnings
# =============================================================================


class ConvergenceWarning(UserWarning):
    """Iteration cap reached before the convergence tolerance was met."""
    pass


# =============================================================================
# Error Tracker
# =============================================================================


class ErrorTracker:
    """
    Track algorithm failures during a run.

    The orchestrator records every failed attempt here so the final
    performance report can list what fell over and why.
    """

    def __init__(self, alert_threshold: int = 3):
        """
        Initialize error tracker.

        Args:
            alert_threshold: Number of failures before an error is logged
        """
        self.alert_threshold = alert_threshold
        self.errors: list[tuple[float, str, Exception]] = []
        self._logger = structlog.get_logger(__name__)

    def record(self, error: Exception, source: str = "unknown") -> None:
        """
        Record an error occurrence.

        Args:
            error: Exception that occurred
            source: Component or algorithm that raised it
        """
        self.errors.append((time.time(), source, error))

        self._logger.warning(
            "error_recorded",
            source=source,
            error=str(error),
            error_type=type(error).__name__,
        )

        if len(self.errors) >= self.alert_threshold:
            self._trigger_alert()

    def _trigger_alert(self) -> None:
        """Log when the failure count reaches the threshold."""
        self._logger.error(
            "error_threshold_exceeded",
            error_count=len(self.errors),
            threshold=self.alert_threshold,
            error_types=self._count_types(),
        )

    def _count_types(self) -> dict[str, int]:
        error_types: dict[str, int] = {}
        for _, _, error in self.errors:
            error_type = type(error).__name__
            error_types[error_type] = error_types.get(error_type, 0) + 1
        return error_types

    @property
    def sources(self) -> list[str]:
        """Sources of the recorded errors, in order of occurrence."""
        return [source for _, source, _ in self.errors]

    def get_stats(self) -> dict[str, Any]:
        """Get error statistics."""
        return {
            "total_errors": len(self.errors),
            "error_types": self._count_types(),
            "sources": self.sources,
        }

    def reset(self) -> None:
        """Clear all recorded errors."""
        self.errors.clear()
        self._logger.info("error_tracker_reset")
