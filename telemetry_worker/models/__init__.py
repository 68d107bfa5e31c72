"""Data models for the telemetry worker."""

from .errors import (
    ErrorDetail,
    ErrorResponse,
    ErrorType,
    ServiceUnavailableError,
    StorageError,
    TelemetryWorkerException,
)
from .metrics import (
    AggregatedMetric,
    MetricGroup,
    RawMetric,
    build_rollup,
    p95,
)
from .stats import WorkerRunState, WorkerStats

__all__ = [
    # Metric models
    "AggregatedMetric",
    "MetricGroup",
    "RawMetric",
    "build_rollup",
    "p95",
    # Runtime state
    "WorkerRunState",
    "WorkerStats",
    # Error models
    "ErrorType",
    "ErrorDetail",
    "ErrorResponse",
    "TelemetryWorkerException",
    "StorageError",
    "ServiceUnavailableError",
]
