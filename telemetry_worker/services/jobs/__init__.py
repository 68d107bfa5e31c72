"""Background jobs of the telemetry worker."""

from .aggregation import aggregate_window, compute_window, run_aggregation, schedule_aggregation
from .cleanup import run_cleanup, schedule_cleanup
from .context import AlertCheck, WorkerContext
from .drain import drain_logs, drain_metrics, run_drain, schedule_drain

__all__ = [
    "AlertCheck",
    "WorkerContext",
    "aggregate_window",
    "compute_window",
    "run_aggregation",
    "schedule_aggregation",
    "run_cleanup",
    "schedule_cleanup",
    "drain_logs",
    "drain_metrics",
    "run_drain",
    "schedule_drain",
]
