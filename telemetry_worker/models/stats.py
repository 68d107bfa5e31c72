"""Worker run state and its immutable snapshot."""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class WorkerRunState:
    """Mutable per-runtime state: one running flag per job plus counters.

    Counters only ever increase. The runtime is single-threaded, so they are
    incremented without locks.
    """

    aggregation_running: bool = False
    drain_running: bool = False
    cleanup_running: bool = False

    aggregation_runs: int = 0
    rollups_inserted: int = 0
    metrics_inserted: int = 0
    logs_inserted: int = 0
    entries_discarded: int = 0
    alert_check_failures: int = 0
    cleanup_runs: int = 0
    raw_metrics_deleted: int = 0

    def snapshot(self) -> "WorkerStats":
        return WorkerStats(
            aggregation_runs=self.aggregation_runs,
            rollups_inserted=self.rollups_inserted,
            metrics_inserted=self.metrics_inserted,
            logs_inserted=self.logs_inserted,
            entries_discarded=self.entries_discarded,
            alert_check_failures=self.alert_check_failures,
            cleanup_runs=self.cleanup_runs,
            raw_metrics_deleted=self.raw_metrics_deleted,
            aggregation_running=self.aggregation_running,
            drain_running=self.drain_running,
            cleanup_running=self.cleanup_running,
        )


@dataclass(frozen=True)
class WorkerStats:
    """Point-in-time copy of the worker counters."""

    aggregation_runs: int
    rollups_inserted: int
    metrics_inserted: int
    logs_inserted: int
    entries_discarded: int
    alert_check_failures: int
    cleanup_runs: int
    raw_metrics_deleted: int
    aggregation_running: bool
    drain_running: bool
    cleanup_running: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
