"""Runtime context shared by reference with every job function."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set

import structlog

from ...config.worker import WorkerConfig
from ...core.lease import JobLease
from ...core.resolver import DependencyResolver
from ...core.timers import TimerRegistry
from ...models.metrics import now_ms
from ...models.stats import WorkerRunState
from ...storage.interfaces import AggregatedMetricStorePort, RawMetricStorePort

logger = structlog.get_logger(__name__)

# (parsed_metric_batch, queue_client) -> anything; the result is unused
AlertCheck = Callable[[List[dict], Any], Awaitable[Any]]


@dataclass
class WorkerContext:
    """Everything a job needs, owned by one :class:`TelemetryWorker`.

    Holding the run flags, counters and timers here instead of in module
    globals lets several independent runtimes coexist (tests, multi-tenant
    hosts) and keeps the mutual-exclusion flags inspectable.
    """

    config: WorkerConfig
    timers: TimerRegistry
    state: WorkerRunState
    raw_metrics: RawMetricStorePort
    rollups: AggregatedMetricStorePort
    resolver: DependencyResolver
    alert_check: Optional[AlertCheck] = None
    lease: Optional[JobLease] = None
    clock: Callable[[], int] = now_ms
    background_tasks: Set[asyncio.Task] = field(default_factory=set)

    def spawn_background(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Start a fire-and-forget task that shutdown can still wait for."""
        task = asyncio.ensure_future(coro)
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)
        return task

    async def wait_for_background(self, timeout: Optional[float] = None) -> bool:
        pending_tasks = {task for task in self.background_tasks if not task.done()}
        if not pending_tasks:
            return True

        _, pending = await asyncio.wait(pending_tasks, timeout=timeout)
        if pending:
            logger.warning("Background tasks still running", pending=len(pending))
            return False
        return True
