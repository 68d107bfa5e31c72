"""Telemetry worker runtime: composes and supervises the background jobs.

Usage:
    worker = TelemetryWorker(raw_metrics, rollups, resolver, config=settings.worker)
    await worker.start()
    ...
    worker.get_stats()
    await worker.stop()
"""

import asyncio
from typing import Callable, Optional

import structlog

from ..config.worker import WorkerConfig
from ..core.lease import JobLease
from ..core.resolver import DependencyResolver
from ..core.timers import TimerRegistry
from ..models.metrics import now_ms
from ..models.stats import WorkerRunState, WorkerStats
from ..storage.interfaces import AggregatedMetricStorePort, RawMetricStorePort
from .jobs import (
    AlertCheck,
    WorkerContext,
    schedule_aggregation,
    schedule_cleanup,
    schedule_drain,
)

logger = structlog.get_logger(__name__)


class TelemetryWorker:
    """Start/stop/stats surface over the aggregation, drain and cleanup jobs.

    Key behaviors:
    - ``start`` is refused once ``stop`` has been requested
    - ``stop`` cancels pending timers, then waits (bounded) for running jobs
    - ``get_stats`` returns an immutable snapshot of monotonic counters
    """

    def __init__(
        self,
        raw_metrics: RawMetricStorePort,
        rollups: AggregatedMetricStorePort,
        resolver: DependencyResolver,
        config: Optional[WorkerConfig] = None,
        alert_check: Optional[AlertCheck] = None,
        lease: Optional[JobLease] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the worker.

        Args:
            raw_metrics: Raw metric store (read by aggregation, written by drain)
            rollups: Aggregated metric store
            resolver: Resolves the queue client and log sink once
            config: Worker settings; defaults are used when omitted
            alert_check: Fire-and-forget collaborator for drained metric batches
            lease: Distributed job lease, required when running several replicas
            loop: Event loop for timers (tests pass a fake loop)
            clock: Epoch-milliseconds clock
        """
        self._ctx = WorkerContext(
            config=config or WorkerConfig(),
            timers=TimerRegistry(loop=loop),
            state=WorkerRunState(),
            raw_metrics=raw_metrics,
            rollups=rollups,
            resolver=resolver,
            alert_check=alert_check,
            lease=lease,
            clock=clock,
        )
        self._started = False

    @property
    def context(self) -> WorkerContext:
        return self._ctx

    @property
    def is_running(self) -> bool:
        return self._started and not self._ctx.timers.shutdown_requested

    async def start(self) -> bool:
        """Pre-warm dependencies and schedule the three jobs.

        Returns:
            False if the worker was stopped or is already started
        """
        if self._ctx.timers.shutdown_requested:
            logger.warning("Telemetry worker start refused, shutdown already requested")
            return False
        if self._started:
            logger.warning("Telemetry worker already started")
            return False

        self._started = True
        await self._ctx.resolver.prewarm()

        config = self._ctx.config
        schedule_aggregation(self._ctx)
        schedule_drain(self._ctx, config.drain_warmup_delay_ms)
        schedule_cleanup(self._ctx)

        logger.info(
            "Telemetry worker started",
            log_batch_size=config.log_batch_size,
            metric_batch_size=config.metric_batch_size,
            retention_hours=config.raw_metric_retention_hours,
            distributed_lease=self._ctx.lease is not None,
        )
        return True

    async def stop(self, timeout: Optional[float] = None) -> bool:
        """Stop scheduling, then wait for in-flight jobs.

        Phase 1 (cancel pending timers) takes effect before the first await.
        Phase 2 waits for running job bodies and alert checks, bounded by
        ``timeout`` (defaults to ``shutdown_timeout_seconds``).

        Returns:
            True if everything finished within the timeout
        """
        already_stopped = self._ctx.timers.shutdown_requested
        self._ctx.timers.cancel_all()
        if already_stopped:
            return True

        if timeout is None:
            timeout = self._ctx.config.shutdown_timeout_seconds

        jobs_done = await self._ctx.timers.wait_for_running(timeout)
        background_done = await self._ctx.wait_for_background(timeout)

        logger.info(
            "Telemetry worker stopped",
            clean=jobs_done and background_done,
            **self.get_stats().to_dict(),
        )
        return jobs_done and background_done

    def get_stats(self) -> WorkerStats:
        """Snapshot of the worker counters and running flags."""
        return self._ctx.state.snapshot()
