"""Minute rollups of raw request metrics.

Runs shortly after every wall-clock minute boundary and summarizes the minute
that just closed, ``[window_end - 60s, window_end)``, into one rollup row per
(service, path).
"""

import time
from typing import List

import structlog

from ...core.timers import MINUTE_MS, delay_to_next_minute
from ...models.metrics import AggregatedMetric, build_rollup
from .batching import insert_in_chunks, yield_to_loop
from .context import WorkerContext

logger = structlog.get_logger(__name__)

JOB_NAME = "aggregation"


def compute_window(now_ms: int) -> tuple:
    """Return ``(window_start_ms, window_end_ms)`` for the minute before ``now_ms``."""
    window_end = now_ms - (now_ms % MINUTE_MS)
    return window_end - MINUTE_MS, window_end


def window_lease_name(window_end_ms: int) -> str:
    """Lease name claiming one window across replicas."""
    return f"{JOB_NAME}:{window_end_ms}"


def schedule_aggregation(ctx: WorkerContext) -> None:
    ctx.timers.schedule_after(
        lambda: run_aggregation(ctx),
        delay_to_next_minute(ctx.config.aggregation_jitter_ms, now_ms=ctx.clock()),
        key=JOB_NAME,
    )


async def run_aggregation(ctx: WorkerContext) -> None:
    """Aggregate the previous minute. Never raises; always reschedules."""
    state = ctx.state
    if state.aggregation_running:
        logger.warning("Aggregation still running, skipping this tick")
        schedule_aggregation(ctx)
        return

    state.aggregation_running = True
    window_start, window_end = compute_window(ctx.clock())
    lease_name = window_lease_name(window_end)
    leased = False
    started = time.perf_counter()
    try:
        if ctx.lease is not None:
            leased = await ctx.lease.acquire(lease_name)
            if not leased:
                return

        inserted = await aggregate_window(ctx, window_start, window_end)
        if leased:
            # Keep the window claimed until the lease TTL runs out
            ctx.lease.retain(lease_name)
            leased = False

        state.aggregation_runs += 1
        state.rollups_inserted += inserted
        logger.info(
            "Aggregation completed",
            window_start=window_start,
            window_end=window_end,
            rollups=inserted,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
    except Exception as e:
        logger.error("Aggregation failed", error=str(e))
    finally:
        if leased:
            # Failed run: another instance may retry this window
            await ctx.lease.release(lease_name)
        state.aggregation_running = False
        schedule_aggregation(ctx)


async def aggregate_window(ctx: WorkerContext, window_start: int, window_end: int) -> int:
    """Build and persist the rollups of one window.

    Returns:
        Number of rollups stored
    """
    groups = await ctx.raw_metrics.group_window(window_start, window_end)
    if not groups:
        logger.debug("No raw metrics in window", window_start=window_start)
        return 0

    rollups: List[AggregatedMetric] = []
    for built, group in enumerate(groups, start=1):
        rollups.append(build_rollup(group, window_start, window_end))
        if built % ctx.config.build_yield_every == 0:
            await yield_to_loop()

    return await insert_in_chunks(ctx.rollups, rollups, ctx.config.insert_chunk_size)
