"""Backpressure-aware drain of the Redis log and metric queues.

Each tick pops at most one batch per list. A batch that came back full means
a backlog, so the next tick runs almost immediately; otherwise the job backs
off to the idle cadence instead of busy-polling an empty queue.
"""

from typing import Any, List

import structlog

from ...core.resolver import QueueDependencies
from .batching import insert_in_chunks, parse_entries, pop_batch
from .context import WorkerContext

logger = structlog.get_logger(__name__)

JOB_NAME = "drain"


def schedule_drain(ctx: WorkerContext, delay_ms: int) -> None:
    ctx.timers.schedule_after(lambda: run_drain(ctx), delay_ms, key=JOB_NAME)


async def run_drain(ctx: WorkerContext) -> None:
    """Drain one batch of logs and one batch of metrics. Never raises."""
    state = ctx.state
    config = ctx.config
    if state.drain_running:
        logger.warning("Drain still running, skipping this tick")
        schedule_drain(ctx, config.drain_idle_delay_ms)
        return

    state.drain_running = True
    leased = False
    drain_immediately = False
    try:
        if ctx.lease is not None:
            leased = await ctx.lease.acquire(JOB_NAME)
            if not leased:
                return

        deps = await ctx.resolver.resolve()

        try:
            if await drain_logs(ctx, deps):
                drain_immediately = True
        except Exception as e:
            logger.error("Log drain failed", error=str(e))

        try:
            if await drain_metrics(ctx, deps):
                drain_immediately = True
        except Exception as e:
            logger.error("Metric drain failed", error=str(e))
    except Exception as e:
        logger.error("Drain tick failed", error=str(e))
    finally:
        if leased:
            await ctx.lease.release(JOB_NAME)
        state.drain_running = False
        schedule_drain(
            ctx,
            config.drain_busy_delay_ms if drain_immediately else config.drain_idle_delay_ms,
        )


async def drain_logs(ctx: WorkerContext, deps: QueueDependencies) -> bool:
    """Move one batch of log entries into the log sink.

    Returns:
        True if the batch was full (more entries are probably waiting)
    """
    batch_size = ctx.config.log_batch_size
    raw = await pop_batch(deps.queue, ctx.config.queue_logs_key, batch_size)
    if not raw:
        return False

    docs, discarded = parse_entries(raw)
    ctx.state.entries_discarded += discarded

    if docs:
        inserted = await insert_in_chunks(deps.log_sink, docs, ctx.config.insert_chunk_size)
        ctx.state.logs_inserted += inserted
        logger.debug("Drained logs", popped=len(raw), inserted=inserted)

    return len(raw) >= batch_size


async def drain_metrics(ctx: WorkerContext, deps: QueueDependencies) -> bool:
    """Move one batch of metric entries into the raw-metric store.

    Returns:
        True if the batch was full (more entries are probably waiting)
    """
    batch_size = ctx.config.metric_batch_size
    raw = await pop_batch(deps.queue, ctx.config.queue_metrics_key, batch_size)
    if not raw:
        return False

    docs, discarded = parse_entries(raw)
    ctx.state.entries_discarded += discarded

    if docs:
        inserted = await insert_in_chunks(ctx.raw_metrics, docs, ctx.config.insert_chunk_size)
        ctx.state.metrics_inserted += inserted
        logger.debug("Drained metrics", popped=len(raw), inserted=inserted)

        if inserted and ctx.alert_check is not None:
            ctx.spawn_background(run_alert_check(ctx, docs, deps.queue))

    return len(raw) >= batch_size


async def run_alert_check(ctx: WorkerContext, batch: List[dict], queue: Any) -> None:
    """Run the alert collaborator; its failures never reach ingestion."""
    try:
        await ctx.alert_check(batch, queue)
    except Exception as e:
        ctx.state.alert_check_failures += 1
        logger.error("Alert check failed", error=str(e))
