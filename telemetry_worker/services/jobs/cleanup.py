"""Hourly retention cleanup of raw metrics."""

import structlog

from ...core.timers import delay_to_next_hour
from .context import WorkerContext

logger = structlog.get_logger(__name__)

JOB_NAME = "cleanup"


def schedule_cleanup(ctx: WorkerContext) -> None:
    ctx.timers.schedule_after(
        lambda: run_cleanup(ctx),
        delay_to_next_hour(ctx.config.cleanup_jitter_ms, now_ms=ctx.clock()),
        key=JOB_NAME,
    )


async def run_cleanup(ctx: WorkerContext) -> None:
    """Delete raw metrics older than the retention window. Never raises."""
    state = ctx.state
    if state.cleanup_running:
        logger.warning("Cleanup still running, skipping this tick")
        schedule_cleanup(ctx)
        return

    state.cleanup_running = True
    leased = False
    try:
        if ctx.lease is not None:
            leased = await ctx.lease.acquire(JOB_NAME)
            if not leased:
                return

        cutoff = ctx.clock() - ctx.config.get_retention_ms()
        deleted = await ctx.raw_metrics.delete_older_than(cutoff)

        state.cleanup_runs += 1
        state.raw_metrics_deleted += deleted
        logger.info("Cleaned up old raw metrics", deleted=deleted, cutoff=cutoff)
    except Exception as e:
        logger.error("Cleanup failed", error=str(e))
    finally:
        if leased:
            await ctx.lease.release(JOB_NAME)
        state.cleanup_running = False
        schedule_cleanup(ctx)
