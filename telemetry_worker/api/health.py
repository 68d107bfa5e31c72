"""Health check endpoints."""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.pool import redis_pool
from ..dependencies.services import TelemetryWorkerDep

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/health", summary="Basic health check")
async def basic_health_check():
    """Basic liveness check that touches no dependencies."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "telemetry-worker",
    }


@router.get("/health/worker", summary="Background worker health")
async def worker_health_check(worker: TelemetryWorkerDep):
    """Report whether the background jobs are scheduled, with their counters."""
    stats = worker.get_stats().to_dict()
    response_data = {
        "status": "healthy" if worker.is_running else "stopped",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stats": stats,
        "redis_pool": redis_pool.pool_stats,
    }

    if not worker.is_running:
        logger.warning("Worker health check reports stopped worker")
        return JSONResponse(status_code=503, content=response_data)
    return response_data
