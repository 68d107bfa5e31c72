"""Monitoring dashboard endpoints over the telemetry store."""

from typing import Optional

import structlog
from fastapi import APIRouter, Query

from ..dependencies.services import MonitoringServiceDep, TelemetryWorkerDep

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/monitoring")


@router.get("/metrics", summary="Per-minute rollups")
async def get_metrics(
    monitoring: MonitoringServiceDep,
    service: Optional[str] = Query(None, description="Filter by service name"),
    hours: int = Query(1, ge=1, le=24, description="How far back to look"),
):
    """Aggregated metrics for the requested period, oldest window first."""
    data = await monitoring.get_metrics(service=service, hours=hours)
    return {"data": data, "count": len(data)}


@router.get("/logs", summary="Search request logs")
async def get_logs(
    monitoring: MonitoringServiceDep,
    service: Optional[str] = Query(None),
    level: Optional[str] = Query(None, description="info, warn or error"),
    search: Optional[str] = Query(
        None, description="Literal substring matched against message or path"
    ),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
):
    """Newest-first page of stored log entries."""
    return await monitoring.get_logs(
        service=service, level=level, search=search, page=page, limit=limit
    )


@router.get("/stats", summary="Last 24 hours overview")
async def get_stats(
    monitoring: MonitoringServiceDep,
    service: Optional[str] = Query(None),
):
    """Request count, average latency and error rate over raw metrics."""
    return await monitoring.get_overview(service=service)


@router.get("/worker", summary="Background worker counters")
async def get_worker_stats(worker: TelemetryWorkerDep):
    """Snapshot of the aggregation, drain and cleanup counters."""
    return {"running": worker.is_running, **worker.get_stats().to_dict()}
