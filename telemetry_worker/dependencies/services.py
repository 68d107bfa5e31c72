"""Service wiring and dependency injection for the telemetry worker."""

# Standard library imports
from typing import Annotated, Awaitable, Callable, Optional

# Third-party imports
import structlog
from fastapi import Depends

# Local application imports
from ..config import Settings, settings
from ..core.lease import JobLease
from ..core.pool import RedisPool, redis_pool
from ..core.resolver import DependencyResolver, QueueDependencies
from ..models.errors import ServiceUnavailableError
from ..services.alerts import ErrorRateAlerter
from ..services.monitoring import MonitoringService
from ..services.worker import TelemetryWorker
from ..storage import (
    SQLiteAggregatedMetricStore,
    SQLiteLogStore,
    SQLiteRawMetricStore,
    TelemetryDatabase,
)

logger = structlog.get_logger(__name__)

# Global references (set by main.py lifespan)
_telemetry_worker: Optional[TelemetryWorker] = None
_monitoring_service: Optional[MonitoringService] = None


def set_telemetry_worker(worker: Optional[TelemetryWorker]) -> None:
    """Set the global worker reference."""
    global _telemetry_worker
    _telemetry_worker = worker


def set_monitoring_service(service: Optional[MonitoringService]) -> None:
    """Set the global monitoring service reference."""
    global _monitoring_service
    _monitoring_service = service


def get_telemetry_worker() -> TelemetryWorker:
    """Get the worker instance."""
    if _telemetry_worker is None:
        raise ServiceUnavailableError("telemetry-worker", "Telemetry worker is not running")
    return _telemetry_worker


def get_monitoring_service() -> MonitoringService:
    """Get the monitoring query service."""
    if _monitoring_service is None:
        raise ServiceUnavailableError("monitoring", "Telemetry store is not connected")
    return _monitoring_service


def queue_dependencies_factory(
    pool: RedisPool, log_sink: SQLiteLogStore
) -> Callable[[], Awaitable[QueueDependencies]]:
    """Factory resolving the queue client (verified with a ping) and the log sink."""

    async def _resolve() -> QueueDependencies:
        queue = await pool.connect()
        logger.info("Queue dependencies resolved")
        return QueueDependencies(queue=queue, log_sink=log_sink)

    return _resolve


def create_telemetry_worker(
    database: TelemetryDatabase,
    pool: RedisPool = redis_pool,
    app_settings: Settings = settings,
) -> TelemetryWorker:
    """Build a worker over the given database and Redis pool."""
    raw_metrics = SQLiteRawMetricStore(database)
    resolver = DependencyResolver(
        queue_dependencies_factory(pool, SQLiteLogStore(database))
    )

    lease = None
    if app_settings.distributed_lease_enabled:
        lease = JobLease(
            pool.get_client(),
            ttl_seconds=app_settings.lease_ttl_seconds,
            key_prefix=app_settings.lease_key_prefix,
        )

    alert_check = None
    if app_settings.alerts_enabled:
        alert_check = ErrorRateAlerter(app_settings.alerts)

    return TelemetryWorker(
        raw_metrics=raw_metrics,
        rollups=SQLiteAggregatedMetricStore(database),
        resolver=resolver,
        config=app_settings.worker,
        alert_check=alert_check,
        lease=lease,
    )


def create_monitoring_service(database: TelemetryDatabase) -> MonitoringService:
    return MonitoringService(
        raw_metrics=SQLiteRawMetricStore(database),
        logs=SQLiteLogStore(database),
        rollups=SQLiteAggregatedMetricStore(database),
    )


# Type aliases for dependency injection
TelemetryWorkerDep = Annotated[TelemetryWorker, Depends(get_telemetry_worker)]
MonitoringServiceDep = Annotated[MonitoringService, Depends(get_monitoring_service)]
