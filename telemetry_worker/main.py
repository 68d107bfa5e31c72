"""Main FastAPI application hosting the telemetry worker."""

# Standard library imports
from contextlib import asynccontextmanager

# Third-party imports
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Local application imports
from .api import health, monitoring
from .config import settings
from .core.pool import redis_pool
from .dependencies.services import (
    create_monitoring_service,
    create_telemetry_worker,
    set_monitoring_service,
    set_telemetry_worker,
)
from .middleware.monitor import MonitorMiddleware
from .models.errors import TelemetryWorkerException
from .storage import TelemetryDatabase
from .utils.error_handlers import (
    general_exception_handler,
    http_exception_handler,
    telemetry_worker_exception_handler,
    validation_exception_handler,
)
from .utils.logging import setup_logging

# Setup logging
setup_logging()
logger = structlog.get_logger()


async def _startup_worker(app: FastAPI, database: TelemetryDatabase) -> None:
    """Create the worker and start its jobs if enabled."""
    worker = create_telemetry_worker(database)
    set_telemetry_worker(worker)
    app.state.telemetry_worker = worker

    if settings.worker_enabled:
        await worker.start()
    else:
        logger.info("Telemetry worker disabled")


async def _shutdown_services(app: FastAPI) -> None:
    """Stop the worker, then release the database and Redis pool."""
    worker = getattr(app.state, "telemetry_worker", None)
    if worker is not None:
        try:
            clean = await worker.stop()
            if not clean:
                logger.warning("Telemetry worker jobs still running at shutdown")
        except Exception as e:
            logger.error("Error stopping telemetry worker", error=str(e))
        set_telemetry_worker(None)

    database = getattr(app.state, "telemetry_db", None)
    if database is not None:
        try:
            await database.close()
        except Exception as e:
            logger.error("Error closing telemetry database", error=str(e))
        set_monitoring_service(None)

    try:
        await redis_pool.close()
    except Exception as e:
        logger.error("Error closing Redis pool", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(
        "Starting telemetry worker service",
        version="1.0.0",
        environment=settings.environment,
    )

    if settings.api_debug:
        logger.warning("Debug mode is enabled - disable in production")

    database = TelemetryDatabase(settings.telemetry_db_path)
    await database.connect()
    app.state.telemetry_db = database
    set_monitoring_service(create_monitoring_service(database))

    await _startup_worker(app, database)

    logger.info("Telemetry worker service startup completed")

    yield

    logger.info("Shutting down telemetry worker service")

    await _shutdown_services(app)

    logger.info("Telemetry worker service shutdown completed")


app = FastAPI(
    title="Telemetry Worker",
    description="Aggregates request telemetry into per-minute rollups",
    version="1.0.0",
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    debug=settings.api_debug,
    lifespan=lifespan,
)

app.add_middleware(MonitorMiddleware)

# Register global error handlers
app.add_exception_handler(TelemetryWorkerException, telemetry_worker_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health.router, tags=["health"])

app.include_router(monitoring.router, prefix="/api/v1", tags=["monitoring"])


def run_server():
    logger.info(f"Starting HTTP server on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        "telemetry_worker.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=120,
    )


if __name__ == "__main__":
    run_server()
