"""Dependencies package for the telemetry worker."""

from .services import (
    MonitoringServiceDep,
    TelemetryWorkerDep,
    create_monitoring_service,
    create_telemetry_worker,
    get_monitoring_service,
    get_telemetry_worker,
    queue_dependencies_factory,
    set_monitoring_service,
    set_telemetry_worker,
)

__all__ = [
    "MonitoringServiceDep",
    "TelemetryWorkerDep",
    "create_monitoring_service",
    "create_telemetry_worker",
    "get_monitoring_service",
    "get_telemetry_worker",
    "queue_dependencies_factory",
    "set_monitoring_service",
    "set_telemetry_worker",
]
