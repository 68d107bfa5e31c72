"""Services for the telemetry worker."""

from .alerts import ErrorRateAlerter
from .monitoring import MonitoringService
from .worker import TelemetryWorker

__all__ = [
    "ErrorRateAlerter",
    "MonitoringService",
    "TelemetryWorker",
]
