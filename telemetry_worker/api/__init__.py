"""API routers for the telemetry worker."""

from . import health, monitoring

__all__ = ["health", "monitoring"]
