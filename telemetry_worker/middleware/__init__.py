"""Middleware package for the telemetry worker."""

from .monitor import MonitorMiddleware

__all__ = ["MonitorMiddleware"]
