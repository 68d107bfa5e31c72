"""Telemetry worker: drains request telemetry from Redis and rolls it up per minute."""

__version__ = "1.0.0"
