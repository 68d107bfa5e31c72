"""Durable telemetry storage."""

from .database import TelemetryDatabase
from .interfaces import AggregatedMetricStorePort, LogStorePort, RawMetricStorePort
from .sqlite import SQLiteAggregatedMetricStore, SQLiteLogStore, SQLiteRawMetricStore

__all__ = [
    "TelemetryDatabase",
    "AggregatedMetricStorePort",
    "LogStorePort",
    "RawMetricStorePort",
    "SQLiteAggregatedMetricStore",
    "SQLiteLogStore",
    "SQLiteRawMetricStore",
]
