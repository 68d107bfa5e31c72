"""Port interfaces for the telemetry stores.

The jobs depend only on these protocols, not on the SQLite adapters.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..models.metrics import AggregatedMetric, MetricGroup


@runtime_checkable
class RawMetricStorePort(Protocol):
    """Raw per-request metrics."""

    async def insert_many(self, docs: Sequence[Dict[str, Any]], ordered: bool = False) -> int:
        """Insert raw metric documents; returns the number stored."""
        ...

    async def group_window(self, start_ms: int, end_ms: int) -> List[MetricGroup]:
        """Group metrics with ``start_ms <= timestamp < end_ms`` by (service, path)."""
        ...

    async def delete_older_than(self, cutoff_ms: int) -> int:
        """Delete metrics with ``timestamp < cutoff_ms``; returns the count deleted."""
        ...


@runtime_checkable
class LogStorePort(Protocol):
    """Opaque JSON log documents."""

    async def insert_many(self, docs: Sequence[Dict[str, Any]], ordered: bool = False) -> int:
        """Store documents verbatim; returns the number stored."""
        ...

    async def find(
        self,
        service: Optional[str] = None,
        level: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Newest-first page of log documents and the total match count."""
        ...


@runtime_checkable
class AggregatedMetricStorePort(Protocol):
    """Per-minute rollups."""

    async def insert_many(
        self, rollups: Sequence[AggregatedMetric], ordered: bool = False
    ) -> int:
        """Insert rollups; returns the number stored."""
        ...

    async def find(
        self, since_ms: int, service: Optional[str] = None
    ) -> List[AggregatedMetric]:
        """Rollups with ``window_start >= since_ms``, oldest first."""
        ...
