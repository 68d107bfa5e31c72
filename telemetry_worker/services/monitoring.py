"""Read-only queries over the telemetry store for the monitoring API."""

import math
from typing import Any, Callable, Dict, List, Optional

from ..models.metrics import now_ms
from ..storage.sqlite import SQLiteAggregatedMetricStore, SQLiteLogStore, SQLiteRawMetricStore

HOUR_MS = 60 * 60 * 1000


class MonitoringService:
    """Dashboard queries: rollup time series, log search and 24h overview."""

    def __init__(
        self,
        raw_metrics: SQLiteRawMetricStore,
        logs: SQLiteLogStore,
        rollups: SQLiteAggregatedMetricStore,
        clock: Callable[[], int] = now_ms,
    ):
        self._raw_metrics = raw_metrics
        self._logs = logs
        self._rollups = rollups
        self._clock = clock

    async def get_metrics(
        self, service: Optional[str] = None, hours: int = 1
    ) -> List[Dict[str, Any]]:
        """Rollups from the last ``hours`` hours, oldest window first."""
        since = self._clock() - hours * HOUR_MS
        rollups = await self._rollups.find(since, service=service)
        return [rollup.to_dict() for rollup in rollups]

    async def get_logs(
        self,
        service: Optional[str] = None,
        level: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Newest-first page of logs with pagination info."""
        documents, total = await self._logs.find(
            service=service, level=level, search=search, page=page, limit=limit
        )
        return {
            "data": documents,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def get_overview(self, service: Optional[str] = None) -> Dict[str, Any]:
        """Request totals over the last 24 hours of raw metrics."""
        result = await self._raw_metrics.summary(self._clock() - 24 * HOUR_MS, service=service)
        total = result["total_requests"]
        result["error_rate"] = (result["error_count"] / total * 100) if total > 0 else 0
        return result
