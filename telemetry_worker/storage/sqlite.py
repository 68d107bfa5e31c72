"""SQLite adapters for the raw-metric, log and rollup stores."""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from ..models.metrics import (
    AggregatedMetric,
    MetricGroup,
    RawMetric,
    now_ms,
    to_epoch_ms,
)
from .database import TelemetryDatabase

logger = structlog.get_logger(__name__)


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so ``text`` matches literally (with ``ESCAPE '\\'``)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteRawMetricStore:
    """Raw metrics in the ``raw_metrics`` table."""

    INSERT_SQL = """
        INSERT INTO raw_metrics (timestamp_ms, service, path, status_code, latency_ms)
        VALUES (?, ?, ?, ?, ?)
    """

    def __init__(self, database: TelemetryDatabase):
        self._db = database

    async def insert_many(self, docs: Sequence[Dict[str, Any]], ordered: bool = False) -> int:
        rows = []
        for doc in docs:
            try:
                metric = RawMetric.from_dict(doc)
            except (KeyError, TypeError, ValueError, OverflowError) as e:
                if ordered:
                    raise
                logger.warning("Skipping malformed raw metric", error=str(e))
                continue
            rows.append(
                (
                    metric.timestamp_ms,
                    metric.service,
                    metric.path,
                    metric.status_code,
                    metric.latency_ms,
                )
            )
        return await self._db.insert_rows(self.INSERT_SQL, rows, ordered=ordered)

    async def group_window(self, start_ms: int, end_ms: int) -> List[MetricGroup]:
        rows = await self._db.fetch_all(
            """
            SELECT
                service,
                path,
                COUNT(*) as count,
                SUM(CASE WHEN status_code >= 400 THEN 1 ELSE 0 END) as error_count,
                SUM(latency_ms) as total_latency,
                json_group_array(latency_ms) as latencies
            FROM raw_metrics
            WHERE timestamp_ms >= ? AND timestamp_ms < ?
            GROUP BY service, path
            """,
            (start_ms, end_ms),
        )
        return [
            MetricGroup(
                service=row["service"],
                path=row["path"],
                count=row["count"],
                error_count=row["error_count"] or 0,
                total_latency=row["total_latency"] or 0,
                latencies=json.loads(row["latencies"]),
            )
            for row in rows
        ]

    async def delete_older_than(self, cutoff_ms: int) -> int:
        return await self._db.execute_write(
            "DELETE FROM raw_metrics WHERE timestamp_ms < ?", (cutoff_ms,)
        )

    async def count(self) -> int:
        row = await self._db.fetch_one("SELECT COUNT(*) as total FROM raw_metrics")
        return row["total"] if row else 0

    async def summary(self, since_ms: int, service: Optional[str] = None) -> Dict[str, Any]:
        """Request totals since ``since_ms`` for the overview stats."""
        params: List[Any] = [since_ms]
        service_filter = ""
        if service:
            service_filter = "AND service = ?"
            params.append(service)

        row = await self._db.fetch_one(
            f"""
            SELECT
                COUNT(*) as total_requests,
                AVG(latency_ms) as avg_latency,
                SUM(CASE WHEN status_code >= 400 THEN 1 ELSE 0 END) as error_count
            FROM raw_metrics
            WHERE timestamp_ms >= ? {service_filter}
            """,
            params,
        )

        if not row or row["total_requests"] == 0:
            return {"total_requests": 0, "avg_latency": 0, "error_count": 0}

        return {
            "total_requests": row["total_requests"],
            "avg_latency": row["avg_latency"] or 0,
            "error_count": row["error_count"] or 0,
        }


class SQLiteLogStore:
    """Opaque log documents in the ``logs`` table."""

    INSERT_SQL = """
        INSERT INTO logs (timestamp_ms, service, level, message, path, payload, created_at_ms)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """

    def __init__(self, database: TelemetryDatabase):
        self._db = database

    @staticmethod
    def _text(doc: Dict[str, Any], key: str) -> Optional[str]:
        value = doc.get(key)
        return value if isinstance(value, str) else None

    def _to_row(self, doc: Dict[str, Any], created_at_ms: int) -> tuple:
        try:
            timestamp_ms: Optional[int] = to_epoch_ms(doc.get("timestamp"))
        except (TypeError, ValueError, OverflowError):
            timestamp_ms = None

        return (
            timestamp_ms,
            self._text(doc, "service"),
            self._text(doc, "level"),
            self._text(doc, "message"),
            self._text(doc, "path"),
            json.dumps(doc, default=str),
            created_at_ms,
        )

    async def insert_many(self, docs: Sequence[Dict[str, Any]], ordered: bool = False) -> int:
        created_at_ms = now_ms()
        rows = [self._to_row(doc, created_at_ms) for doc in docs]
        return await self._db.insert_rows(self.INSERT_SQL, rows, ordered=ordered)

    async def find(
        self,
        service: Optional[str] = None,
        level: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        clauses: List[str] = []
        params: List[Any] = []
        if service:
            clauses.append("service = ?")
            params.append(service)
        if level:
            clauses.append("level = ?")
            params.append(level)
        if search:
            clauses.append("(message LIKE ? ESCAPE '\\' OR path LIKE ? ESCAPE '\\')")
            pattern = f"%{escape_like(search)}%"
            params.extend([pattern, pattern])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        offset = (page - 1) * limit

        rows = await self._db.fetch_all(
            f"""
            SELECT id, payload FROM logs
            {where}
            ORDER BY COALESCE(timestamp_ms, created_at_ms) DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        )
        total_row = await self._db.fetch_one(
            f"SELECT COUNT(*) as total FROM logs {where}", params
        )

        documents = []
        for row in rows:
            doc = json.loads(row["payload"])
            if isinstance(doc, dict):
                doc = {"id": row["id"], **doc}
            documents.append(doc)

        return documents, total_row["total"] if total_row else 0


class SQLiteAggregatedMetricStore:
    """Rollups in the ``aggregated_metrics`` table."""

    INSERT_SQL = """
        INSERT INTO aggregated_metrics (
            window_start_ms, window_end_ms, window_size, service, path,
            count, error_count, avg_latency_ms, p95_latency_ms, error_rate,
            created_at_ms
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    def __init__(self, database: TelemetryDatabase):
        self._db = database

    async def insert_many(
        self, rollups: Sequence[AggregatedMetric], ordered: bool = False
    ) -> int:
        rows = [
            (
                r.window_start_ms,
                r.window_end_ms,
                r.window_size,
                r.service,
                r.path,
                r.count,
                r.error_count,
                r.avg_latency_ms,
                r.p95_latency_ms,
                r.error_rate,
                r.created_at_ms,
            )
            for r in rollups
        ]
        return await self._db.insert_rows(self.INSERT_SQL, rows, ordered=ordered)

    async def find(
        self, since_ms: int, service: Optional[str] = None
    ) -> List[AggregatedMetric]:
        params: List[Any] = [since_ms]
        service_filter = ""
        if service:
            service_filter = "AND service = ?"
            params.append(service)

        rows = await self._db.fetch_all(
            f"""
            SELECT * FROM aggregated_metrics
            WHERE window_start_ms >= ? {service_filter}
            ORDER BY window_start_ms ASC, id ASC
            """,
            params,
        )
        return [
            AggregatedMetric(
                id=row["id"],
                window_start_ms=row["window_start_ms"],
                window_end_ms=row["window_end_ms"],
                window_size=row["window_size"],
                service=row["service"],
                path=row["path"],
                count=row["count"],
                error_count=row["error_count"],
                avg_latency_ms=row["avg_latency_ms"],
                p95_latency_ms=row["p95_latency_ms"],
                error_rate=row["error_rate"],
                created_at_ms=row["created_at_ms"],
            )
            for row in rows
        ]
