"""SQLite connection and schema for the durable telemetry store."""

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import aiosqlite
import structlog

from ..models.errors import StorageError

logger = structlog.get_logger(__name__)

SCHEMA_SQL = """
-- Raw per-request metrics (pruned by the retention cleanup job)
CREATE TABLE IF NOT EXISTS raw_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp_ms INTEGER NOT NULL,
    service TEXT NOT NULL,
    path TEXT NOT NULL,
    status_code INTEGER NOT NULL,
    latency_ms REAL NOT NULL
);

-- Opaque log documents; filter columns are extracted when present
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp_ms INTEGER,
    service TEXT,
    level TEXT,
    message TEXT,
    path TEXT,
    payload TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL
);

-- Per-minute rollups, one row per (window, service, path)
CREATE TABLE IF NOT EXISTS aggregated_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    window_start_ms INTEGER NOT NULL,
    window_end_ms INTEGER NOT NULL,
    window_size TEXT NOT NULL,
    service TEXT NOT NULL,
    path TEXT NOT NULL,
    count INTEGER NOT NULL,
    error_count INTEGER NOT NULL,
    avg_latency_ms REAL NOT NULL,
    p95_latency_ms REAL NOT NULL,
    error_rate REAL NOT NULL,
    created_at_ms INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_raw_metrics_timestamp ON raw_metrics(timestamp_ms);
CREATE INDEX IF NOT EXISTS idx_raw_metrics_service ON raw_metrics(service);

CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp_ms);
CREATE INDEX IF NOT EXISTS idx_logs_service_level ON logs(service, level);

CREATE INDEX IF NOT EXISTS idx_agg_window_start ON aggregated_metrics(window_start_ms);
CREATE INDEX IF NOT EXISTS idx_agg_service ON aggregated_metrics(service, window_start_ms);
"""

# Errors caused by one document rather than by the store itself.
# sqlite3 raises OverflowError for ints outside the 64-bit range.
DOCUMENT_ERRORS = (sqlite3.IntegrityError, sqlite3.InterfaceError, OverflowError)


class TelemetryDatabase:
    """Owns the aiosqlite connection shared by the telemetry stores.

    Writes go through :meth:`insert_rows` / :meth:`execute_write`, which hold
    an ``asyncio.Lock`` for the whole statement-plus-commit so one job's
    transaction never commits or rolls back another job's writes.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Telemetry database is not connected")
        return self._db

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._db is not None:
            return

        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.execute("PRAGMA cache_size=10000")
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

        logger.info("Telemetry database connected", db_path=self._db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("Telemetry database closed")

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list:
        cursor = await self.connection.execute(sql, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return list(rows)

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Any]:
        cursor = await self.connection.execute(sql, params)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    async def execute_write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one write statement and commit it.

        Returns:
            Number of rows affected
        """
        async with self._write_lock:
            conn = self.connection
            try:
                cursor = await conn.execute(sql, params)
                affected = cursor.rowcount
                await cursor.close()
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise
            return affected

    async def insert_rows(
        self, sql: str, rows: Iterable[Sequence[Any]], ordered: bool = False
    ) -> int:
        """Bulk insert rows.

        Ordered inserts are all-or-nothing. Unordered inserts fall back to
        row-by-row when the batch is rejected because of a bad row, so one bad
        document does not block the rest of its chunk.

        Returns:
            Number of rows inserted
        """
        rows = list(rows)
        if not rows:
            return 0

        async with self._write_lock:
            conn = self.connection
            try:
                await conn.executemany(sql, rows)
                await conn.commit()
                return len(rows)
            except DOCUMENT_ERRORS as e:
                await conn.rollback()
                if ordered:
                    raise
                logger.warning(
                    "Bulk insert rejected, retrying row by row",
                    rows=len(rows),
                    error=str(e),
                )
            except Exception:
                await conn.rollback()
                raise

            inserted = 0
            try:
                for row in rows:
                    try:
                        await conn.execute(sql, row)
                        inserted += 1
                    except DOCUMENT_ERRORS as e:
                        logger.warning("Skipping document rejected by store", error=str(e))
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise
            return inserted
