"""Pytest configuration and shared fixtures."""

import asyncio
import json
import os
from typing import List
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

# Set test environment before importing config
# Use setdefault to allow environment variables to override defaults
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("REDIS_PORT", "6379")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("WORKER_ENABLED", "false")

from telemetry_worker.config import WorkerConfig
from telemetry_worker.core.resolver import DependencyResolver, QueueDependencies
from telemetry_worker.core.timers import TimerRegistry
from telemetry_worker.models.stats import WorkerRunState
from telemetry_worker.services.jobs import WorkerContext
from telemetry_worker.storage import (
    SQLiteAggregatedMetricStore,
    SQLiteLogStore,
    SQLiteRawMetricStore,
    TelemetryDatabase,
)

# 2024-05-01T12:00:00Z, exactly on a minute and hour boundary
BASE_MS = 1714564800000


class FakeHandle:
    """Timer handle recorded by :class:`FakeLoop`."""

    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Stands in for the event loop's ``call_later`` with a manual clock.

    Only timer bookkeeping is faked; job tasks still run on the real loop.
    """

    def __init__(self):
        self.now = 0.0
        self.handles: List[FakeHandle] = []

    def call_later(self, delay: float, callback) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def last_delay_ms(self) -> float:
        """Delay of the most recently scheduled live timer, in milliseconds."""
        handle = self.pending[-1]
        return round((handle.when - self.now) * 1000, 3)

    def advance(self, seconds: float) -> int:
        """Move the clock forward and fire every due, uncancelled timer."""
        self.now += seconds
        due = [h for h in self.pending if h.when <= self.now]
        for handle in due:
            self.handles.remove(handle)
            handle.callback()
        return len(due)


async def settle(ctx) -> None:
    """Wait for job tasks started by fired timers, and their background tasks."""
    await asyncio.sleep(0)
    assert await ctx.timers.wait_for_running(timeout=5)
    assert await ctx.wait_for_background(timeout=5)


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    mock_client = AsyncMock(spec=redis.Redis)

    # Mock common Redis operations
    mock_client.lpop = AsyncMock(return_value=None)
    mock_client.rpush = AsyncMock(return_value=1)
    mock_client.llen = AsyncMock(return_value=0)
    mock_client.set = AsyncMock(return_value=True)
    mock_client.eval = AsyncMock(return_value=1)
    mock_client.ping = AsyncMock(return_value=True)
    mock_client.aclose = AsyncMock()

    return mock_client


@pytest.fixture
async def database(tmp_path):
    """Connected telemetry database in a temporary directory."""
    db = TelemetryDatabase(str(tmp_path / "telemetry.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def raw_store(database):
    return SQLiteRawMetricStore(database)


@pytest.fixture
def log_store(database):
    return SQLiteLogStore(database)


@pytest.fixture
def rollup_store(database):
    return SQLiteAggregatedMetricStore(database)


@pytest.fixture
def worker_config():
    """Small batches so tests can fill them."""
    return WorkerConfig(
        log_batch_size=5,
        metric_batch_size=5,
        insert_chunk_size=2,
        build_yield_every=2,
    )


@pytest.fixture
def clock():
    """Controllable epoch-ms clock."""

    class Clock:
        def __init__(self):
            self.value = BASE_MS + 5000

        def __call__(self) -> int:
            return self.value

    return Clock()


@pytest.fixture
def worker_context(fake_loop, mock_redis, raw_store, rollup_store, log_store, worker_config, clock):
    """Job context over real SQLite stores, a mocked queue and a fake timer loop."""
    resolver = DependencyResolver.from_dependencies(
        QueueDependencies(queue=mock_redis, log_sink=log_store)
    )
    return WorkerContext(
        config=worker_config,
        timers=TimerRegistry(loop=fake_loop),
        state=WorkerRunState(),
        raw_metrics=raw_store,
        rollups=rollup_store,
        resolver=resolver,
        clock=clock,
    )


def metric_entry(
    timestamp_ms: int,
    status: int = 200,
    latency: float = 10.0,
    service: str = "api",
    path: str = "/api/v1/courses",
) -> dict:
    """Metric document in the shape the monitor middleware pushes."""
    return {
        "service": service,
        "path": path,
        "statusCode": status,
        "latencyMs": latency,
        "timestamp": timestamp_ms,
    }


def serialized(entries) -> List[str]:
    return [json.dumps(entry) for entry in entries]


def load_queue(mock_redis, queues: dict) -> dict:
    """Back ``mock_redis.lpop`` with in-memory lists keyed by queue name."""

    async def lpop(key, count=None):
        items = queues.get(key, [])
        if not items:
            return None
        if count is None:
            queues[key] = items[1:]
            return items[0]
        queues[key] = items[count:]
        return items[:count]

    mock_redis.lpop.side_effect = lpop
    return queues
