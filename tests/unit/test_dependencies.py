"""Unit tests for service wiring."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from telemetry_worker.config import Settings
from telemetry_worker.core.lease import JobLease
from telemetry_worker.core.pool import RedisPool
from telemetry_worker.dependencies.services import (
    create_telemetry_worker,
    get_telemetry_worker,
    queue_dependencies_factory,
)
from telemetry_worker.models.errors import ServiceUnavailableError
from telemetry_worker.services.alerts import ErrorRateAlerter


@pytest.fixture
def mock_pool(mock_redis):
    pool = MagicMock(spec=RedisPool)
    pool.get_client.return_value = mock_redis
    pool.connect = AsyncMock(return_value=mock_redis)
    return pool


class TestCreateTelemetryWorker:
    """Tests for building the worker from settings."""

    @pytest.mark.asyncio
    async def test_defaults_have_alerts_and_no_lease(self, database, mock_pool):
        worker = create_telemetry_worker(
            database, pool=mock_pool, app_settings=Settings(_env_file=None)
        )

        assert worker.context.lease is None
        assert isinstance(worker.context.alert_check, ErrorRateAlerter)
        assert worker.context.config.log_batch_size == 100

    @pytest.mark.asyncio
    async def test_lease_enabled(self, database, mock_pool, mock_redis):
        app_settings = Settings(
            _env_file=None,
            distributed_lease_enabled=True,
            lease_ttl_seconds=60,
            alerts_enabled=False,
        )

        worker = create_telemetry_worker(database, pool=mock_pool, app_settings=app_settings)

        assert isinstance(worker.context.lease, JobLease)
        assert worker.context.alert_check is None


class TestQueueDependencies:
    """Tests for the queue dependency factory."""

    @pytest.mark.asyncio
    async def test_factory_connects_pool(self, mock_pool, mock_redis, log_store):
        deps = await queue_dependencies_factory(mock_pool, log_store)()

        mock_pool.connect.assert_awaited_once()
        assert deps.queue is mock_redis
        assert deps.log_sink is log_store

    def test_worker_missing_raises_service_unavailable(self):
        with pytest.raises(ServiceUnavailableError):
            get_telemetry_worker()
