"""Unit tests for the queue drain job."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from telemetry_worker.core.resolver import DependencyResolver, QueueDependencies
from telemetry_worker.services.jobs import run_drain, schedule_drain
from telemetry_worker.services.jobs.batching import parse_entries, pop_batch

from conftest import BASE_MS, load_queue, metric_entry, serialized, settle

LOGS = "monitoring:logs"
METRICS = "monitoring:metrics"


def log_entries(count):
    return serialized(
        {"service": "api", "level": "info", "message": f"GET /courses {i}", "timestamp": BASE_MS + i}
        for i in range(count)
    )


class TestParseEntries:
    """Tests for guarded parsing of queue entries."""

    def test_drops_unparsable_entries_individually(self):
        docs, discarded = parse_entries(['{"a": 1}', "{not json", '{"b": 2}', None, "[1, 2]"])

        assert docs == [{"a": 1}, {"b": 2}]
        assert discarded == 3

    @pytest.mark.asyncio
    async def test_pop_batch_handles_empty_and_single(self, mock_redis):
        mock_redis.lpop.return_value = None
        assert await pop_batch(mock_redis, LOGS, 10) == []

        mock_redis.lpop.return_value = "only"
        assert await pop_batch(mock_redis, LOGS, 10) == ["only"]
        mock_redis.lpop.assert_awaited_with(LOGS, 10)


class TestRunDrain:
    """Tests for one drain tick and its adaptive cadence."""

    @pytest.mark.asyncio
    async def test_full_log_batch_drains_again_immediately(
        self, worker_context, mock_redis, fake_loop, log_store
    ):
        queues = load_queue(mock_redis, {LOGS: log_entries(7)})

        await run_drain(worker_context)

        assert worker_context.state.logs_inserted == 5
        assert len(queues[LOGS]) == 2
        assert fake_loop.last_delay_ms() == worker_context.config.drain_busy_delay_ms
        _, total = await log_store.find()
        assert total == 5

    @pytest.mark.asyncio
    async def test_empty_queues_back_off_to_idle(self, worker_context, mock_redis, fake_loop):
        load_queue(mock_redis, {})

        await run_drain(worker_context)

        assert fake_loop.last_delay_ms() == worker_context.config.drain_idle_delay_ms
        assert worker_context.state.snapshot().drain_running is False

    @pytest.mark.asyncio
    async def test_partial_batches_back_off_to_idle(self, worker_context, mock_redis, fake_loop):
        load_queue(
            mock_redis,
            {LOGS: log_entries(2), METRICS: serialized([metric_entry(BASE_MS)])},
        )

        await run_drain(worker_context)

        assert worker_context.state.logs_inserted == 2
        assert worker_context.state.metrics_inserted == 1
        assert fake_loop.last_delay_ms() == worker_context.config.drain_idle_delay_ms

    @pytest.mark.asyncio
    async def test_full_batch_with_bad_entries_still_counts_as_backlog(
        self, worker_context, mock_redis, fake_loop
    ):
        entries = serialized([metric_entry(BASE_MS + i) for i in range(4)]) + ["{broken"]
        load_queue(mock_redis, {METRICS: entries})

        await run_drain(worker_context)

        assert worker_context.state.metrics_inserted == 4
        assert worker_context.state.entries_discarded == 1
        assert fake_loop.last_delay_ms() == worker_context.config.drain_busy_delay_ms

    @pytest.mark.asyncio
    async def test_malformed_entry_does_not_block_batch(
        self, worker_context, mock_redis, raw_store
    ):
        entries = [
            json.dumps(metric_entry(BASE_MS, status=200)),
            "not json at all",
            json.dumps(metric_entry(BASE_MS + 1, status=404)),
        ]
        load_queue(mock_redis, {METRICS: entries})

        await run_drain(worker_context)

        assert await raw_store.count() == 2
        assert worker_context.state.entries_discarded == 1

    @pytest.mark.asyncio
    async def test_out_of_range_numbers_do_not_block_batch(
        self, worker_context, mock_redis, raw_store
    ):
        entries = [
            json.dumps(metric_entry(BASE_MS)),
            json.dumps(metric_entry(2**70)),
            '{"service": "api", "path": "/x", "statusCode": 1e400, '
            f'"latencyMs": 5, "timestamp": {BASE_MS}}}',
            json.dumps(metric_entry(BASE_MS + 1, status=2**70)),
            json.dumps(metric_entry(BASE_MS + 2)),
        ]
        load_queue(mock_redis, {METRICS: entries})

        await run_drain(worker_context)

        assert await raw_store.count() == 2
        assert worker_context.state.metrics_inserted == 2

    @pytest.mark.asyncio
    async def test_alert_check_receives_parsed_batch(self, worker_context, mock_redis):
        docs = [metric_entry(BASE_MS, status=500), metric_entry(BASE_MS + 1)]
        load_queue(mock_redis, {METRICS: serialized(docs)})
        worker_context.alert_check = AsyncMock()

        await run_drain(worker_context)
        await settle(worker_context)

        worker_context.alert_check.assert_awaited_once_with(docs, mock_redis)

    @pytest.mark.asyncio
    async def test_alert_check_failure_is_isolated(self, worker_context, mock_redis, raw_store):
        load_queue(mock_redis, {METRICS: serialized([metric_entry(BASE_MS)])})
        worker_context.alert_check = AsyncMock(side_effect=RuntimeError("alerting broken"))

        await run_drain(worker_context)
        await settle(worker_context)

        assert await raw_store.count() == 1
        assert worker_context.state.metrics_inserted == 1
        assert worker_context.state.alert_check_failures == 1
        assert worker_context.timers.pending_count == 1

    @pytest.mark.asyncio
    async def test_alert_check_skipped_without_inserts(self, worker_context, mock_redis):
        load_queue(mock_redis, {METRICS: ["{bad", "also bad"]})
        worker_context.alert_check = AsyncMock()

        await run_drain(worker_context)
        await settle(worker_context)

        worker_context.alert_check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_slow_alert_check_does_not_block_drain(self, worker_context, mock_redis):
        gate = asyncio.Event()

        async def slow_check(batch, queue):
            await gate.wait()

        load_queue(mock_redis, {METRICS: serialized([metric_entry(BASE_MS)])})
        worker_context.alert_check = slow_check

        await run_drain(worker_context)

        assert worker_context.state.drain_running is False
        assert len(worker_context.background_tasks) == 1
        gate.set()
        await settle(worker_context)

    @pytest.mark.asyncio
    async def test_log_sink_failure_does_not_stop_metric_drain(
        self, worker_context, mock_redis, raw_store
    ):
        broken_sink = AsyncMock()
        broken_sink.insert_many.side_effect = RuntimeError("log store down")
        worker_context.resolver = DependencyResolver.from_dependencies(
            QueueDependencies(queue=mock_redis, log_sink=broken_sink)
        )
        load_queue(
            mock_redis,
            {LOGS: log_entries(1), METRICS: serialized([metric_entry(BASE_MS)])},
        )

        await run_drain(worker_context)

        assert worker_context.state.logs_inserted == 0
        assert await raw_store.count() == 1

    @pytest.mark.asyncio
    async def test_resolver_failure_reschedules_idle(self, worker_context, fake_loop):
        worker_context.resolver = DependencyResolver(
            AsyncMock(side_effect=ConnectionError("redis unreachable"))
        )

        await run_drain(worker_context)

        assert worker_context.state.drain_running is False
        assert fake_loop.last_delay_ms() == worker_context.config.drain_idle_delay_ms

    @pytest.mark.asyncio
    async def test_skips_when_already_running(self, worker_context, mock_redis, fake_loop):
        worker_context.state.drain_running = True

        await run_drain(worker_context)

        mock_redis.lpop.assert_not_awaited()
        assert fake_loop.last_delay_ms() == worker_context.config.drain_idle_delay_ms

    @pytest.mark.asyncio
    async def test_backlog_drains_through_timers(self, worker_context, mock_redis, fake_loop):
        queues = load_queue(mock_redis, {LOGS: log_entries(12)})
        schedule_drain(worker_context, 0)

        # 5 + 5 + 2: two busy ticks then an idle reschedule
        for _ in range(3):
            fake_loop.advance(fake_loop.last_delay_ms() / 1000)
            await settle(worker_context)

        assert queues[LOGS] == []
        assert worker_context.state.logs_inserted == 12
        assert fake_loop.last_delay_ms() == worker_context.config.drain_idle_delay_ms
