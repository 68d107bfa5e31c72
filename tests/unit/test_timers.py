"""Unit tests for the timer registry and boundary delays."""

import asyncio

import pytest

from telemetry_worker.core.timers import (
    HOUR_MS,
    MINUTE_MS,
    TimerRegistry,
    delay_to_next_hour,
    delay_to_next_minute,
)

from conftest import BASE_MS


class TestBoundaryDelays:
    """Tests for wall-clock aligned delays."""

    def test_delay_to_next_minute_mid_minute(self):
        assert delay_to_next_minute(0, now_ms=BASE_MS + 15_000) == 45_000

    def test_delay_to_next_minute_adds_jitter(self):
        assert delay_to_next_minute(2000, now_ms=BASE_MS + 59_000) == 3000

    def test_delay_at_exact_boundary_targets_next_boundary(self):
        assert delay_to_next_minute(0, now_ms=BASE_MS) == MINUTE_MS

    def test_delay_to_next_hour(self):
        now = BASE_MS + 30 * MINUTE_MS
        assert delay_to_next_hour(5000, now_ms=now) == 30 * MINUTE_MS + 5000

    def test_delay_to_next_hour_at_boundary(self):
        assert delay_to_next_hour(0, now_ms=BASE_MS) == HOUR_MS


class TestTimerRegistry:
    """Tests for scheduling, firing and cancellation."""

    @pytest.mark.asyncio
    async def test_fired_timer_runs_callback_and_leaves_registry(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        calls = []

        async def job():
            calls.append(registry.pending_count)

        registry.schedule_after(job, 1000)
        assert registry.pending_count == 1

        fake_loop.advance(1.0)
        assert await registry.wait_for_running(timeout=1)

        # The handle was removed before the job ran
        assert calls == [0]
        assert registry.pending_count == 0

    @pytest.mark.asyncio
    async def test_timer_not_fired_before_delay(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        calls = []

        async def job():
            calls.append(1)

        registry.schedule_after(job, 5000)
        assert fake_loop.advance(4.999) == 0
        assert calls == []

    @pytest.mark.asyncio
    async def test_schedule_after_shutdown_is_noop(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        registry.cancel_all()

        async def job():
            pass

        assert registry.schedule_after(job, 10) is None
        assert registry.pending_count == 0
        assert fake_loop.pending == []

    @pytest.mark.asyncio
    async def test_cancel_all_prevents_pending_timers_from_firing(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        calls = []

        async def job():
            calls.append(1)

        registry.schedule_after(job, 1000, key="a")
        registry.schedule_after(job, 2000, key="b")
        registry.cancel_all()

        assert fake_loop.advance(10) == 0
        assert calls == []
        assert registry.shutdown_requested is True

    def test_cancel_all_is_idempotent(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        registry.cancel_all()
        registry.cancel_all()
        assert registry.shutdown_requested is True
        assert registry.pending_count == 0

    @pytest.mark.asyncio
    async def test_keyed_timer_replaces_pending_timer(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        calls = []

        async def first():
            calls.append("first")

        async def second():
            calls.append("second")

        registry.schedule_after(first, 1000, key="drain")
        registry.schedule_after(second, 500, key="drain")
        assert registry.pending_count == 1

        fake_loop.advance(2)
        await registry.wait_for_running(timeout=1)
        assert calls == ["second"]

    @pytest.mark.asyncio
    async def test_negative_delay_fires_immediately(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        calls = []

        async def job():
            calls.append(1)

        registry.schedule_after(job, -50)
        assert fake_loop.last_delay_ms() == 0
        fake_loop.advance(0)
        await registry.wait_for_running(timeout=1)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_wait_for_running_times_out(self, fake_loop):
        registry = TimerRegistry(loop=fake_loop)
        release = asyncio.Event()

        async def slow_job():
            await release.wait()

        registry.schedule_after(slow_job, 0)
        fake_loop.advance(0)
        await asyncio.sleep(0)

        assert len(registry.running_tasks) == 1
        assert await registry.wait_for_running(timeout=0.01) is False

        release.set()
        assert await registry.wait_for_running(timeout=1) is True

    @pytest.mark.asyncio
    async def test_uses_running_loop_by_default(self):
        registry = TimerRegistry()
        done = asyncio.Event()

        async def job():
            done.set()

        registry.schedule_after(job, 1)
        await asyncio.wait_for(done.wait(), timeout=1)
