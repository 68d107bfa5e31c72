"""Unit tests for the shared dependency resolver."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from telemetry_worker.core.resolver import DependencyResolver, QueueDependencies


@pytest.fixture
def dependencies():
    return QueueDependencies(queue=AsyncMock(), log_sink=AsyncMock())


class TestDependencyResolver:
    """Tests for resolve-once behavior."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_resolution(self, dependencies):
        calls = 0
        gate = asyncio.Event()

        async def factory():
            nonlocal calls
            calls += 1
            await gate.wait()
            return dependencies

        resolver = DependencyResolver(factory)
        waiters = [asyncio.ensure_future(resolver.resolve()) for _ in range(5)]
        await asyncio.sleep(0)
        gate.set()

        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert all(result is dependencies for result in results)
        assert resolver.resolved is True

    @pytest.mark.asyncio
    async def test_later_calls_reuse_result(self, dependencies):
        factory = AsyncMock(return_value=dependencies)
        resolver = DependencyResolver(factory)

        await resolver.resolve()
        await resolver.resolve()

        factory.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_resolution_is_retried(self, dependencies):
        factory = AsyncMock(side_effect=[ConnectionError("redis down"), dependencies])
        resolver = DependencyResolver(factory)

        with pytest.raises(ConnectionError):
            await resolver.resolve()
        assert resolver.resolved is False

        assert await resolver.resolve() is dependencies
        assert factory.await_count == 2

    @pytest.mark.asyncio
    async def test_prewarm_reports_failure_without_raising(self):
        resolver = DependencyResolver(AsyncMock(side_effect=ConnectionError("nope")))
        assert await resolver.prewarm() is False

    @pytest.mark.asyncio
    async def test_prewarm_success(self, dependencies):
        resolver = DependencyResolver(AsyncMock(return_value=dependencies))
        assert await resolver.prewarm() is True
        assert resolver.resolved is True

    @pytest.mark.asyncio
    async def test_from_dependencies(self, dependencies):
        resolver = DependencyResolver.from_dependencies(dependencies)
        assert await resolver.resolve() is dependencies

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_resolution(self, dependencies):
        gate = asyncio.Event()

        async def factory():
            await gate.wait()
            return dependencies

        resolver = DependencyResolver(factory)
        first = asyncio.ensure_future(resolver.resolve())
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        gate.set()
        assert await resolver.resolve() is dependencies
