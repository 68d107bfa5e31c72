"""Resolve-once handles to the worker's shared dependencies."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueueDependencies:
    """Handles the drain job needs: the fast queue client and the log sink."""

    queue: Any
    log_sink: Any


class DependencyResolver:
    """Memoizes one asynchronous resolution for every caller.

    The first call to :meth:`resolve` starts the factory; concurrent and later
    callers await the same task. A failed resolution is forgotten so the next
    tick can retry instead of failing forever.

    Usage:
        resolver = DependencyResolver(build_queue_dependencies)
        deps = await resolver.resolve()
    """

    def __init__(self, factory: Callable[[], Awaitable[QueueDependencies]]):
        self._factory = factory
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_dependencies(cls, dependencies: QueueDependencies) -> "DependencyResolver":
        """Wrap handles the caller already resolved at boot."""

        async def _resolved() -> QueueDependencies:
            return dependencies

        return cls(_resolved)

    @property
    def resolved(self) -> bool:
        return (
            self._task is not None
            and self._task.done()
            and not self._task.cancelled()
            and self._task.exception() is None
        )

    async def resolve(self) -> QueueDependencies:
        """Return the shared dependencies, resolving them on first use."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._factory())
            self._task.add_done_callback(self._forget_failure)
        return await asyncio.shield(self._task)

    async def prewarm(self) -> bool:
        """Resolve ahead of the first job; failures are logged, not raised."""
        try:
            await self.resolve()
            return True
        except Exception as e:
            logger.warning("Dependency pre-warm failed", error=str(e))
            return False

    def _forget_failure(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._task is task:
                self._task = None
