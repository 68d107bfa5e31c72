"""Wall-clock aligned timer registry for the background jobs.

Every job reschedules itself through a :class:`TimerRegistry` instead of
running in a ``while True`` loop. The registry keeps a handle for each pending
callback and a reference to each job task it started, so shutdown can cancel
everything that has not fired yet and then wait for the rest.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

JobCallback = Callable[[], Awaitable[Any]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def delay_to_next_minute(jitter_ms: int = 0, now_ms: Optional[int] = None) -> int:
    """Milliseconds until the next wall-clock minute boundary plus ``jitter_ms``.

    The jitter keeps consumers from reading a window whose last writes have
    not landed yet. At an exact boundary the *next* boundary is returned.
    """
    if now_ms is None:
        now_ms = _now_ms()
    return MINUTE_MS - (now_ms % MINUTE_MS) + jitter_ms


def delay_to_next_hour(jitter_ms: int = 0, now_ms: Optional[int] = None) -> int:
    """Milliseconds until the next wall-clock hour boundary plus ``jitter_ms``."""
    if now_ms is None:
        now_ms = _now_ms()
    return HOUR_MS - (now_ms % HOUR_MS) + jitter_ms


class TimerRegistry:
    """Registry of pending delayed callbacks.

    Key behaviors:
    - ``schedule_after`` is a no-op once shutdown was requested
    - a fired timer removes itself from the registry before running its job
    - keyed timers are unique: rescheduling a key replaces its pending timer
    - ``cancel_all`` is idempotent
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Initialize the registry.

        Args:
            loop: Event loop used for ``call_later``. Defaults to the running
                loop at schedule time; tests pass a fake loop with a
                controllable clock.
        """
        self._loop = loop
        self._handles: Set[Any] = set()
        self._keyed: Dict[str, Any] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._shutdown = False

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown

    @property
    def pending_count(self) -> int:
        """Number of timers that have not fired yet."""
        return len(self._handles)

    @property
    def running_tasks(self) -> Set[asyncio.Task]:
        """Job tasks started by fired timers that are still running."""
        return {task for task in self._tasks if not task.done()}

    def schedule_after(
        self, fn: JobCallback, delay_ms: float, key: Optional[str] = None
    ) -> Optional[Any]:
        """Run coroutine function ``fn`` after ``delay_ms`` milliseconds.

        Args:
            fn: Zero-argument coroutine function to run when the timer fires
            delay_ms: Delay in milliseconds (negative values fire immediately)
            key: Optional job key; a pending timer with the same key is cancelled

        Returns:
            The timer handle, or None when shutdown was requested
        """
        if self._shutdown:
            logger.debug("Timer not scheduled, shutdown requested", key=key)
            return None

        loop = self._loop or asyncio.get_running_loop()

        if key is not None:
            previous = self._keyed.pop(key, None)
            if previous is not None:
                previous.cancel()
                self._handles.discard(previous)

        handle = None

        def _fire() -> None:
            self._handles.discard(handle)
            if key is not None and self._keyed.get(key) is handle:
                del self._keyed[key]
            task = asyncio.ensure_future(fn())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        handle = loop.call_later(max(delay_ms, 0) / 1000, _fire)
        self._handles.add(handle)
        if key is not None:
            self._keyed[key] = handle
        return handle

    def cancel_all(self) -> None:
        """Request shutdown and cancel every pending timer."""
        self._shutdown = True
        for handle in list(self._handles):
            handle.cancel()
        cancelled = len(self._handles)
        self._handles.clear()
        self._keyed.clear()
        if cancelled:
            logger.info("Cancelled pending timers", count=cancelled)

    async def wait_for_running(self, timeout: Optional[float] = None) -> bool:
        """Wait for job tasks started by fired timers.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            True if every task finished within the timeout
        """
        tasks = self.running_tasks
        if not tasks:
            return True

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(
                "Job tasks still running after shutdown timeout",
                pending=len(pending),
                timeout=timeout,
            )
            return False
        return True
