"""
Scheduling of election work.

The lifecycle manager never creates tasks on its own; every acquisition and
renewal attempt is handed to a Scheduler as an async callable. This keeps the
manager testable with a deterministic scheduler (see
leaderlabel.testing.ManualScheduler) and lets applications share one
scheduler between several components.

Example:
    >>> scheduler = AsyncioScheduler()
    >>> handle = scheduler.schedule_at_fixed_rate(renew, initial_delay=60.0, period=60.0)
    >>> ...
    >>> handle.cancel()
    >>> await scheduler.shutdown()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Type alias for scheduled callables
ScheduledCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class ScheduledTask(Protocol):
    """
    Handle to a scheduled callable.

    Cancelling is idempotent: only the first call returns True.
    """

    def cancel(self) -> bool:
        """
        Cancel future executions.

        Returns:
            True if this call cancelled the task, False if it was already
            cancelled or had finished
        """
        ...

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called successfully."""
        ...

    @property
    def done(self) -> bool:
        """Whether the task will not run again."""
        ...


@runtime_checkable
class Scheduler(Protocol):
    """
    Protocol for executing async callables in the future.

    Callables may run concurrently with each other and with calls made
    directly on the components that scheduled them.
    """

    def schedule_once(self, callback: ScheduledCallback, delay: float) -> ScheduledTask:
        """
        Run callback once after delay seconds.

        Args:
            callback: Async callable taking no arguments
            delay: Seconds from now; 0 runs as soon as possible

        Returns:
            Cancellable handle
        """
        ...

    def schedule_at_fixed_rate(
        self,
        callback: ScheduledCallback,
        initial_delay: float,
        period: float,
    ) -> ScheduledTask:
        """
        Run callback after initial_delay seconds, then every period seconds.

        Args:
            callback: Async callable taking no arguments
            initial_delay: Seconds before the first run
            period: Seconds between the starts of consecutive runs

        Returns:
            Cancellable handle
        """
        ...


class AsyncioTask:
    """
    ScheduledTask backed by an asyncio.Task.

    A task that cancels its own handle from inside its callback is not
    interrupted: the current run completes and no further run happens.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    def _bind(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def cancel(self) -> bool:
        """Cancel future executions (idempotent)."""
        if self._cancelled or self.done:
            return False
        self._cancelled = True

        task = self._task
        if task is not None and task is not _current_task():
            task.cancel()
        return True

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called successfully."""
        return self._cancelled

    @property
    def done(self) -> bool:
        """Whether the underlying asyncio task has finished."""
        return self._task is not None and self._task.done()

    def __repr__(self) -> str:
        return f"AsyncioTask(name={self.name!r}, cancelled={self._cancelled}, done={self.done})"


class AsyncioScheduler:
    """
    Scheduler running callables as tasks on the running event loop.

    Exceptions escaping a callable are logged; for periodic callables the
    next run still happens. Cancellation of a task is never logged as an
    error.

    Example:
        >>> scheduler = AsyncioScheduler()
        >>> scheduler.schedule_once(attempt_acquire, 0.0)
        >>> ...
        >>> await scheduler.shutdown()
    """

    def __init__(self, name: str = "leaderlabel") -> None:
        self._name = name
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def active_task_count(self) -> int:
        """Number of tasks that have not finished yet."""
        return sum(1 for task in self._tasks if not task.done())

    def schedule_once(self, callback: ScheduledCallback, delay: float) -> AsyncioTask:
        """Run callback once after delay seconds."""
        handle = AsyncioTask(f"{self._name}:{callback_name(callback)}")
        self._spawn(handle, self._run_once(handle, callback, max(0.0, delay)))
        return handle

    def schedule_at_fixed_rate(
        self,
        callback: ScheduledCallback,
        initial_delay: float,
        period: float,
    ) -> AsyncioTask:
        """Run callback after initial_delay, then every period seconds."""
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        handle = AsyncioTask(f"{self._name}:{callback_name(callback)}")
        self._spawn(handle, self._run_fixed_rate(handle, callback, max(0.0, initial_delay), period))
        return handle

    async def shutdown(self) -> None:
        """Cancel every outstanding task and wait for them to finish."""
        self._closed = True
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(
            "Scheduler shut down",
            extra={"scheduler": self._name, "cancelled_tasks": len(tasks)},
        )

    def _spawn(self, handle: AsyncioTask, coro: Coroutine[Any, Any, None]) -> None:
        if self._closed:
            # Close the coroutine so it is not reported as never awaited
            coro.close()
            raise RuntimeError(f"Scheduler '{self._name}' has been shut down")

        task = asyncio.get_running_loop().create_task(coro, name=handle.name)
        handle._bind(task)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_once(
        self,
        handle: AsyncioTask,
        callback: ScheduledCallback,
        delay: float,
    ) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if handle.cancelled:
            return
        await self._invoke(handle, callback)

    async def _run_fixed_rate(
        self,
        handle: AsyncioTask,
        callback: ScheduledCallback,
        initial_delay: float,
        period: float,
    ) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + initial_delay

        while not handle.cancelled:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            if handle.cancelled:
                return

            await self._invoke(handle, callback)

            # Overruns do not cause a burst of catch-up runs
            next_run = max(next_run + period, loop.time())

    async def _invoke(self, handle: AsyncioTask, callback: ScheduledCallback) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Scheduled task failed",
                extra={"task": handle.name, "error": str(e)},
                exc_info=True,
            )


def _current_task() -> asyncio.Task[object] | None:
    with contextlib.suppress(RuntimeError):
        return asyncio.current_task()
    return None


def callback_name(callback: ScheduledCallback) -> str:
    """Readable name of a scheduled callable, for task names and logs."""
    func = getattr(callback, "func", callback)  # functools.partial
    return getattr(func, "__qualname__", None) or repr(func)


__all__ = [
    "ScheduledCallback",
    "ScheduledTask",
    "Scheduler",
    "AsyncioTask",
    "AsyncioScheduler",
    "callback_name",
]
