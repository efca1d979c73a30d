"""Async utility functions for background work and sync contexts."""

import asyncio
import logging
from typing import Any, Coroutine, Set, TypeVar

T = TypeVar('T')

logger = logging.getLogger("obanet.background")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run an async coroutine in a sync context.

    This is useful for Celery tasks that need to call async functions.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine

    Raises:
        RuntimeError: If called from within a running event loop
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    coro.close()
    raise RuntimeError("Cannot run async code from within an event loop")


class BackgroundTaskRunner:
    """
    Fire-and-forget runner for best-effort coroutines.

    Spawned tasks never delay the caller. Failures are logged and
    discarded. Strong references are held until each task finishes so
    the event loop cannot garbage-collect them mid-flight.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """
        Schedule a coroutine detached from the current request.

        Args:
            coro: Coroutine to run
            name: Task name used in log records

        Returns:
            The scheduled task
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Background task %s failed: %s", task.get_name(), exc
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all in-flight tasks, e.g. on shutdown."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
