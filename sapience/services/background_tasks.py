"""Supervised set of detached asyncio tasks."""

import asyncio
from typing import Awaitable, Optional, Set
import logging

logger = logging.getLogger(__name__)


class BackgroundTaskSet:
    """
    Holds references to fire-and-forget tasks until they finish.

    Callers do not await spawned work. Failures are logged here, in one
    place, and counted, so a failing task never surfaces as an unhandled
    "Task exception was never retrieved" warning.
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name and hasattr(task, "set_name"):
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"[{self.name}] task {task.get_name()} cancelled")
            return

        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error(
                f"[{self.name}] task {task.get_name()} failed: {exc!r}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            self.completed += 1

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait(self, timeout: Optional[float] = None) -> None:
        """Wait for all currently running tasks to finish."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
