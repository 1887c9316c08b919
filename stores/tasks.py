"""Detached background persistence tasks."""

import asyncio
import logging
from typing import Coroutine

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Runs fire-and-forget coroutines on the current event loop.

    Mutations apply to memory first and hand their storage work to
    ``spawn``. A failed task is logged and otherwise ignored: the in-memory
    document is not rolled back. ``drain`` waits until nothing is in flight,
    which callers use before replacing or reloading a chapter.
    """

    def __init__(self, name: str = "store"):
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, label: str) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it. Needs a running loop."""
        task = asyncio.get_running_loop().create_task(coro, name=f"{self.name}:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self) -> None:
        """Wait for every task spawned so far, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
