"""Supervised background tasks for fire-and-forget work.

The manual trigger returns to the caller before its batch is sent. The
execution coroutine is handed to a BackgroundWorker, which keeps a strong
reference to the task, logs its outcome and lets the application wait for
or cancel outstanding work on shutdown.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from autosend.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundWorker:
    """Runs coroutines as tracked asyncio tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` and return its task without awaiting it."""
        if self._closed:
            coro.close()
            raise RuntimeError("Background worker is shut down")

        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.bind(task=name).debug("background_task_started")
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.bind(task=task.get_name()).warning("background_task_cancelled")
            return

        exc = task.exception()
        if exc is not None:
            logger.bind(task=task.get_name(), error=str(exc)).opt(exception=exc).error(
                "background_task_failed"
            )
        else:
            logger.bind(task=task.get_name()).debug("background_task_completed")

    async def join(self) -> None:
        """Wait until every submitted task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop accepting work, wait up to ``timeout``, then cancel leftovers."""
        self._closed = True
        if not self._tasks:
            return

        pending = list(self._tasks)
        logger.bind(tasks=len(pending)).info("background_worker_draining")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
        logger.info("background_worker_stopped")
