"""Cancellable periodic tasks on the running asyncio loop."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable, Optional

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="scheduling")

SleepFn = Callable[[float], Awaitable[Any]]


class CancelToken:
    """Handle for a task started by schedule(); cancel() stops it for good."""

    def __init__(self, task: asyncio.Task, name: str) -> None:
        self._task = task
        self.name = name

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        """Stop the periodic task. Safe to call more than once."""
        if not self._task.done():
            logger.debug("Cancelling scheduled task", extra={"task": self.name})
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the task has finished unwinding after cancel()."""
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


def schedule(
    interval: float,
    fn: Callable[[], Any],
    *,
    name: Optional[str] = None,
    sleep: SleepFn = asyncio.sleep,
) -> CancelToken:
    """
    Call `fn` every `interval` seconds until the returned token is cancelled.

    `fn` may be a plain callable or return an awaitable; either way the next
    interval starts only after it returns. Exceptions raised by `fn` are
    logged and the task keeps running. Must be called with a running loop.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    task_name = name or getattr(fn, "__name__", "scheduled_task")
    loop = asyncio.get_running_loop()

    async def _runner() -> None:
        while True:
            await sleep(interval)
            try:
                result = fn()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    "Scheduled task raised; will run again next interval",
                    extra={"task": task_name, "error": str(exc)},
                )

    task = loop.create_task(_runner(), name=task_name)
    logger.debug("Scheduled periodic task", extra={"task": task_name, "interval": interval})
    return CancelToken(task, task_name)
