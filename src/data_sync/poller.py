"""Cancellable repeating asyncio task."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RepeatingTask:
    """Run an async callback every ``interval`` seconds until stopped.

    The next run is scheduled only after the previous one has finished, so
    runs never overlap. Exceptions from the callback are logged and the
    loop keeps going.

    Args:
        callback: Coroutine function to run on each tick.
        interval: Seconds between the end of one run and the start of the next.
        name: Label used in log messages and as the asyncio task name.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        interval: float,
        name: str = "repeating-task",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("Started %s (every %.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped %s", self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s: tick failed", self.name)
