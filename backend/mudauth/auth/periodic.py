"""Cancellable background task that runs a coroutine on a fixed interval."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()


class PeriodicTask:
    """Run `action` every `interval_seconds` until stopped.

    Call start() on app startup and stop() on shutdown. A failing run is
    logged and the loop keeps going; the next interval retries.
    """

    def __init__(self, name: str, interval_seconds: float, action: Callable[[], Awaitable[object]]) -> None:
        self._name = name
        self._interval = interval_seconds
        self._action = action
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop. Calling start() while running is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self._name)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._action()
            except Exception:
                logger.exception("periodic task run failed", task=self._name)
