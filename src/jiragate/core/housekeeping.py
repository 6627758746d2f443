"""
Periodic background maintenance for in-memory governance state.

Each stateful component (rate limiter, audit logger, permission cache)
owns one :class:`PeriodicTask`.  The task only exists while an event loop
is running; components that are used outside a loop fall back to the
opportunistic cleanup they perform at the top of every public call.

Tasks never keep the process alive: asyncio cancels pending tasks when
the loop shuts down, and each component cancels its own task in
``close()``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

logger = structlog.get_logger()


class PeriodicTask:
    """Run a synchronous callback every ``interval_s`` seconds."""

    def __init__(self, name: str, interval_s: float, callback: Callable[[], object]) -> None:
        self.name = name
        self.interval_s = interval_s
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the loop. Returns False when no event loop is running."""
        if self.running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._task = loop.create_task(self._run(), name=self.name)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                self._callback()
            except Exception as exc:  # noqa: BLE001
                logger.error("periodic_task_error", task=self.name, error=str(exc))

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
