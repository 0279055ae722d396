"""Periodic background jobs owned by the application lifespan."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from core.logging_config import get_logger


logger = get_logger(__name__)


class PeriodicTask:
    """Run ``fn`` every ``interval`` seconds until stopped.

    The first run happens one interval after ``start``. ``run_once`` executes
    a single tick inline, for tests and operator triggers. A failing tick is
    logged and the schedule continues.
    """

    def __init__(self, name: str, interval: float, fn: Callable[[], Awaitable[Any]]) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.name = name
        self.interval = interval
        self._fn = fn
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        try:
            await self._fn()
        except Exception as exc:
            logger.error("periodic_task_failed", task=self.name, error=str(exc), exc_info=True)

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info("periodic_task_started", task=self.name, interval=self.interval)

    async def stop(self) -> None:
        self._stopping.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("periodic_task_stopped", task=self.name)
