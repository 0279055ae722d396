"""Cooperative cancellation token for poll loops."""
from __future__ import annotations

import asyncio
from typing import Optional


class CancellationToken:
    """Flag observed at loop boundaries; never interrupts an in-flight call.

    ``cancel`` is idempotent: only the first call records a reason and
    returns True.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "user") -> bool:
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()
