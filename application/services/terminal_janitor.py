"""
Terminal queue cleanup.

A Point terminal keeps finished or abandoned intents queued and re-offers them
to the next customer, so every resolution path ends by clearing the queue.
All sweeps are best effort: failures are logged and never raised.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from application.ports.payment_gateway import PointGateway
from application.utils.retry import RetryPolicy, retry_async
from domain.payment.entity import SWEEPABLE_STATES, PaymentIntent
from core.logging_config import get_logger


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class TerminalQueueJanitor:
    def __init__(
        self,
        gateway: PointGateway,
        device_id: str,
        *,
        delete_policy: RetryPolicy = RetryPolicy(max_attempts=3, interval=0.5),
        clear_pause: float = 0.2,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.gateway = gateway
        self.device_id = device_id
        self.delete_policy = delete_policy
        self.clear_pause = clear_pause
        self._sleep = sleep or asyncio.sleep

    async def _list_queue(self) -> Optional[list[PaymentIntent]]:
        try:
            return await self.gateway.list_intents(self.device_id)
        except Exception as exc:
            logger.warning("terminal_queue_list_failed", device_id=self.device_id, error=str(exc))
            return None

    async def _delete_queued(self, intent_id: str) -> bool:
        """Delete one queued intent; True when it is gone (404 included)."""
        try:
            await self.gateway.delete_intent(intent_id, self.device_id)
            return True
        except Exception as exc:
            logger.warning("terminal_queue_delete_failed", intent_id=intent_id, error=str(exc))
            return False

    async def passive_sweep(self) -> int:
        """Remove queued intents already FINISHED, CANCELED or ERROR."""
        intents = await self._list_queue()
        if not intents:
            return 0
        removed = 0
        for intent in intents:
            if intent.state not in SWEEPABLE_STATES:
                continue
            if await self._delete_queued(intent.id):
                removed += 1
                logger.info("terminal_intent_swept", intent_id=intent.id, state=intent.state.value)
        logger.info("terminal_passive_sweep_done", queued=len(intents), removed=removed)
        return removed

    async def delete_once(self, intent_id: str) -> bool:
        """Single best-effort delete, no retry."""
        try:
            existed = await self.gateway.delete_intent(intent_id)
        except Exception as exc:
            logger.warning("terminal_intent_delete_failed", intent_id=intent_id, error=str(exc))
            return False
        logger.info("terminal_intent_deleted", intent_id=intent_id, existed=existed)
        return True

    async def aggressive_sweep(self, intent_id: str) -> None:
        """Force the resolved intent off the terminal, then empty the queue."""

        def _on_retry(attempt: int, exc: BaseException) -> None:
            logger.warning("terminal_intent_delete_retry", intent_id=intent_id, attempt=attempt, error=str(exc))

        try:
            existed = await retry_async(
                lambda: self.gateway.delete_intent(intent_id),
                self.delete_policy,
                sleep=self._sleep,
                on_retry=_on_retry,
            )
            logger.info("terminal_intent_deleted", intent_id=intent_id, existed=existed)
        except Exception as exc:
            logger.error(
                "terminal_intent_delete_exhausted",
                intent_id=intent_id,
                attempts=self.delete_policy.max_attempts,
                error=str(exc),
            )

        intents = await self._list_queue()
        if not intents:
            return
        cleared = 0
        for intent in intents:
            if await self._delete_queued(intent.id):
                cleared += 1
        logger.info("terminal_queue_flushed", intent_id=intent_id, queued=len(intents), cleared=cleared)

    async def clear_queue(self) -> tuple[bool, int]:
        """Operator action: delete everything queued on the device."""
        intents = await self._list_queue()
        if intents is None:
            return False, 0
        cleared = 0
        for index, intent in enumerate(intents):
            if index:
                await self._sleep(self.clear_pause)
            if await self._delete_queued(intent.id):
                cleared += 1
        logger.info("terminal_queue_cleared", queued=len(intents), cleared=cleared)
        return True, cleared

    async def preventive_clear(self) -> None:
        """Drop stuck intents before queuing a new one."""
        intents = await self._list_queue()
        if not intents:
            return
        logger.info("terminal_preventive_clear", queued=len(intents))
        for intent in intents:
            await self._delete_queued(intent.id)
