"""Amount-keyed confirmation stores bridging push notifications to polls."""
from __future__ import annotations

import json
from typing import Callable, Optional

from redis import asyncio as aioredis
from redis.exceptions import WatchError

from domain.payment.entity import ConfirmedPaymentRecord, now_ms
from core.logging_config import get_logger


logger = get_logger(__name__)


class InMemoryConfirmationCache:
    """Process-local store; one record per amount, last writer wins.

    Methods never await internally, so each call is atomic on the event loop.
    Entries are lost on restart.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._records: dict[int, ConfirmedPaymentRecord] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    async def put(self, amount_cents: int, record: ConfirmedPaymentRecord) -> None:
        previous = self._records.get(amount_cents)
        self._records[amount_cents] = record
        if previous is not None and previous.payment_id != record.payment_id:
            # Two confirmations share an amount; the older one is lost.
            logger.warning(
                "confirmation_overwritten",
                amount_cents=amount_cents,
                previous_payment_id=previous.payment_id,
                payment_id=record.payment_id,
            )

    async def take_if_present(self, amount_cents: int) -> Optional[ConfirmedPaymentRecord]:
        return self._records.pop(amount_cents, None)

    async def evict_older_than(self, max_age_ms: int) -> None:
        cutoff = self._clock() - max_age_ms
        stale = [k for k, r in self._records.items() if r.confirmed_at_ms < cutoff]
        for key in stale:
            del self._records[key]
        if stale:
            logger.info("confirmation_cache_evicted", evicted=len(stale), remaining=len(self._records))


class RedisConfirmationStore:
    """Redis-backed store for deployments running several workers.

    GETDEL keeps take-and-remove atomic across processes.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "kiosk",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._client = client
        self._prefix = f"{namespace.strip(':')}:confirmed:amount:"
        self._clock = clock

    def _key(self, amount_cents: int) -> str:
        return f"{self._prefix}{amount_cents}"

    @staticmethod
    def _dumps(record: ConfirmedPaymentRecord) -> str:
        return json.dumps({
            "payment_id": record.payment_id,
            "amount_cents": record.amount_cents,
            "gateway_status": record.gateway_status,
            "confirmed_at_ms": record.confirmed_at_ms,
        })

    @staticmethod
    def _loads(raw) -> Optional[ConfirmedPaymentRecord]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        return ConfirmedPaymentRecord(
            payment_id=str(data["payment_id"]),
            amount_cents=int(data["amount_cents"]),
            gateway_status=str(data["gateway_status"]),
            confirmed_at_ms=int(data["confirmed_at_ms"]),
        )

    async def put(self, amount_cents: int, record: ConfirmedPaymentRecord) -> None:
        await self._client.set(self._key(amount_cents), self._dumps(record))

    async def take_if_present(self, amount_cents: int) -> Optional[ConfirmedPaymentRecord]:
        return self._loads(await self._client.getdel(self._key(amount_cents)))

    async def evict_older_than(self, max_age_ms: int) -> None:
        cutoff = self._clock() - max_age_ms
        evicted = 0
        async for key in self._client.scan_iter(match=f"{self._prefix}*"):
            if await self._delete_if_stale(key, cutoff):
                evicted += 1
        if evicted:
            logger.info("confirmation_store_evicted", evicted=evicted)

    async def _delete_if_stale(self, key: str, cutoff: int) -> bool:
        """WATCH/MULTI so a record written after the read is never deleted."""
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                record = self._loads(await pipe.get(key))
                if record is None or record.confirmed_at_ms >= cutoff:
                    return False
                pipe.multi()
                pipe.delete(key)
                deleted, = await pipe.execute()
            except WatchError:
                logger.debug("confirmation_eviction_skipped", key=key)
                return False
        return bool(deleted)


def create_confirmation_store(redis_url: Optional[str] = None):
    """Redis store when a URL is configured, process-local cache otherwise."""
    if redis_url:
        client = aioredis.from_url(redis_url, decode_responses=True)
        logger.info("confirmation_store_selected", backend="redis")
        return RedisConfirmationStore(client)
    logger.info("confirmation_store_selected", backend="memory")
    return InMemoryConfirmationCache()
