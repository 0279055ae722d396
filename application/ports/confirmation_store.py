"""
Confirmation store port.

The in-process cache is the default implementation; a Redis-backed store can
be swapped in (multi-worker deployments) without touching the resolver or the
notification ingestor.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.payment.entity import ConfirmedPaymentRecord


@runtime_checkable
class ConfirmationStore(Protocol):
    async def put(self, amount_cents: int, record: ConfirmedPaymentRecord) -> None: ...

    async def take_if_present(self, amount_cents: int) -> Optional[ConfirmedPaymentRecord]: ...

    async def evict_older_than(self, max_age_ms: int) -> None: ...
