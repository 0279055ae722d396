"""
Resolve the outcome of a terminal payment intent.

The gateway confirms the same payment through several channels that can lag
or go silent, so the resolver walks a fixed ladder from the cheapest and most
reliable evidence to the loosest, and degrades to ``pending`` on any failure.
"""
from __future__ import annotations

from typing import Optional

from application.ports.confirmation_store import ConfirmationStore
from application.ports.payment_gateway import PointGateway
from application.services.terminal_janitor import TerminalQueueJanitor
from domain.payment.entity import GatewayPayment, IntentState, PaymentIntent, Resolution
from shared.codes.payment_codes import CONFIRMED_PAYMENT_STATUSES, MOCK_INTENT_PREFIX
from core.logging_config import get_logger


logger = get_logger(__name__)


class PaymentStatusResolver:
    def __init__(
        self,
        gateway: PointGateway,
        store: ConfirmationStore,
        janitor: TerminalQueueJanitor,
        *,
        search_window_minutes: int = 30,
        search_limit: int = 50,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.janitor = janitor
        self.search_window_minutes = search_window_minutes
        self.search_limit = search_limit

    async def resolve(self, intent_id: str) -> Resolution:
        if intent_id.startswith(MOCK_INTENT_PREFIX):
            return Resolution.approved()

        try:
            intent = await self.gateway.get_intent(intent_id)
        except Exception as exc:
            logger.warning("payment_intent_fetch_failed", intent_id=intent_id, error=str(exc))
            return Resolution.pending()

        log = logger.bind(intent_id=intent_id, state=intent.state.value, amount_cents=intent.amount_cents)

        if intent.amount_cents > 0:
            try:
                cached = await self.store.take_if_present(intent.amount_cents)
            except Exception as exc:
                log.warning("confirmation_store_read_failed", error=str(exc))
                cached = None
            if cached is not None:
                log.info("payment_resolved", via="cache", payment_id=cached.payment_id)
                await self.janitor.aggressive_sweep(intent_id)
                return Resolution.approved(cached.payment_id)

        if intent.payment_id:
            log.info("payment_resolved", via="intent", payment_id=intent.payment_id)
            await self.janitor.aggressive_sweep(intent_id)
            return Resolution.approved(intent.payment_id)

        if intent.state.is_completed:
            log.info("payment_resolved", via="state")
            await self.janitor.aggressive_sweep(intent_id)
            return Resolution.approved()

        match = await self._search_by_amount(intent)
        if match is not None:
            log.info("payment_resolved", via="search", payment_id=match.id)
            await self.janitor.aggressive_sweep(intent_id)
            return Resolution.approved(match.id)

        if intent.state.is_failed:
            log.info("payment_canceled")
            await self.janitor.delete_once(intent_id)
            return Resolution.canceled()

        return Resolution.pending()

    async def _search_by_amount(self, intent: PaymentIntent) -> Optional[GatewayPayment]:
        if intent.amount_cents <= 0:
            return None
        try:
            payments = await self.gateway.search_payments(
                window_minutes=self.search_window_minutes,
                statuses=sorted(CONFIRMED_PAYMENT_STATUSES),
                limit=self.search_limit,
            )
        except Exception as exc:
            logger.warning("payment_search_failed", intent_id=intent.id, error=str(exc))
            return None
        # Newest first; two payments of the same amount are indistinguishable.
        for payment in payments:
            if payment.is_confirmed and payment.amount_cents == intent.amount_cents:
                return payment
        return None
