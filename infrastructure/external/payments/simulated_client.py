"""
Simulated Point terminal used when gateway credentials are absent.

Every intent is approved immediately; ids carry the ``mock_pay`` prefix so the
resolver can short-circuit them.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from application.dtos.payments import CreateIntent, DeviceInfo
from domain.payment.entity import GatewayPayment, IntentState, PaymentIntent, now_ms
from infrastructure.external.payments.exceptions import (
    GatewayNotConfiguredError,
    IntentNotFoundError,
)
from shared.codes.payment_codes import MOCK_INTENT_PREFIX
from core.logging_config import get_logger


logger = get_logger(__name__)


def is_simulated_intent(intent_id: str) -> bool:
    return intent_id.startswith(MOCK_INTENT_PREFIX)


class SimulatedPointClient:
    provider = "simulated"

    def __init__(self) -> None:
        self._intents: dict[str, PaymentIntent] = {}

    async def create_intent(self, req: CreateIntent) -> PaymentIntent:
        intent = PaymentIntent(
            id=f"{MOCK_INTENT_PREFIX}_{now_ms()}",
            device_id=req.device_id,
            amount_cents=req.amount_cents,
            state=IntentState.FINISHED,
            external_reference=req.external_reference,
        )
        self._intents[intent.id] = intent
        logger.info("simulated_intent_created", intent_id=intent.id, amount_cents=req.amount_cents)
        return intent

    async def get_intent(self, intent_id: str) -> PaymentIntent:
        intent = self._intents.get(intent_id)
        if intent is None:
            raise IntentNotFoundError(intent_id, provider=self.provider)
        return intent

    async def list_intents(self, device_id: str) -> list[PaymentIntent]:
        # The simulated terminal never keeps a queue.
        return []

    async def delete_intent(self, intent_id: str, device_id: Optional[str] = None) -> bool:
        return self._intents.pop(intent_id, None) is not None or is_simulated_intent(intent_id)

    async def search_payments(
        self,
        *,
        window_minutes: int,
        statuses: Sequence[str],
        limit: int = 50,
    ) -> list[GatewayPayment]:
        return []

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        raise GatewayNotConfiguredError("Payment lookups need gateway credentials")

    async def get_device(self, device_id: str) -> DeviceInfo:
        raise GatewayNotConfiguredError("Credenciais não configuradas")

    async def configure_device(self, device_id: str, operating_mode: str) -> dict[str, Any]:
        raise GatewayNotConfiguredError("Credenciais não configuradas")

    async def aclose(self) -> None:
        self._intents.clear()
