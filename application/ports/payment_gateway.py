"""
Point gateway port (application/ports) exposing a replaceable protocol.

Application services depend on this Protocol; infrastructure implements
adapters (HTTP gateway, simulated terminal).
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from application.dtos.payments import CreateIntent, DeviceInfo
from domain.payment.entity import GatewayPayment, PaymentIntent


@runtime_checkable
class PointGateway(Protocol):
    """Gateway protocol for terminal payment intents and payment lookups.

    Read operations raise TransientGatewayError on network/5xx failures.
    ``delete_intent`` returns False when the intent no longer exists.
    """

    provider: str

    async def create_intent(self, req: CreateIntent) -> PaymentIntent: ...

    async def get_intent(self, intent_id: str) -> PaymentIntent: ...

    async def list_intents(self, device_id: str) -> list[PaymentIntent]: ...

    async def delete_intent(self, intent_id: str, device_id: Optional[str] = None) -> bool: ...

    async def search_payments(
        self,
        *,
        window_minutes: int,
        statuses: Sequence[str],
        limit: int = 50,
    ) -> list[GatewayPayment]: ...

    async def get_payment(self, payment_id: str) -> GatewayPayment: ...

    async def get_device(self, device_id: str) -> DeviceInfo: ...

    async def configure_device(self, device_id: str, operating_mode: str) -> dict[str, Any]: ...

    async def aclose(self) -> None: ...
