"""
Mercado Pago Point adapter over the REST integration API.

Notes on API usage:
- Intents are created per device (``/point/integration-api/devices/{id}/payment-intents``)
  and read/deleted by id (``/point/integration-api/payment-intents/{id}``).
- Intent amounts are integer cents; ``/v1/payments`` reports ``transaction_amount``
  in major units.
- The device queue listing returns ``{"events": [{"payment_intent_id"|"id", "state"}]}``.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

import httpx

from application.dtos.payments import CreateIntent, DeviceInfo
from domain.payment.entity import GatewayPayment, IntentState, PaymentIntent, to_cents
from infrastructure.external.payments.base import BasePointClient
from infrastructure.external.payments.exceptions import (
    GatewayError,
    IntentNotFoundError,
)
from shared.codes.payment_codes import METHOD_TO_TERMINAL_PAYMENT
from core.settings import GatewaySettings, gateway_settings

INTENTS_PATH = "/point/integration-api/payment-intents"
DEVICES_PATH = "/point/integration-api/devices"
PAYMENTS_PATH = "/v1/payments"


class MercadoPagoPointClient(BasePointClient):
    provider = "mercadopago"

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings or gateway_settings
        if not cfg.access_token:
            raise RuntimeError("MP_ACCESS_TOKEN not configured")
        super().__init__(
            base_url=cfg.base_url,
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            headers={"Authorization": f"Bearer {cfg.access_token}"},
            transport=transport,
        )
        self._default_device_id = cfg.device_id

    # Mapping helpers
    @staticmethod
    def _to_intent(data: dict[str, Any], device_id: Optional[str] = None) -> PaymentIntent:
        payment = data.get("payment") or {}
        additional = data.get("additional_info") or {}
        payment_id = payment.get("id") if isinstance(payment, dict) else None
        return PaymentIntent(
            id=str(data.get("id") or data.get("payment_intent_id") or ""),
            device_id=data.get("device_id") or device_id,
            amount_cents=int(data.get("amount") or 0),
            state=IntentState.parse(data.get("state")),
            payment_id=str(payment_id) if payment_id else None,
            external_reference=additional.get("external_reference") if isinstance(additional, dict) else None,
        )

    @staticmethod
    def _to_payment(data: dict[str, Any]) -> GatewayPayment:
        return GatewayPayment(
            id=str(data.get("id")),
            amount_cents=to_cents(data.get("transaction_amount") or 0),
            status=str(data.get("status") or ""),
            payment_method_id=data.get("payment_method_id"),
        )

    @staticmethod
    def build_intent_payload(req: CreateIntent) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "amount": req.amount_cents,
            "description": req.description or f"Pedido {req.external_reference}",
            "additional_info": {
                "external_reference": req.external_reference,
                "print_on_terminal": req.print_on_terminal,
            },
        }
        if req.method:
            # Forcing a single payment type requires the PDV operating mode.
            payment = dict(METHOD_TO_TERMINAL_PAYMENT[req.method])
            payment["operating_mode"] = req.operating_mode
            payload["payment"] = payment
        return payload

    # Intents
    async def create_intent(self, req: CreateIntent) -> PaymentIntent:
        payload = self.build_intent_payload(req)
        # Not retried: a second POST would queue a second charge.
        resp = await self._send("POST", f"{DEVICES_PATH}/{req.device_id}/payment-intents", json=payload)
        self._raise_for_status(resp, "create_intent")
        data = self._json(resp, "create_intent")
        if not data.get("id"):
            raise GatewayError("create_intent response without id", provider=self.provider)
        intent = self._to_intent({"amount": req.amount_cents, "state": "OPEN", **data}, req.device_id)
        self._log(
            "point_intent_created",
            intent_id=intent.id,
            device_id=req.device_id,
            amount_cents=req.amount_cents,
            method=req.method,
        )
        return intent

    async def get_intent(self, intent_id: str) -> PaymentIntent:
        resp = await self._retry(lambda: self._send("GET", f"{INTENTS_PATH}/{intent_id}"))
        if resp.status_code == 404:
            raise IntentNotFoundError(intent_id, provider=self.provider)
        self._raise_for_status(resp, "get_intent")
        return self._to_intent(self._json(resp, "get_intent"))

    async def list_intents(self, device_id: str) -> list[PaymentIntent]:
        resp = await self._retry(lambda: self._send("GET", f"{DEVICES_PATH}/{device_id}/payment-intents"))
        self._raise_for_status(resp, "list_intents")
        data = self._json(resp, "list_intents")
        events = data.get("events")
        if events is None:
            # Some firmware answers with the single queued intent.
            events = [data] if data.get("id") else []
        return [self._to_intent(ev, device_id) for ev in events if isinstance(ev, dict)]

    async def delete_intent(self, intent_id: str, device_id: Optional[str] = None) -> bool:
        if device_id:
            path = f"{DEVICES_PATH}/{device_id}/payment-intents/{intent_id}"
        else:
            path = f"{INTENTS_PATH}/{intent_id}"
        resp = await self._send("DELETE", path)
        if resp.status_code == 404:
            return False
        self._raise_for_status(resp, "delete_intent")
        return True

    # Payments
    async def search_payments(
        self,
        *,
        window_minutes: int,
        statuses: Sequence[str],
        limit: int = 50,
    ) -> list[GatewayPayment]:
        """Recent payments filtered server-side, one query per status.

        Results keep the order of ``statuses``, newest first within each.
        """
        base: dict[str, Any] = {
            "sort": "date_created",
            "criteria": "desc",
            "limit": limit,
            "range": "date_created",
            "begin_date": f"NOW-{int(window_minutes)}MINUTES",
            "end_date": "NOW",
        }
        wanted = list(dict.fromkeys(s.lower() for s in statuses))
        if not wanted:
            return await self._search_once(base)
        merged: dict[str, GatewayPayment] = {}
        for status in wanted:
            for payment in await self._search_once({**base, "status": status}):
                if payment.status.lower() == status:
                    merged.setdefault(payment.id, payment)
        return list(merged.values())

    async def _search_once(self, params: dict[str, Any]) -> list[GatewayPayment]:
        resp = await self._retry(lambda: self._send("GET", f"{PAYMENTS_PATH}/search", params=params))
        self._raise_for_status(resp, "search_payments")
        results = self._json(resp, "search_payments").get("results") or []
        return [self._to_payment(item) for item in results if isinstance(item, dict)]

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        resp = await self._retry(lambda: self._send("GET", f"{PAYMENTS_PATH}/{payment_id}"))
        self._raise_for_status(resp, "get_payment")
        return self._to_payment(self._json(resp, "get_payment"))

    # Device
    async def get_device(self, device_id: str) -> DeviceInfo:
        resp = await self._retry(lambda: self._send("GET", f"{DEVICES_PATH}/{device_id}"))
        self._raise_for_status(resp, "get_device")
        data = self._json(resp, "get_device")
        return DeviceInfo(
            id=str(data.get("id") or device_id),
            operating_mode=data.get("operating_mode"),
            status=data.get("status"),
            model=data.get("model"),
        )

    async def configure_device(self, device_id: str, operating_mode: str) -> dict[str, Any]:
        resp = await self._send("PATCH", f"{DEVICES_PATH}/{device_id}", json={"operating_mode": operating_mode})
        self._raise_for_status(resp, "configure_device")
        self._log("point_device_configured", device_id=device_id, operating_mode=operating_mode)
        return self._json(resp, "configure_device")
