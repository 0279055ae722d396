"""
Normalize gateway push notifications and record confirmed payments.

Two redundant channels exist: the JSON webhook and the legacy IPN query
string. Both only carry a payment id; amount and status are always fetched
from the gateway, never trusted from the notification body.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Mapping, Optional

from application.dtos.payments import NotificationEvent, WebhookNotification
from application.ports.confirmation_store import ConfirmationStore
from application.ports.payment_gateway import PointGateway
from domain.payment.entity import ConfirmedPaymentRecord
from shared.codes.payment_codes import PAYMENT_WEBHOOK_ACTIONS
from core.logging_config import get_logger


logger = get_logger(__name__)


def parse_signature_header(header: str) -> dict[str, str]:
    """Split ``ts=...,v1=...`` into its parts."""
    parts: dict[str, str] = {}
    for chunk in header.split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def signature_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


class NotificationIngestor:
    def __init__(
        self,
        gateway: PointGateway,
        store: ConfirmationStore,
        *,
        webhook_secret: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.webhook_secret = webhook_secret

    @staticmethod
    def normalize_webhook(body: Mapping[str, Any]) -> Optional[NotificationEvent]:
        try:
            notification = WebhookNotification.model_validate(body)
        except ValueError as exc:
            logger.info("webhook_ignored", reason="malformed", error=str(exc))
            return None
        if notification.action:
            relevant = notification.action in PAYMENT_WEBHOOK_ACTIONS
        else:
            relevant = notification.type == "payment"
        payment_id = notification.data.id if notification.data else None
        if not relevant or not payment_id:
            logger.info("webhook_ignored", action=notification.action, type=notification.type)
            return None
        return NotificationEvent(gateway_payment_id=payment_id, source="webhook", raw=dict(body))

    @staticmethod
    def normalize_ipn(query: Mapping[str, Any]) -> Optional[NotificationEvent]:
        topic = query.get("topic")
        payment_id = query.get("id")
        if topic != "payment" or not payment_id:
            logger.info("ipn_ignored", topic=topic, id=payment_id)
            return None
        return NotificationEvent(gateway_payment_id=str(payment_id), source="ipn", raw=dict(query))

    def verify_signature(
        self,
        event: NotificationEvent,
        signature: Optional[str],
        request_id: Optional[str],
    ) -> bool:
        """Check the webhook HMAC; always True when no secret is configured."""
        if not self.webhook_secret:
            return True
        if not signature or not request_id:
            logger.warning("webhook_signature_missing", payment_id=event.gateway_payment_id)
            return False
        parts = parse_signature_header(signature)
        ts, received = parts.get("ts"), parts.get("v1")
        if not ts or not received:
            logger.warning("webhook_signature_malformed", payment_id=event.gateway_payment_id)
            return False
        expected = hmac.new(
            self.webhook_secret.encode("utf-8"),
            signature_manifest(event.gateway_payment_id, request_id, ts).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        if not hmac.compare_digest(expected, received):
            logger.warning("webhook_signature_mismatch", payment_id=event.gateway_payment_id)
            return False
        return True

    async def ingest(self, event: NotificationEvent) -> Optional[ConfirmedPaymentRecord]:
        """Fetch the payment and cache it when confirmed. Runs after the ack."""
        log = logger.bind(payment_id=event.gateway_payment_id, source=event.source)
        try:
            payment = await self.gateway.get_payment(event.gateway_payment_id)
        except Exception as exc:
            log.warning("notification_payment_fetch_failed", error=str(exc))
            return None
        if not payment.is_confirmed:
            log.info("notification_payment_not_confirmed", status=payment.status)
            return None
        record = ConfirmedPaymentRecord(
            payment_id=payment.id,
            amount_cents=payment.amount_cents,
            gateway_status=payment.status,
        )
        try:
            await self.store.put(payment.amount_cents, record)
        except Exception as exc:
            log.error("confirmation_store_write_failed", error=str(exc))
            return None
        log.info("payment_confirmation_cached", amount_cents=payment.amount_cents, status=payment.status)
        return record
