"""
Gateway push notification endpoints.

Both channels acknowledge immediately; the payment lookup runs afterwards as
a background task so the gateway never times out waiting on us.
"""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse

from application.services.notification_ingestor import NotificationIngestor
from api.dependencies import get_ingestor
from core.logging_config import get_logger


router = APIRouter(tags=["Notifications"])
logger = get_logger(__name__)

PROBE_BODY = {"status": "ready"}


@router.post("/webhooks/gateway", summary="Gateway webhook (JSON)")
async def gateway_webhook(
    request: Request,
    background: BackgroundTasks,
    ingestor: NotificationIngestor = Depends(get_ingestor),
):
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        logger.info("webhook_ignored", reason="non-object body")
        return {"success": True, "received": True}

    event = ingestor.normalize_webhook(body)
    if event is not None:
        verified = ingestor.verify_signature(
            event,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
        )
        if verified:
            logger.info("webhook_received", payment_id=event.gateway_payment_id, action=body.get("action"))
            background.add_task(ingestor.ingest, event)
        else:
            logger.warning("webhook_dropped", payment_id=event.gateway_payment_id, reason="signature")
    return {"success": True, "received": True}


@router.get("/webhooks/gateway", summary="Webhook reachability probe")
async def gateway_webhook_probe():
    return {**PROBE_BODY, "message": "Webhook endpoint ativo"}


@router.post("/notifications/gateway", summary="Gateway IPN (query string)", response_class=PlainTextResponse)
async def gateway_ipn(
    request: Request,
    background: BackgroundTasks,
    ingestor: NotificationIngestor = Depends(get_ingestor),
):
    event = ingestor.normalize_ipn(request.query_params)
    if event is not None:
        logger.info("ipn_received", payment_id=event.gateway_payment_id)
        background.add_task(ingestor.ingest, event)
    return PlainTextResponse("OK")


@router.get("/notifications/gateway", summary="IPN reachability probe")
async def gateway_ipn_probe():
    return {**PROBE_BODY, "message": "IPN endpoint ativo para pagamentos Point"}
