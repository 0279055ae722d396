"""
Point payment API routes.

Response bodies follow the kiosk storefront contract (raw JSON, not the
envelope). Keep this thin: gateway details live in infrastructure.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from application.dtos.payments import CreatePaymentRequest
from application.ports.payment_gateway import PointGateway
from application.services.order_payment_service import OrderPaymentCoordinator
from application.services.status_resolver import PaymentStatusResolver
from application.services.terminal_janitor import TerminalQueueJanitor
from api.dependencies import (
    get_coordinator,
    get_device_id,
    get_gateway,
    get_janitor,
    get_resolver,
)
from core.settings import gateway_settings
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.entity import to_cents


router = APIRouter(tags=["Payments"])
logger = get_logger(__name__)


@router.post("/payment/create", summary="Queue a payment intent on the terminal")
async def create_payment(
    payload: CreatePaymentRequest,
    coordinator: OrderPaymentCoordinator = Depends(get_coordinator),
):
    try:
        intent = await coordinator.open_intent(
            to_cents(payload.amount),
            payload.order_id,
            payload.method,
            payload.description,
        )
    except BusinessException as exc:
        logger.error("payment_create_failed", order_id=payload.order_id, error=exc.message)
        return JSONResponse(status_code=500, content={"error": "Falha ao comunicar com maquininha"})
    return {"id": intent.id, "status": "open"}


@router.get("/payment/status/{intent_id}", summary="Resolve payment status")
async def payment_status(
    intent_id: str,
    resolver: PaymentStatusResolver = Depends(get_resolver),
):
    resolution = await resolver.resolve(intent_id)
    return resolution.as_dict()


@router.delete("/payment/cancel/{intent_id}", summary="Cancel a queued intent")
async def cancel_payment(
    intent_id: str,
    coordinator: OrderPaymentCoordinator = Depends(get_coordinator),
):
    try:
        await coordinator.cancel(intent_id)
    except BusinessException as exc:
        logger.warning("payment_cancel_failed", intent_id=intent_id, error=exc.message)
        return JSONResponse(status_code=400, content={"success": False, "error": exc.message})
    return {"success": True, "message": "Pagamento cancelado"}


@router.post("/payment/clear-queue", summary="Delete every intent queued on the terminal")
async def clear_queue(janitor: TerminalQueueJanitor = Depends(get_janitor)):
    success, cleared = await janitor.clear_queue()
    if not success:
        return {"success": False, "cleared": 0, "error": "Erro ao listar intents"}
    return {"success": True, "cleared": cleared}


@router.post("/point/configure", summary="Lock the terminal into PDV mode")
async def configure_point(
    gateway: PointGateway = Depends(get_gateway),
    device_id: str = Depends(get_device_id),
):
    mode = gateway_settings.operating_mode
    try:
        device = await gateway.configure_device(device_id, mode)
    except BusinessException as exc:
        logger.warning("point_configure_failed", device_id=device_id, error=exc.message)
        return {"success": False, "error": exc.message}
    return {"success": True, "message": "Point configurada com sucesso", "mode": mode, "device": device}


@router.get("/point/status", summary="Terminal connectivity and mode")
async def point_status(
    gateway: PointGateway = Depends(get_gateway),
    device_id: str = Depends(get_device_id),
):
    try:
        device = await gateway.get_device(device_id)
    except BusinessException as exc:
        return {"connected": False, "error": exc.message}
    return {
        "connected": True,
        "id": device.id,
        "operating_mode": device.operating_mode,
        "status": device.status,
        "model": device.model or "Point Smart 2",
    }
