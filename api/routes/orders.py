"""
订单API路由

两种流程：
- 服务端驱动：POST /orders/{id}/pay 后由协调器在后台轮询并确认订单；
- 客户端驱动：客户端自行轮询 /payment/status，成功后调用 POST /orders/{id}/paid。
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from application.dtos.payments import CreateOrderRequest, MarkOrderPaidRequest, PayOrderRequest
from application.services.order_payment_service import OrderPaymentCoordinator
from api.dependencies import get_coordinator
from domain.order.entity import Order


router = APIRouter(prefix="/orders", tags=["Orders"])


def _order_body(order: Order, coordinator: OrderPaymentCoordinator) -> dict:
    attempt = coordinator.attempt_for_order(order.id)
    last = coordinator.last_outcome(order.id)
    return {
        "id": order.id,
        "userId": order.user_id,
        "userName": order.user_name,
        "items": order.items,
        "total": float(order.total),
        "paymentStatus": order.payment_status.value,
        "paymentId": order.payment_id,
        "timestamp": order.created_at.isoformat() if order.created_at else None,
        "paidAt": order.paid_at.isoformat() if order.paid_at else None,
        "attempt": attempt.state.as_dict() if attempt else None,
        "lastAttempt": last.as_dict() if last else None,
    }


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a pending order")
async def create_order(
    payload: CreateOrderRequest,
    coordinator: OrderPaymentCoordinator = Depends(get_coordinator),
):
    order = await coordinator.create_order(
        user_id=payload.user_id,
        user_name=payload.user_name,
        items=[item.model_dump(mode="json", by_alias=True) for item in payload.items],
        total=payload.total,
    )
    return _order_body(order, coordinator)


@router.get("/{order_id}", summary="Order with in-flight payment attempt")
async def get_order(
    order_id: str,
    coordinator: OrderPaymentCoordinator = Depends(get_coordinator),
):
    order = await coordinator.get_order(order_id)
    return _order_body(order, coordinator)


@router.post("/{order_id}/pay", status_code=status.HTTP_202_ACCEPTED, summary="Start paying an order")
async def pay_order(
    order_id: str,
    payload: PayOrderRequest,
    coordinator: OrderPaymentCoordinator = Depends(get_coordinator),
):
    state = await coordinator.launch(order_id, payload.method, payload.description)
    return {"intentId": state.intent_id, "orderId": order_id, "status": "open"}


@router.post("/{order_id}/paid", summary="Confirm an order after client-side resolution")
async def mark_order_paid(
    order_id: str,
    payload: MarkOrderPaidRequest,
    coordinator: OrderPaymentCoordinator = Depends(get_coordinator),
):
    order = await coordinator.finalize(order_id, payload.payment_id)
    return _order_body(order, coordinator)
