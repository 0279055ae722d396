"""
订单领域实体 - 订单聚合根

订单在支付开始之前创建（pending），支付确认后才标记为 paid。
订单是否存在不依赖支付结果；出餐/打印由支付结果决定。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
import time
import uuid

from domain.common.exceptions import DomainValidationException, OrderAlreadyPaidException
from domain.payment.entity import to_cents


class OrderPaymentStatus(str, Enum):
    """订单支付状态"""
    PENDING = "pending"
    PAID = "paid"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_order_id() -> str:
    # 同一毫秒内可能下多单，追加随机后缀
    return f"order_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


@dataclass
class Order:
    """
    订单聚合根

    items 为下单时的商品快照（productId/name/quantity/price），
    total 为主币单位金额。
    """
    id: str
    user_id: str
    total: Decimal
    items: list[dict[str, Any]] = field(default_factory=list)
    user_name: str = "Cliente"
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        self.total = Decimal(str(self.total))
        if self.total <= 0:
            raise DomainValidationException(
                f"Order total must be positive: {self.total}",
                field="total",
            )
        self.created_at = _ensure_utc(self.created_at) or datetime.now(timezone.utc)
        self.paid_at = _ensure_utc(self.paid_at)

    @property
    def total_cents(self) -> int:
        return to_cents(self.total)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.PAID

    def mark_paid(self, payment_id: Optional[str]) -> None:
        """
        标记订单已支付

        业务规则：重复确认同一笔支付是幂等的；已用另一笔支付确认的订单不可再次确认。
        """
        if self.is_paid:
            if payment_id and self.payment_id and payment_id != self.payment_id:
                raise OrderAlreadyPaidException(self.id, self.payment_id)
            self.payment_id = self.payment_id or payment_id
            return
        self.payment_status = OrderPaymentStatus.PAID
        self.payment_id = payment_id
        self.paid_at = datetime.now(timezone.utc)
