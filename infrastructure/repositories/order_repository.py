"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.order.entity import Order, OrderPaymentStatus
from domain.order.repository import OrderRepository
from domain.common.exceptions import OrderNotFoundException
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            user_id=model.user_id,
            user_name=model.user_name,
            items=list(model.items or []),
            total=Decimal(str(model.total)),
            payment_status=OrderPaymentStatus(model.payment_status),
            payment_id=model.payment_id,
            created_at=model.created_at,
            paid_at=model.paid_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            user_id=entity.user_id,
            user_name=entity.user_name,
            items=entity.items,
            total=entity.total,
            payment_status=entity.payment_status.value,
            payment_id=entity.payment_id,
            created_at=entity.created_at,
            paid_at=entity.paid_at,
        )

    async def create(self, order: Order) -> Order:
        """创建订单"""
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_created", order_id=db_order.id, total=str(db_order.total))
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        """更新订单支付状态"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order.id)
        )
        db_order = result.scalar_one_or_none()
        if not db_order:
            raise OrderNotFoundException(order.id)

        db_order.payment_status = order.payment_status.value
        db_order.payment_id = order.payment_id
        db_order.paid_at = order.paid_at

        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info(
            "order_updated",
            order_id=db_order.id,
            payment_status=db_order.payment_status,
            payment_id=db_order.payment_id,
        )
        return self._to_entity(db_order)
