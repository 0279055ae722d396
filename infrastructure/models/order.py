"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, String, Numeric, DateTime, JSON, Index
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True, comment="用户ID（访客也会有ID）")
    user_name = Column(String(200), nullable=False, default="Cliente", comment="用户名")

    items = Column(JSON, nullable=False, default=list, comment="商品快照")
    total = Column(Numeric(precision=10, scale=2), nullable=False, comment="订单金额")

    payment_status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/paid",
    )
    payment_id = Column(String(100), nullable=True, index=True, comment="网关支付ID")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间",
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付确认时间")

    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id='{self.id}', total={self.total}, "
            f"payment_status='{self.payment_status}', payment_id='{self.payment_id}')>"
        )
