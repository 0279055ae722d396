"""
API依赖项 - 从应用状态中取出支付组件

组件在 main.py 的 lifespan 中装配到 app.state，测试可直接替换。
"""
from fastapi import Request

from application.ports.payment_gateway import PointGateway
from application.services.notification_ingestor import NotificationIngestor
from application.services.order_payment_service import OrderPaymentCoordinator
from application.services.status_resolver import PaymentStatusResolver
from application.services.terminal_janitor import TerminalQueueJanitor


def get_gateway(request: Request) -> PointGateway:
    return request.app.state.gateway


def get_janitor(request: Request) -> TerminalQueueJanitor:
    return request.app.state.janitor


def get_resolver(request: Request) -> PaymentStatusResolver:
    return request.app.state.resolver


def get_ingestor(request: Request) -> NotificationIngestor:
    return request.app.state.ingestor


def get_coordinator(request: Request) -> OrderPaymentCoordinator:
    return request.app.state.coordinator


def get_device_id(request: Request) -> str:
    return request.app.state.device_id
