"""
订单支付编排（application/services）

订单先以 pending 状态落库，再在终端上发起支付意图并轮询结果；
只有确认成功后才把订单标记为 paid。取消、超时都不回滚订单。
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from application.dtos.payments import CreateIntent
from application.ports.payment_gateway import PointGateway
from application.services.status_resolver import PaymentStatusResolver
from application.services.terminal_janitor import TerminalQueueJanitor
from application.utils.cancellation import CancellationToken
from application.utils.retry import RetryPolicy
from domain.common.exceptions import (
    BusinessException,
    OrderAlreadyPaidException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, new_order_id
from domain.payment.entity import (
    PaymentIntent,
    PaymentKind,
    PendingPollState,
    Resolution,
    ResolutionStatus,
)
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class PaymentTimeoutError(BusinessException):
    """轮询预算耗尽仍未得到结果（与用户取消区分）"""

    def __init__(self, intent_id: str, attempts: int):
        super().__init__(
            code=PaymentCode.POLL_TIMEOUT,
            message=f"Payment {intent_id} not confirmed after {attempts} attempts",
            error_type="PaymentTimeoutError",
            details={"intent_id": intent_id, "attempts": attempts},
        )


@dataclass
class PaymentAttempt:
    """一次进行中的支付尝试"""
    state: PendingPollState
    token: CancellationToken
    task: Optional[asyncio.Task] = None


@dataclass(frozen=True)
class AttemptOutcome:
    """已结束尝试的最终结果：approved / canceled / timeout / failed"""
    intent_id: str
    outcome: str
    attempts: int
    payment_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "intentId": self.intent_id,
            "outcome": self.outcome,
            "attempts": self.attempts,
            "paymentId": self.payment_id,
        }


class OrderPaymentCoordinator:
    """订单支付协调器"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PointGateway,
        resolver: PaymentStatusResolver,
        janitor: TerminalQueueJanitor,
        device_id: str,
        *,
        poll_policy: RetryPolicy = RetryPolicy(max_attempts=60, interval=3.0),
        operating_mode: str = "PDV",
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.resolver = resolver
        self.janitor = janitor
        self.device_id = device_id
        self.poll_policy = poll_policy
        self.operating_mode = operating_mode
        self._sleep = sleep or asyncio.sleep
        self._attempts: dict[str, PaymentAttempt] = {}
        # order_id -> 最近一次结束的尝试
        self._outcomes: dict[str, AttemptOutcome] = {}
        # 已通过并发检查、尚未登记尝试的订单
        self._launching: set[str] = set()

    # 查询
    def attempt_for_intent(self, intent_id: str) -> Optional[PaymentAttempt]:
        return self._attempts.get(intent_id)

    def attempt_for_order(self, order_id: str) -> Optional[PaymentAttempt]:
        for attempt in self._attempts.values():
            if attempt.state.order_id == order_id:
                return attempt
        return None

    def last_outcome(self, order_id: str) -> Optional[AttemptOutcome]:
        return self._outcomes.get(order_id)

    async def get_order(self, order_id: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    # 订单
    async def create_order(
        self,
        user_id: str,
        user_name: Optional[str],
        items: list[dict[str, Any]],
        total: Decimal,
    ) -> Order:
        """创建 pending 订单（支付开始前即落库）"""
        order = Order(
            id=new_order_id(),
            user_id=user_id,
            user_name=user_name or "Cliente",
            items=items,
            total=total,
        )
        async with self._uow_factory() as uow:
            order = await uow.order_repository.create(order)
        return order

    async def finalize(self, order_id: str, payment_id: Optional[str]) -> Order:
        """支付确认后标记订单已支付；失败直接抛出"""
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            order.mark_paid(payment_id)
            order = await uow.order_repository.update(order)
        logger.info("order_paid", order_id=order_id, payment_id=payment_id)
        return order

    # 支付
    async def open_intent(
        self,
        amount_cents: int,
        external_reference: Optional[str],
        method: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PaymentIntent:
        """清空终端队列后排入新的支付意图（不跟踪轮询）"""
        await self.janitor.preventive_clear()
        return await self.gateway.create_intent(
            CreateIntent(
                device_id=self.device_id,
                amount_cents=amount_cents,
                description=description,
                external_reference=external_reference,
                method=method,
                operating_mode=self.operating_mode,
            )
        )

    async def start_payment(
        self,
        order: Order,
        method: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PendingPollState:
        """为订单创建支付意图并登记轮询状态"""
        intent = await self.open_intent(order.total_cents, order.id, method, description)
        state = PendingPollState(
            intent_id=intent.id,
            kind=PaymentKind.from_method(method),
            order_id=order.id,
        )
        self._attempts[intent.id] = PaymentAttempt(state=state, token=CancellationToken())
        logger.info(
            "payment_started",
            order_id=order.id,
            intent_id=intent.id,
            amount_cents=order.total_cents,
            kind=state.kind.value,
        )
        return state

    async def await_resolution(self, state: PendingPollState) -> Resolution:
        """
        轮询直到 approved/canceled

        每次睡眠前后都检查取消标记；预算耗尽抛出 PaymentTimeoutError。
        """
        attempt = self._attempts.get(state.intent_id)
        token = attempt.token if attempt else CancellationToken()
        log = logger.bind(intent_id=state.intent_id, order_id=state.order_id)

        for poll_no in range(1, self.poll_policy.max_attempts + 1):
            if token.cancelled:
                break
            resolution = await self.resolver.resolve(state.intent_id)
            state.attempts_elapsed += 1
            if resolution.status != ResolutionStatus.PENDING:
                log.info("payment_poll_finished", status=resolution.status.value, attempts=state.attempts_elapsed)
                return resolution
            if token.cancelled:
                break
            if poll_no == self.poll_policy.max_attempts:
                continue
            await self._sleep(self.poll_policy.interval)
            if token.cancelled:
                break
        else:
            log.warning("payment_poll_timeout", attempts=state.attempts_elapsed)
            raise PaymentTimeoutError(state.intent_id, state.attempts_elapsed)

        state.cancel_requested = True
        log.info("payment_poll_cancelled", reason=token.reason, attempts=state.attempts_elapsed)
        return Resolution.canceled()

    async def cancel(self, intent_id: str) -> bool:
        """
        用户取消：置位取消标记并删除一次终端意图

        重复取消同一笔进行中的支付不会再次删除。返回终端上是否仍存在该意图；
        网关错误在标记置位之后抛出。
        """
        attempt = self._attempts.get(intent_id)
        if attempt is not None:
            attempt.state.cancel_requested = True
            if not attempt.token.cancel("user"):
                return True
        logger.info("payment_cancel_requested", intent_id=intent_id, tracked=attempt is not None)
        return await self.gateway.delete_intent(intent_id)

    async def _drive(self, state: PendingPollState) -> Resolution:
        outcome, payment_id = "failed", None
        try:
            try:
                resolution = await self.await_resolution(state)
            except PaymentTimeoutError:
                # 订单保持 pending；把意图从终端移除，避免下一位顾客看到
                outcome = "timeout"
                await self.janitor.delete_once(state.intent_id)
                raise
            if resolution.status == ResolutionStatus.APPROVED:
                await self.finalize(state.order_id, resolution.payment_id)
            outcome, payment_id = resolution.status.value, resolution.payment_id
            return resolution
        finally:
            self._outcomes[state.order_id] = AttemptOutcome(
                intent_id=state.intent_id,
                outcome=outcome,
                attempts=state.attempts_elapsed,
                payment_id=payment_id,
            )
            self._attempts.pop(state.intent_id, None)

    async def checkout(
        self,
        order_id: str,
        method: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Resolution:
        """完整流程：开始支付、等待结果、确认订单"""
        order = await self.get_order(order_id)
        state = await self.start_payment(order, method, description)
        return await self._drive(state)

    async def launch(
        self,
        order_id: str,
        method: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PendingPollState:
        """开始支付并在后台任务中驱动轮询；返回后客户端可查询订单状态"""
        order = await self.get_order(order_id)
        if order.is_paid:
            raise OrderAlreadyPaidException(order.id, order.payment_id)
        in_flight = self.attempt_for_order(order.id)
        if in_flight is not None or order.id in self._launching:
            raise BusinessException(
                code=BusinessCode.BUSINESS_ERROR,
                message=f"Payment already in progress for order {order.id}",
                details={"intent_id": in_flight.state.intent_id if in_flight else None},
            )
        self._launching.add(order.id)
        try:
            state = await self.start_payment(order, method, description)
        finally:
            self._launching.discard(order.id)
        task = asyncio.create_task(self._drive(state), name=f"payment:{state.intent_id}")
        task.add_done_callback(self._on_task_done)
        self._attempts[state.intent_id].task = task
        return state

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, PaymentTimeoutError):
            logger.warning("payment_attempt_timed_out", task=task.get_name())
        elif exc is not None:
            logger.error("payment_attempt_failed", task=task.get_name(), error=str(exc), exc_info=exc)

    async def shutdown(self) -> None:
        """取消所有进行中的尝试，并尽力删除终端上未完成的意图"""
        attempts = list(self._attempts.values())
        # 用户已取消的尝试在 cancel() 中删除过意图
        interrupted = [a for a in attempts if a.token.cancel("shutdown")]
        tasks = [a.task for a in attempts if a.task is not None and not a.task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for attempt in interrupted:
            outcome = self._outcomes.get(attempt.state.order_id)
            if outcome is not None and outcome.intent_id == attempt.state.intent_id and outcome.outcome in ("approved", "timeout"):
                continue
            await self.janitor.delete_once(attempt.state.intent_id)
        logger.info("payment_coordinator_stopped", cancelled=len(attempts))
