import asyncio
from decimal import Decimal

import pytest

from application.services.order_payment_service import OrderPaymentCoordinator, PaymentTimeoutError
from application.services.status_resolver import PaymentStatusResolver
from application.utils.retry import RetryPolicy
from domain.common.exceptions import BusinessException, OrderAlreadyPaidException, OrderNotFoundException
from domain.order.entity import OrderPaymentStatus
from domain.payment.entity import GatewayPayment, IntentState, PaymentKind, ResolutionStatus

from tests.payments.fakes import InMemoryUnitOfWork


class CancellingSleep:
    """Sleep stub that cancels the running attempt on the n-th call."""

    def __init__(self, after: int) -> None:
        self.after = after
        self.calls = 0
        self.coordinator = None
        self.intent_id = None

    async def __call__(self, delay: float) -> None:
        self.calls += 1
        if self.calls == self.after:
            await self.coordinator.cancel(self.intent_id)


@pytest.fixture
def rows():
    return {}


def _coordinator(gateway, cache, janitor, rows, *, max_attempts=60, sleep=None):
    resolver = PaymentStatusResolver(gateway, cache, janitor)
    return OrderPaymentCoordinator(
        lambda readonly=False: InMemoryUnitOfWork(rows, readonly=readonly),
        gateway,
        resolver,
        janitor,
        "dev-1",
        poll_policy=RetryPolicy(max_attempts=max_attempts, interval=3.0),
        sleep=sleep,
    )


@pytest.fixture
def coordinator(gateway, cache, janitor, rows, sleep):
    return _coordinator(gateway, cache, janitor, rows, sleep=sleep)


async def _order(coordinator, total="15.50"):
    return await coordinator.create_order("u1", None, [{"name": "X-Burger", "quantity": 1, "price": total}], Decimal(total))


@pytest.mark.asyncio
async def test_create_order_is_pending(coordinator, rows):
    order = await _order(coordinator)
    assert order.payment_status == OrderPaymentStatus.PENDING
    assert order.user_name == "Cliente"
    assert rows[order.id].total == Decimal("15.50")


@pytest.mark.asyncio
async def test_start_payment_builds_intent_from_order(gateway, coordinator):
    gateway.enqueue("stuck", IntentState.ON_DEVICE)
    order = await _order(coordinator)

    state = await coordinator.start_payment(order, "pix", None)

    req = gateway.created[0]
    assert req.amount_cents == 1550
    assert req.external_reference == order.id
    assert req.method == "pix"
    assert req.operating_mode == "PDV"
    assert req.device_id == "dev-1"
    assert state.kind == PaymentKind.PIX
    assert ("stuck", "dev-1") in gateway.deleted
    assert coordinator.attempt_for_order(order.id).state is state


@pytest.mark.asyncio
async def test_checkout_marks_order_paid_on_approval(gateway, coordinator, rows, sleep):
    order = await _order(coordinator)
    gateway.search_results = [GatewayPayment(id="pay-1", amount_cents=1550, status="approved")]

    result = await coordinator.checkout(order.id, "credit")

    assert result.as_dict() == {"status": "approved", "paymentId": "pay-1"}
    assert rows[order.id].payment_status == OrderPaymentStatus.PAID
    assert rows[order.id].payment_id == "pay-1"
    assert coordinator.attempt_for_order(order.id) is None
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_poll_approves_after_a_few_pending_rounds(gateway, cache, janitor, rows):
    flips = {"n": 0}

    async def sleep(delay):
        flips["n"] += 1
        if flips["n"] == 2:
            gateway.update_intent("intent-1", state=IntentState.FINISHED)

    coordinator = _coordinator(gateway, cache, janitor, rows, sleep=sleep)
    order = await _order(coordinator)
    state = await coordinator.start_payment(order, "debit")

    result = await coordinator.await_resolution(state)

    assert result.status == ResolutionStatus.APPROVED
    assert state.attempts_elapsed == 3


@pytest.mark.asyncio
async def test_cancel_during_poll_deletes_exactly_once(gateway, cache, janitor, rows):
    sleep = CancellingSleep(after=4)
    coordinator = _coordinator(gateway, cache, janitor, rows, sleep=sleep)
    sleep.coordinator = coordinator
    order = await _order(coordinator)
    state = await coordinator.start_payment(order, "debit")
    sleep.intent_id = state.intent_id

    result = await coordinator.await_resolution(state)
    assert await coordinator.cancel(state.intent_id) is True

    assert result.status == ResolutionStatus.CANCELED
    assert state.attempts_elapsed == 4
    assert state.cancel_requested is True
    assert gateway.deleted == [(state.intent_id, None)]
    assert rows[order.id].payment_status == OrderPaymentStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_before_first_poll_skips_resolution(gateway, coordinator):
    order = await _order(coordinator)
    state = await coordinator.start_payment(order, "credit")
    await coordinator.cancel(state.intent_id)

    result = await coordinator.await_resolution(state)

    assert result.status == ResolutionStatus.CANCELED
    assert state.attempts_elapsed == 0
    assert "get_intent" not in gateway.calls


@pytest.mark.asyncio
async def test_timeout_is_distinct_from_cancel(gateway, cache, janitor, rows, sleep):
    coordinator = _coordinator(gateway, cache, janitor, rows, max_attempts=5, sleep=sleep)
    order = await _order(coordinator)
    state = await coordinator.start_payment(order, "pix")

    with pytest.raises(PaymentTimeoutError) as exc_info:
        await coordinator.await_resolution(state)

    assert exc_info.value.details["attempts"] == 5
    assert state.attempts_elapsed == 5
    assert state.cancel_requested is False
    # no sleep after the final poll
    assert len(sleep.delays) == 4


@pytest.mark.asyncio
async def test_default_budget_is_sixty_polls_three_seconds_apart(gateway, coordinator, sleep):
    order = await _order(coordinator)

    with pytest.raises(PaymentTimeoutError):
        await coordinator.checkout(order.id)

    assert sleep.delays == [3.0] * 59
    assert gateway.calls.count("get_intent") == 60


@pytest.mark.asyncio
async def test_checkout_timeout_leaves_order_pending_and_clears_terminal(gateway, cache, janitor, rows, sleep):
    coordinator = _coordinator(gateway, cache, janitor, rows, max_attempts=2, sleep=sleep)
    order = await _order(coordinator)

    with pytest.raises(PaymentTimeoutError):
        await coordinator.checkout(order.id, "pix")

    assert rows[order.id].payment_status == OrderPaymentStatus.PENDING
    assert gateway.deleted == [("intent-1", None)]
    assert coordinator.attempt_for_order(order.id) is None
    assert coordinator.last_outcome(order.id).as_dict() == {
        "intentId": "intent-1",
        "outcome": "timeout",
        "attempts": 2,
        "paymentId": None,
    }


@pytest.mark.asyncio
async def test_canceled_intent_leaves_order_pending(gateway, coordinator, rows):
    gateway.created_state = IntentState.CANCELED
    order = await _order(coordinator)

    result = await coordinator.checkout(order.id)

    assert result.status == ResolutionStatus.CANCELED
    assert rows[order.id].payment_status == OrderPaymentStatus.PENDING


@pytest.mark.asyncio
async def test_finalize_failure_propagates(coordinator):
    with pytest.raises(OrderNotFoundException):
        await coordinator.finalize("order_missing", "pay-1")


@pytest.mark.asyncio
async def test_finalize_is_idempotent_for_same_payment(coordinator):
    order = await _order(coordinator)
    await coordinator.finalize(order.id, "pay-1")
    again = await coordinator.finalize(order.id, "pay-1")
    assert again.payment_id == "pay-1"
    with pytest.raises(OrderAlreadyPaidException):
        await coordinator.finalize(order.id, "pay-2")


@pytest.mark.asyncio
async def test_launch_runs_poll_in_background(gateway, coordinator, rows):
    gateway.created_state = IntentState.FINISHED
    order = await _order(coordinator)

    state = await coordinator.launch(order.id, "credit")
    task = coordinator.attempt_for_intent(state.intent_id).task
    result = await task

    assert result.status == ResolutionStatus.APPROVED
    assert rows[order.id].payment_status == OrderPaymentStatus.PAID


@pytest.mark.asyncio
async def test_launch_rejects_paid_order_and_parallel_attempts(gateway, cache, janitor, rows):
    gate = asyncio.Event()

    async def sleep(delay):
        await gate.wait()

    coordinator = _coordinator(gateway, cache, janitor, rows, sleep=sleep)
    order = await _order(coordinator)
    state = await coordinator.launch(order.id)

    with pytest.raises(BusinessException):
        await coordinator.launch(order.id)

    await coordinator.cancel(state.intent_id)
    gate.set()
    await coordinator.attempt_for_intent(state.intent_id).task

    await coordinator.finalize(order.id, "pay-9")
    with pytest.raises(OrderAlreadyPaidException):
        await coordinator.launch(order.id)


@pytest.mark.asyncio
async def test_shutdown_cancels_in_flight_attempts(gateway, cache, janitor, rows):
    async def sleep(delay):
        await asyncio.sleep(0)

    coordinator = _coordinator(gateway, cache, janitor, rows, sleep=sleep)
    order = await _order(coordinator)
    state = await coordinator.launch(order.id)

    await coordinator.shutdown()

    assert coordinator.attempt_for_intent(state.intent_id) is None
    assert rows[order.id].payment_status == OrderPaymentStatus.PENDING
    assert gateway.deleted == [(state.intent_id, "dev-1")]
    assert coordinator.last_outcome(order.id).outcome == "canceled"


@pytest.mark.asyncio
async def test_shutdown_does_not_delete_user_cancelled_intent_twice(gateway, cache, janitor, rows):
    gate = asyncio.Event()

    async def sleep(delay):
        await gate.wait()

    coordinator = _coordinator(gateway, cache, janitor, rows, sleep=sleep)
    order = await _order(coordinator)
    state = await coordinator.launch(order.id)
    await asyncio.sleep(0)

    await coordinator.cancel(state.intent_id)
    gate.set()
    await coordinator.shutdown()

    assert gateway.deleted == [(state.intent_id, None)]


@pytest.mark.asyncio
async def test_concurrent_launches_for_one_order_create_one_intent(gateway, cache, janitor, rows):
    gate = asyncio.Event()
    original_create = gateway.create_intent

    async def slow_create(req):
        await asyncio.sleep(0)
        return await original_create(req)

    async def sleep(delay):
        await gate.wait()

    gateway.create_intent = slow_create
    coordinator = _coordinator(gateway, cache, janitor, rows, sleep=sleep)
    order = await _order(coordinator)

    results = await asyncio.gather(
        coordinator.launch(order.id),
        coordinator.launch(order.id),
        return_exceptions=True,
    )

    rejected = [r for r in results if isinstance(r, BusinessException)]
    assert len(rejected) == 1
    assert len(gateway.created) == 1

    gate.set()
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_last_outcome_tracks_approved_and_canceled_attempts(gateway, coordinator):
    gateway.created_state = IntentState.CANCELED
    first = await _order(coordinator)
    await coordinator.checkout(first.id)

    gateway.created_state = IntentState.FINISHED
    second = await _order(coordinator, total="9.90")
    await coordinator.checkout(second.id)

    assert coordinator.last_outcome(first.id).outcome == "canceled"
    approved = coordinator.last_outcome(second.id)
    assert approved.outcome == "approved"
    assert approved.attempts == 1
