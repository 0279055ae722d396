import pytest

from application.services.status_resolver import PaymentStatusResolver
from domain.payment.entity import ConfirmedPaymentRecord, GatewayPayment, IntentState, ResolutionStatus
from infrastructure.external.payments.exceptions import TransientGatewayError


@pytest.fixture
def resolver(gateway, cache, janitor) -> PaymentStatusResolver:
    return PaymentStatusResolver(gateway, cache, janitor)


def _approved(payment_id: str, amount: int, status: str = "approved") -> GatewayPayment:
    return GatewayPayment(id=payment_id, amount_cents=amount, status=status, payment_method_id="pix")


@pytest.mark.asyncio
async def test_simulated_intent_is_approved_without_gateway_calls(gateway, resolver):
    result = await resolver.resolve("mock_pay_1700000000000")
    assert result.status == ResolutionStatus.APPROVED
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_fetch_failure_degrades_to_pending(gateway, resolver):
    gateway.fail["get_intent"] = TransientGatewayError("timeout", provider="fake")
    result = await resolver.resolve("i-1")
    assert result.status == ResolutionStatus.PENDING
    assert result.as_dict() == {"status": "pending"}


@pytest.mark.asyncio
async def test_unknown_intent_is_pending(resolver):
    assert (await resolver.resolve("missing")).status == ResolutionStatus.PENDING


@pytest.mark.asyncio
async def test_cache_hit_wins_over_embedded_payment_id(gateway, cache, resolver):
    gateway.add_intent("i-1", 1550, IntentState.FINISHED, payment_id="from-intent")
    await cache.put(1550, ConfirmedPaymentRecord(payment_id="from-webhook", amount_cents=1550, gateway_status="approved"))

    result = await resolver.resolve("i-1")

    assert result.as_dict() == {"status": "approved", "paymentId": "from-webhook"}
    assert await cache.take_if_present(1550) is None
    assert ("i-1", None) in gateway.deleted
    assert "search_payments" not in gateway.calls


@pytest.mark.asyncio
async def test_zero_amount_skips_cache(gateway, cache, resolver):
    gateway.add_intent("i-1", 0, IntentState.ON_DEVICE)
    await cache.put(0, ConfirmedPaymentRecord(payment_id="p0", amount_cents=0, gateway_status="approved"))

    result = await resolver.resolve("i-1")

    assert result.status == ResolutionStatus.PENDING
    assert (await cache.take_if_present(0)).payment_id == "p0"
    assert "search_payments" not in gateway.calls


@pytest.mark.asyncio
async def test_embedded_payment_id_approves_and_sweeps(gateway, resolver):
    gateway.add_intent("i-1", 2000, IntentState.ON_DEVICE, payment_id="987")
    gateway.enqueue("leftover", IntentState.ON_DEVICE)

    result = await resolver.resolve("i-1")

    assert result.as_dict() == {"status": "approved", "paymentId": "987"}
    assert [i for i, _ in gateway.deleted] == ["i-1", "leftover"]


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [IntentState.FINISHED, IntentState.PROCESSED])
async def test_completed_state_without_payment_id_is_approved(gateway, resolver, state):
    gateway.add_intent("i-1", 2000, state)

    result = await resolver.resolve("i-1")

    assert result.as_dict() == {"status": "approved"}
    assert gateway.deleted[0] == ("i-1", None)


@pytest.mark.asyncio
async def test_amount_search_returns_first_exact_match(gateway, resolver):
    gateway.add_intent("i-1", 1550, IntentState.ON_DEVICE)
    gateway.search_results = [
        _approved("newer-other", 1549),
        _approved("first-match", 1550, status="authorized"),
        _approved("older-match", 1550),
    ]

    result = await resolver.resolve("i-1")

    assert result.as_dict() == {"status": "approved", "paymentId": "first-match"}
    assert gateway.deleted[0] == ("i-1", None)


@pytest.mark.asyncio
async def test_amount_search_ignores_unconfirmed_payments(gateway, resolver):
    gateway.add_intent("i-1", 1550, IntentState.ON_DEVICE)
    gateway.search_results = [_approved("rejected", 1550, status="rejected")]

    assert (await resolver.resolve("i-1")).status == ResolutionStatus.PENDING
    assert gateway.deleted == []


@pytest.mark.asyncio
async def test_search_failure_falls_through_to_pending(gateway, resolver):
    gateway.add_intent("i-1", 1550, IntentState.ON_DEVICE)
    gateway.fail["search_payments"] = TransientGatewayError("500", provider="fake")

    assert (await resolver.resolve("i-1")).status == ResolutionStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [IntentState.CANCELED, IntentState.ERROR])
async def test_failed_intent_is_canceled_with_single_delete(gateway, resolver, sleep, state):
    gateway.add_intent("i-1", 1550, state)
    gateway.delete_failures = 1

    result = await resolver.resolve("i-1")

    assert result.as_dict() == {"status": "canceled"}
    assert gateway.deleted == [("i-1", None)]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_search_match_beats_canceled_state(gateway, resolver):
    gateway.add_intent("i-1", 1550, IntentState.CANCELED)
    gateway.search_results = [_approved("late", 1550)]

    assert (await resolver.resolve("i-1")).as_dict() == {"status": "approved", "paymentId": "late"}


@pytest.mark.asyncio
async def test_open_state_is_pending(gateway, resolver):
    gateway.add_intent("i-1", 1550, IntentState.parse("SOMETHING_NEW"))
    assert (await resolver.resolve("i-1")).status == ResolutionStatus.PENDING
