import json

import httpx
import pytest

from application.dtos.payments import CreateIntent
from core.settings import GatewayRetry, GatewaySettings
from domain.payment.entity import IntentState
from infrastructure.external.payments.exceptions import (
    GatewayError,
    IntentNotFoundError,
    TransientGatewayError,
)
from infrastructure.external.payments.mercadopago_client import MercadoPagoPointClient


def _settings() -> GatewaySettings:
    return GatewaySettings(
        access_token="APP_USR-test",
        device_id="PAX_A910__SMARTPOS123",
        retry=GatewayRetry(max=1, base_backoff=0.01),
    )


def _client(handler) -> MercadoPagoPointClient:
    return MercadoPagoPointClient(_settings(), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_create_intent_forces_payment_method():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "intent-abc", "device_id": "PAX_A910__SMARTPOS123", "amount": 1550})

    client = _client(handler)
    intent = await client.create_intent(
        CreateIntent(device_id="PAX_A910__SMARTPOS123", amount_cents=1550, external_reference="order_1", method="credit")
    )
    await client.aclose()

    assert intent.id == "intent-abc"
    assert intent.amount_cents == 1550
    assert seen["path"] == "/point/integration-api/devices/PAX_A910__SMARTPOS123/payment-intents"
    assert seen["auth"] == "Bearer APP_USR-test"
    assert seen["body"] == {
        "amount": 1550,
        "description": "Pedido order_1",
        "additional_info": {"external_reference": "order_1", "print_on_terminal": True},
        "payment": {"type": "credit_card", "installments": 1, "installments_cost": "buyer", "operating_mode": "PDV"},
    }


def test_payload_without_method_lets_terminal_choose():
    payload = MercadoPagoPointClient.build_intent_payload(
        CreateIntent(device_id="d", amount_cents=500, description="Combo", external_reference="o2")
    )
    assert "payment" not in payload
    assert payload["description"] == "Combo"


@pytest.mark.asyncio
async def test_create_intent_rejection_raises_gateway_error():
    client = _client(lambda request: httpx.Response(400, json={"message": "device busy"}))
    with pytest.raises(GatewayError) as exc_info:
        await client.create_intent(CreateIntent(device_id="d", amount_cents=100, external_reference="o"))
    assert "device busy" in exc_info.value.message


@pytest.mark.asyncio
async def test_get_intent_maps_embedded_payment():
    def handler(request):
        assert request.url.path == "/point/integration-api/payment-intents/i-1"
        return httpx.Response(200, json={
            "id": "i-1",
            "state": "FINISHED",
            "amount": 2590,
            "device_id": "dev",
            "payment": {"id": 1234567},
            "additional_info": {"external_reference": "order_9"},
        })

    intent = await _client(handler).get_intent("i-1")

    assert intent.state == IntentState.FINISHED
    assert intent.payment_id == "1234567"
    assert intent.amount_cents == 2590
    assert intent.external_reference == "order_9"


@pytest.mark.asyncio
async def test_get_intent_not_found():
    client = _client(lambda request: httpx.Response(404, json={"message": "not found"}))
    with pytest.raises(IntentNotFoundError):
        await client.get_intent("nope")


@pytest.mark.asyncio
async def test_reads_retry_then_raise_transient_error():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(503)

    with pytest.raises(TransientGatewayError):
        await _client(handler).get_intent("i-1")
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_network_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(TransientGatewayError):
        await _client(handler).list_intents("dev")


@pytest.mark.asyncio
async def test_list_intents_reads_both_id_fields():
    def handler(request):
        return httpx.Response(200, json={"events": [
            {"payment_intent_id": "a", "state": "FINISHED"},
            {"id": "b", "state": "ON_DEVICE"},
        ]})

    intents = await _client(handler).list_intents("dev")

    assert [(i.id, i.state) for i in intents] == [("a", IntentState.FINISHED), ("b", IntentState.ON_DEVICE)]


@pytest.mark.asyncio
async def test_delete_intent_404_is_not_an_error():
    paths = []

    def handler(request):
        paths.append((request.method, request.url.path))
        return httpx.Response(404)

    assert await _client(handler).delete_intent("gone", "dev") is False
    assert paths == [("DELETE", "/point/integration-api/devices/dev/payment-intents/gone")]


@pytest.mark.asyncio
async def test_delete_intent_success():
    client = _client(lambda request: httpx.Response(200, json={"id": "i-1"}))
    assert await client.delete_intent("i-1") is True


@pytest.mark.asyncio
async def test_search_payments_queries_each_status_server_side():
    seen = []
    results = {
        "approved": [
            {"id": 1, "transaction_amount": 15.5, "status": "approved", "payment_method_id": "pix"},
            {"id": 3, "transaction_amount": 15.5, "status": "rejected"},
        ],
        "authorized": [
            {"id": 2, "transaction_amount": 10.005, "status": "authorized"},
            {"id": 1, "transaction_amount": 15.5, "status": "approved"},
        ],
    }

    def handler(request):
        params = dict(request.url.params)
        seen.append(params)
        return httpx.Response(200, json={"results": results[params["status"]]})

    payments = await _client(handler).search_payments(window_minutes=30, statuses=["approved", "authorized"], limit=50)

    assert [(p.id, p.amount_cents) for p in payments] == [("1", 1550), ("2", 1001)]
    assert [p["status"] for p in seen] == ["approved", "authorized"]
    for params in seen:
        assert params["begin_date"] == "NOW-30MINUTES"
        assert params["end_date"] == "NOW"
        assert params["sort"] == "date_created"
        assert params["criteria"] == "desc"
        assert params["limit"] == "50"


@pytest.mark.asyncio
async def test_search_payments_without_statuses_sends_no_status_filter():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"results": [{"id": 7, "transaction_amount": 2, "status": "rejected"}]})

    payments = await _client(handler).search_payments(window_minutes=5, statuses=[], limit=10)

    assert [p.id for p in payments] == ["7"]
    assert "status" not in seen["params"]


@pytest.mark.asyncio
async def test_device_status_and_configure():
    def handler(request):
        if request.method == "PATCH":
            return httpx.Response(200, json={"id": "dev", "operating_mode": json.loads(request.content)["operating_mode"]})
        return httpx.Response(200, json={"id": "dev", "operating_mode": "PDV", "status": "ACTIVE"})

    client = _client(handler)
    device = await client.get_device("dev")
    configured = await client.configure_device("dev", "PDV")

    assert device.operating_mode == "PDV" and device.model is None
    assert configured == {"id": "dev", "operating_mode": "PDV"}


def test_missing_token_is_rejected():
    with pytest.raises(RuntimeError):
        MercadoPagoPointClient(GatewaySettings(access_token=None, device_id="dev"))
