import json
from urllib.parse import parse_qs

import httpx
import pytest

from application.dtos.payments import CreatePayment
from core.config import FlowSettings
from infrastructure.external.payments.exceptions import GatewayRejectedError, GatewayUnavailableError
from infrastructure.external.payments.flow_client import FlowClient
from infrastructure.external.payments.signature import verify


def _config(**overrides) -> FlowSettings:
    base = dict(
        api_url="https://sandbox.flow.cl/api",
        api_key="key-123",
        secret_key="secret-xyz",
        url_confirmation="https://example.test/api/flow/confirm",
        url_return="https://example.test/api/flow/return",
        retry_backoff_seconds=0.01,
    )
    base.update(overrides)
    return FlowSettings(**base)


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def _request() -> CreatePayment:
    return CreatePayment(
        order_id="MAKA-1-0001",
        subject="Maka Tatuajes - Abono sesión",
        amount=50000,
        email="ana@example.com",
        optional={"nombre": "Ana", "abono": "Abono sesión"},
    )


@pytest.mark.asyncio
async def test_create_payment_sends_signed_form_and_parses_redirect():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"url": "https://sandbox.flow.cl/app/web/pay.php", "token": "TK1", "flowOrder": 777})

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    created = await client.create_payment(_request())
    await client.aclose()

    assert created.token == "TK1"
    assert created.redirect_url == "https://sandbox.flow.cl/app/web/pay.php?token=TK1"
    assert created.flow_order == 777

    request = seen[0]
    assert request.url.path == "/api/payment/create"
    assert request.headers["content-type"].startswith("application/x-www-form-urlencoded")
    form = _form(request)
    assert form["commerceOrder"] == "MAKA-1-0001"
    assert form["amount"] == "50000"
    assert form["currency"] == "CLP"
    assert form["paymentMethod"] == "9"
    assert form["apiKey"] == "key-123"
    assert json.loads(form["optional"])["abono"] == "Abono sesión"
    assert verify(form, form["s"], "secret-xyz")


@pytest.mark.asyncio
async def test_create_payment_error_payload_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": 108, "message": "Invalid amount"})

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    with pytest.raises(GatewayRejectedError) as exc_info:
        await client.create_payment(_request())
    await client.aclose()

    assert exc_info.value.details["gateway_code"] == "108"
    assert "secret-xyz" not in exc_info.value.message


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"code": 105, "message": "Invalid apiKey"})

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    with pytest.raises(GatewayRejectedError):
        await client.get_status("TK1")
    await client.aclose()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_error_is_retried_once_then_unavailable():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={"message": "maintenance"})

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    with pytest.raises(GatewayUnavailableError) as exc_info:
        await client.get_status("TK1")
    await client.aclose()

    assert len(calls) == 2
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_transient_failure_recovers_on_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"status": 2, "commerceOrder": "MAKA-1-0001", "amount": 50000})

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    status = await client.get_status("TK1")
    await client.aclose()

    assert len(calls) == 2
    assert status.status_code == 2


@pytest.mark.asyncio
async def test_get_status_parses_authoritative_fields():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "flowOrder": 3567899,
                "commerceOrder": "MAKA-1-0001",
                "status": 2,
                "amount": "50000.00",
                "payer": "payer@example.com",
            },
        )

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    status = await client.get_status("TK1")
    await client.aclose()

    assert status.status_code == 2
    assert status.amount == 50000
    assert status.flow_order == 3567899
    assert status.commerce_order == "MAKA-1-0001"
    assert status.payer_email == "payer@example.com"
    form = _form(seen[0])
    assert seen[0].url.path == "/api/payment/getStatus"
    assert form["token"] == "TK1"
    assert verify(form, form["s"], "secret-xyz")


@pytest.mark.asyncio
async def test_unreadable_response_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>", headers={"content-type": "text/html"})

    client = FlowClient(_config(), transport=httpx.MockTransport(handler))
    with pytest.raises(GatewayUnavailableError):
        await client.get_status("TK1")
    await client.aclose()


def test_verify_callback_uses_api_key_and_token():
    from infrastructure.external.payments.signature import sign

    client = FlowClient(_config())
    good = sign({"apiKey": "key-123", "token": "TK1"}, "secret-xyz")
    assert client.verify_callback("TK1", good)
    assert not client.verify_callback("TK2", good)
