import json
import logging

import httpx
import pytest

from application.dtos.payments import CheckoutLinkItem, GatewayAddress, GatewayCustomer
from core.settings import InfinitePaySettings, PaymentRetry, PaymentSettings
from domain.common.exceptions import GatewayError
from infrastructure.external.api_clients.base import APIError, MalformedResponseError
from infrastructure.external.payments.infinitepay_client import InfinitePayClient


ITEMS = [CheckoutLinkItem(description="Camiseta", quantity=1, price=10000)]


class Recorder:
    """MockTransport handler replaying a scripted list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(step, Exception):
            raise step
        return step


def _settings(**overrides) -> PaymentSettings:
    values = dict(
        infinitepay=InfinitePaySettings(api_url="https://ip.test", handle="$loja-teste"),
        retry=PaymentRetry(max_attempts=3, base_delay=1.0),
        backend_url="https://api.loja.test",
        frontend_url="https://loja.test",
    )
    values.update(overrides)
    return PaymentSettings(**values)


def _client(recorder, waits=None, **overrides) -> InfinitePayClient:
    async def _sleep(seconds: float) -> None:
        if waits is not None:
            waits.append(seconds)

    return InfinitePayClient(
        _settings(**overrides), transport=httpx.MockTransport(recorder), sleep=_sleep
    )


def _ok(url="https://pay.test/abc"):
    return httpx.Response(200, json={"url": url})


@pytest.mark.asyncio
async def test_link_payload_carries_order_id_and_clean_handle():
    recorder = Recorder(_ok())
    client = _client(recorder)

    link = await client.create_checkout_link(
        "ord-1",
        ITEMS,
        customer=GatewayCustomer(name="Ana", email="ana@example.com", phone="+5522997893098"),
        address=GatewayAddress(street="Rua A", number="10", city="Niterói", state="RJ", zip_code="24020000"),
    )

    assert link.url == "https://pay.test/abc"
    [request] = recorder.requests
    assert request.url.path == "/invoices/public/checkout/links"
    body = json.loads(request.content)
    assert body["handle"] == "loja-teste"
    assert body["order_nsu"] == "ord-1"
    assert body["items"] == [{"description": "Camiseta", "quantity": 1, "price": 10000}]
    assert body["webhook_url"] == "https://api.loja.test/api/v1/webhooks/infinitepay"
    assert body["redirect_url"] == "https://loja.test/checkout/success"
    assert body["customer"] == {"name": "Ana", "email": "ana@example.com", "phone": "+5522997893098"}
    assert body["address"]["zip"] == "24020000"
    assert "complement" not in body["address"]
    await client.aclose()


@pytest.mark.asyncio
async def test_server_errors_are_retried_until_success():
    recorder = Recorder(httpx.Response(502), httpx.Response(503), _ok())
    client = _client(recorder)

    link = await client.create_checkout_link("ord-1", ITEMS)

    assert link.url == "https://pay.test/abc"
    assert len(recorder.requests) == 3


@pytest.mark.asyncio
async def test_every_attempt_logs_request_and_response(caplog):
    caplog.set_level(logging.DEBUG, logger="infrastructure.external.api_clients.base")
    recorder = Recorder(httpx.Response(503), _ok())
    client = _client(recorder)

    await client.create_checkout_link("ord-1", ITEMS)

    messages = [r.getMessage() for r in caplog.records if r.name == "infrastructure.external.api_clients.base"]
    assert len([m for m in messages if m.startswith("gateway_request ")]) == 2
    assert [m.split()[1] for m in messages if m.startswith("gateway_response ")] == ["status=503", "status=200"]
    assert all("loja-teste" not in m for m in messages)


@pytest.mark.asyncio
async def test_retry_waits_grow_linearly():
    waits: list[float] = []
    recorder = Recorder(httpx.Response(500), httpx.Response(500), _ok())
    client = _client(recorder, waits)

    await client.create_checkout_link("ord-1", ITEMS)

    assert waits == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_retries_raise_retryable_gateway_error():
    recorder = Recorder(httpx.Response(503, json={"message": "maintenance"}))
    client = _client(recorder)

    with pytest.raises(GatewayError) as excinfo:
        await client.create_checkout_link("ord-1", ITEMS)

    assert excinfo.value.retryable
    assert excinfo.value.status_code == 503
    assert isinstance(excinfo.value.__cause__, APIError)
    assert len(recorder.requests) == 3


@pytest.mark.asyncio
async def test_connection_errors_are_retried():
    recorder = Recorder(httpx.ConnectError("connection refused"), _ok())
    client = _client(recorder)

    link = await client.create_checkout_link("ord-1", ITEMS)

    assert link.url == "https://pay.test/abc"
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_timeouts_exhaust_as_retryable():
    recorder = Recorder(httpx.ReadTimeout("slow"))
    client = _client(recorder)

    with pytest.raises(GatewayError) as excinfo:
        await client.create_checkout_link("ord-1", ITEMS)

    assert excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__.__cause__, httpx.TimeoutException)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 422, 429])
async def test_client_errors_fail_on_first_attempt(status):
    recorder = Recorder(httpx.Response(status, json={"message": "invalid handle"}))
    client = _client(recorder)

    with pytest.raises(GatewayError) as excinfo:
        await client.create_checkout_link("ord-1", ITEMS)

    assert not excinfo.value.retryable
    assert excinfo.value.status_code == status
    assert excinfo.value.details["provider_response"] == {"message": "invalid handle"}
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_non_json_body_is_malformed_and_not_retried():
    recorder = Recorder(httpx.Response(200, text="<html>oops</html>", headers={"content-type": "text/html"}))
    client = _client(recorder)

    with pytest.raises(GatewayError) as excinfo:
        await client.create_checkout_link("ord-1", ITEMS)

    assert not excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, MalformedResponseError)
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_missing_checkout_url_is_malformed():
    client = _client(Recorder(httpx.Response(200, json={"ok": True})))

    with pytest.raises(GatewayError) as excinfo:
        await client.create_checkout_link("ord-1", ITEMS)

    assert not excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, MalformedResponseError)


@pytest.mark.asyncio
async def test_missing_handle_fails_without_request():
    recorder = Recorder(_ok())
    client = _client(recorder, infinitepay=InfinitePaySettings(api_url="https://ip.test", handle=None))

    with pytest.raises(GatewayError):
        await client.create_checkout_link("ord-1", ITEMS)

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_payment_check_parses_report():
    recorder = Recorder(httpx.Response(200, json={
        "order_nsu": "ord-1",
        "status": "paid",
        "transaction_nsu": "tx-9",
        "capture_method": "pix",
        "paid_at": "2025-03-01T12:00:00Z",
        "amount": 10000,
    }))
    client = _client(recorder)

    report = await client.check_payment_status("ord-1")

    assert json.loads(recorder.requests[0].content) == {"order_nsu": "ord-1"}
    assert report.status == "paid"
    assert report.transaction_id == "tx-9"
    assert report.payment_method == "pix"
    assert report.paid_at.year == 2025
