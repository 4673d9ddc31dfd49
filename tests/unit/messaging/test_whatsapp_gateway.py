import json

import httpx
import pytest

from messaging.domain.exceptions import ProviderError
from messaging.domain.value_objects.message_status import MessageType
from messaging.infrastructure.adapters.whatsapp_gateway import CircuitBreaker, CircuitState, WhatsAppCloudGateway

BASE = "https://graph.test/v21.0"


def make_gateway(handler, clock=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    breaker = CircuitBreaker(clock=clock) if clock is not None else None
    return WhatsAppCloudGateway(base_url=BASE, client=client, circuit_breaker=breaker)


async def send(gateway):
    return await gateway.send_message(
        channel_id="chan-a",
        access_token="EAAG-live-token",
        to="919876543210",
        message_type=MessageType.TEXT,
        payload={"body": "hello"},
    )


async def test_success_returns_provider_message_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]})

    gateway = make_gateway(handler)
    assert await send(gateway) == "wamid.ABC"

    (request,) = seen
    assert str(request.url) == f"{BASE}/chan-a/messages"
    assert request.headers["Authorization"] == "Bearer EAAG-live-token"
    body = json.loads(request.content)
    assert body["to"] == "919876543210"
    assert body["type"] == "text"
    assert body["text"] == {"body": "hello"}
    await gateway.close()


async def test_client_error_carries_provider_code():
    def handler(request):
        return httpx.Response(400, json={"error": {"code": 131026, "message": "Message undeliverable"}})

    gateway = make_gateway(handler)
    with pytest.raises(ProviderError) as info:
        await send(gateway)
    assert info.value.http_status == 400
    assert info.value.provider_code == 131026
    assert info.value.message == "Message undeliverable"
    assert gateway.circuit_breaker.failure_count == 0


async def test_retry_after_header_is_parsed():
    def handler(request):
        return httpx.Response(429, headers={"Retry-After": "30"}, json={"error": {"code": 130429}})

    gateway = make_gateway(handler)
    with pytest.raises(ProviderError) as info:
        await send(gateway)
    assert info.value.http_status == 429
    assert info.value.retry_after == 30


async def test_non_json_error_body():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    gateway = make_gateway(handler)
    with pytest.raises(ProviderError) as info:
        await send(gateway)
    assert info.value.http_status == 502
    assert info.value.provider_code is None


async def test_timeout_and_network_errors_are_flagged():
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    def offline(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError) as info:
        await send(make_gateway(timeout))
    assert info.value.is_timeout

    with pytest.raises(ProviderError) as info:
        await send(make_gateway(offline))
    assert info.value.is_network


async def test_missing_message_id_is_an_error():
    gateway = make_gateway(lambda request: httpx.Response(200, json={"messages": []}))
    with pytest.raises(ProviderError):
        await send(gateway)


async def test_circuit_opens_after_repeated_server_errors(clock):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) <= 5:
            return httpx.Response(500, json={"error": {"code": 1, "message": "boom"}})
        return httpx.Response(200, json={"messages": [{"id": "wamid.OK"}]})

    gateway = make_gateway(handler, clock)
    for _ in range(5):
        with pytest.raises(ProviderError):
            await send(gateway)
    assert gateway.circuit_breaker.state == CircuitState.OPEN

    with pytest.raises(ProviderError) as info:
        await send(gateway)
    assert info.value.is_network
    assert len(calls) == 5

    clock.advance(60)
    assert await send(gateway) == "wamid.OK"
    assert gateway.circuit_breaker.state == CircuitState.CLOSED


async def test_template_submission_requires_business_account():
    gateway = make_gateway(lambda request: httpx.Response(200, json={"id": "tpl-1", "status": "PENDING"}))
    with pytest.raises(ProviderError):
        await gateway.submit_template(waba_id="", access_token="t", template={"name": "welcome"})
    assert (await gateway.submit_template(waba_id="waba-a", access_token="t", template={"name": "welcome"}))["id"] == "tpl-1"


@pytest.mark.parametrize(
    "status, body",
    [
        (400, {"error": "Invalid parameter"}),
        (400, ["Invalid parameter"]),
        (500, "upstream exploded"),
    ],
)
async def test_error_body_of_unexpected_shape_is_a_provider_error(status, body):
    gateway = make_gateway(lambda request: httpx.Response(status, json=body))
    with pytest.raises(ProviderError) as info:
        await send(gateway)
    assert info.value.http_status == status
    assert info.value.provider_code is None


@pytest.mark.parametrize(
    "body",
    [
        [{"id": "wamid.ABC"}],
        {"messages": "wamid.ABC"},
        {"messages": ["wamid.ABC"]},
    ],
)
async def test_success_body_of_unexpected_shape_is_a_provider_error(body):
    gateway = make_gateway(lambda request: httpx.Response(200, json=body))
    with pytest.raises(ProviderError):
        await send(gateway)
    assert gateway.circuit_breaker.failure_count == 0
