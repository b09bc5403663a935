"""Tests for the ThinkX Cloud SMS adapter using an httpx mock transport."""

import json

import httpx
import pytest

from marketplace_core.errors import DeliveryError
from marketplace_core.messaging.thinkx import ThinkXSmsSender

BASE_URL = "https://sms.example.test/api"


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_send_posts_key_number_and_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"response": "OK", "data": {"message_reference": "MSG-42"}}
        )

    async with make_client(handler) as client:
        sender = ThinkXSmsSender("live-key", BASE_URL, client=client)
        receipt = await sender.send("+256700000001", "Your code is 123456")

    assert receipt.channel == "sms"
    assert receipt.reference == "MSG-42"
    assert seen["url"] == f"{BASE_URL}/send-message"
    assert seen["body"] == {
        "api_key": "live-key",
        "number": "+256700000001",
        "message": "Your code is 123456",
    }


@pytest.mark.asyncio
async def test_provider_rejection_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"response": "ERROR", "message": "Insufficient credit"})

    async with make_client(handler) as client:
        sender = ThinkXSmsSender("live-key", BASE_URL, client=client)
        with pytest.raises(DeliveryError, match="Insufficient credit"):
            await sender.send("+256700000001", "hi")


@pytest.mark.asyncio
async def test_auth_failure_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "bad key"})

    async with make_client(handler) as client:
        sender = ThinkXSmsSender("live-key", BASE_URL, client=client)
        with pytest.raises(DeliveryError):
            await sender.send("+256700000001", "hi")


@pytest.mark.asyncio
async def test_network_error_raises_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        sender = ThinkXSmsSender("live-key", BASE_URL, client=client)
        with pytest.raises(DeliveryError):
            await sender.send("+256700000001", "hi")


@pytest.mark.asyncio
async def test_unconfigured_sender_refuses_to_send():
    sender = ThinkXSmsSender("your_thinkxcloud_api_key", BASE_URL)

    assert sender.configured is False
    with pytest.raises(DeliveryError):
        await sender.send("+256700000001", "hi")
    assert ThinkXSmsSender("", BASE_URL).configured is False


@pytest.mark.asyncio
async def test_credit_balance_and_message_status():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/message-credit-balance"):
            return httpx.Response(
                200, json={"response": "OK", "data": {"message_credit_balance": "120"}}
            )
        return httpx.Response(200, json={"response": "OK", "data": {"status": "DELIVERED"}})

    async with make_client(handler) as client:
        sender = ThinkXSmsSender("live-key", BASE_URL, client=client)
        assert await sender.credit_balance() == "120"
        assert await sender.message_status("MSG-42") == "DELIVERED"
