"""Tests for notification delivery (no network)."""

import json

import httpx
import pytest

from listingwatch.notify.telegram import LogNotifier, TelegramNotifier


def notifier_for(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramNotifier("123:abc", "42", client=client)


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_posts_message(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        assert await notifier_for(handler).send("hello") is True
        assert seen["path"] == "/bot123:abc/sendMessage"
        assert seen["body"]["chat_id"] == "42"
        assert seen["body"]["text"] == "hello"

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        notifier = notifier_for(lambda request: httpx.Response(429, json={"ok": False}))
        assert await notifier.send("hello") is False

    @pytest.mark.asyncio
    async def test_api_error_returns_false(self):
        notifier = notifier_for(
            lambda request: httpx.Response(200, json={"ok": False, "description": "chat not found"})
        )
        assert await notifier.send("hello") is False

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        assert await notifier_for(handler).send("hello") is False


class TestLogNotifier:
    @pytest.mark.asyncio
    async def test_records_messages(self):
        notifier = LogNotifier()
        assert await notifier.send("one") is True
        assert notifier.sent == ["one"]
