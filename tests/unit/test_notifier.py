"""Tests for the chat webhook notifier."""

import json

import httpx
import pytest

from deployhook.lib.notifier import MAX_CONTENT_LENGTH, WebhookNotifier, format_code_block


def _capture(status_code: int = 204):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code)

    return requests, httpx.MockTransport(handler)


class TestFormatCodeBlock:
    def test_wraps_in_fence(self):
        assert format_code_block("line one\nline two") == "```\nline one\nline two\n```"

    def test_fits_limit(self):
        block = format_code_block("x" * 5000)
        assert len(block) <= MAX_CONTENT_LENGTH
        assert block.startswith("```\n") and block.endswith("\n```")
        assert "(truncated)" in block

    def test_nested_fence_cannot_close_block(self):
        block = format_code_block("a ``` b")
        assert block.count("```") == 2


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        notifier = WebhookNotifier(None)
        assert notifier.enabled is False
        assert await notifier.send_text("hello") is False
        assert await notifier.send_code("hello") is False

    def test_empty_url_disables(self):
        assert WebhookNotifier("").enabled is False

    @pytest.mark.asyncio
    async def test_send_text(self):
        requests, transport = _capture()
        notifier = WebhookNotifier("https://chat.example.com/hook", transport=transport)
        assert await notifier.send_text("App app1 has been deployed") is True

        assert len(requests) == 1
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == {"content": "[deployhook] App app1 has been deployed"}

    @pytest.mark.asyncio
    async def test_send_code(self):
        requests, transport = _capture()
        notifier = WebhookNotifier("https://chat.example.com/hook", transport=transport)
        await notifier.send_code("fatal: repository not found")
        assert json.loads(requests[0].content)["content"] == "```\nfatal: repository not found\n```"

    @pytest.mark.asyncio
    async def test_long_text_is_trimmed(self):
        requests, transport = _capture()
        notifier = WebhookNotifier("https://chat.example.com/hook", transport=transport)
        await notifier.send_text("y" * 10000)
        assert len(json.loads(requests[0].content)["content"]) == MAX_CONTENT_LENGTH

    @pytest.mark.asyncio
    async def test_delivery_error_is_not_raised(self):
        _, transport = _capture(status_code=500)
        notifier = WebhookNotifier("https://chat.example.com/hook", transport=transport)
        assert await notifier.send_text("hello") is False

    @pytest.mark.asyncio
    async def test_invalid_url_is_not_raised(self):
        notifier = WebhookNotifier("http://\x00x")
        assert notifier.enabled is True
        assert await notifier.send_text("hello") is False
        await notifier.aclose()

    @pytest.mark.asyncio
    async def test_client_is_reused_until_closed(self):
        requests, transport = _capture()
        notifier = WebhookNotifier("https://chat.example.com/hook", transport=transport)
        await notifier.send_text("first")
        client = notifier._client
        await notifier.send_text("second")
        assert notifier._client is client
        assert len(requests) == 2

        await notifier.aclose()
        assert client.is_closed
        assert notifier._client is None

        # Sending after close opens a fresh client
        assert await notifier.send_text("third") is True
        assert notifier._client is not client
        await notifier.aclose()

    @pytest.mark.asyncio
    async def test_aclose_without_client(self):
        await WebhookNotifier(None).aclose()
