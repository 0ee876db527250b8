from __future__ import annotations

import json

import httpx
import pytest

from linerelay.app.messaging.reply import LineReplyDispatcher, build_reply_dispatcher
from linerelay.core.errors import ConfigurationError, DeliveryError
from tests.conftest import build_test_config


def _dispatcher(handler) -> LineReplyDispatcher:
    return LineReplyDispatcher(
        channel_access_token="line-token",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_reply_posts_single_text_message() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    await _dispatcher(handler).reply("R1", "hello!")

    request = captured[0]
    assert str(request.url) == "https://api.line.me/v2/bot/message/reply"
    assert request.headers["Authorization"] == "Bearer line-token"
    assert json.loads(request.content) == {
        "replyToken": "R1",
        "messages": [{"type": "text", "text": "hello!"}],
    }


@pytest.mark.asyncio
async def test_reply_raises_delivery_error_for_expired_token() -> None:
    dispatcher = _dispatcher(
        lambda _: httpx.Response(400, json={"message": "Invalid reply token"})
    )

    with pytest.raises(DeliveryError, match="Invalid reply token"):
        await dispatcher.reply("expired", "hello!")


@pytest.mark.asyncio
async def test_reply_raises_delivery_error_on_transport_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(DeliveryError):
        await _dispatcher(handler).reply("R1", "hello!")


@pytest.mark.asyncio
async def test_reply_rejects_blank_token_without_calling_api() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    with pytest.raises(DeliveryError):
        await _dispatcher(handler).reply("  ", "hello!")
    assert calls == []


def test_build_reply_dispatcher_requires_channel_token() -> None:
    with pytest.raises(ConfigurationError):
        build_reply_dispatcher(build_test_config(line_channel_access_token=None))
