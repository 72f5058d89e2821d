"""
Tests for the Telegram Bot API client against a mocked HTTP transport.
"""

import json
from types import SimpleNamespace

import httpx
import pytest

from app.core.config import settings
from app.services.messaging.telegram_client import (
    TelegramApiError,
    TelegramRateLimitError,
    answer_callback_query,
    call_telegram,
    edit_message_text,
    send_media_group,
    send_message,
)


@pytest.fixture
def bot_api(monkeypatch):
    """Route Bot API calls to a handler; returns the list of captured requests."""
    settings.telegram_dry_run = False
    requests: list[httpx.Request] = []
    responses: list[httpx.Response] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if responses:
            return responses.pop(0)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 77}})

    def fake_client(base_url: str = "") -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))

    monkeypatch.setattr("app.services.messaging.telegram_client.create_httpx_client", fake_client)

    return SimpleNamespace(requests=requests, respond=responses.append)


@pytest.mark.asyncio
async def test_send_message_posts_to_method_url(bot_api):
    result = await send_message(555, "hello", reply_markup={"inline_keyboard": []})

    assert result == {"message_id": 77}
    (request,) = bot_api.requests
    assert request.url.path == f"/bot{settings.telegram_bot_token}/sendMessage"
    # Empty markup is not sent
    assert json.loads(request.content) == {"chat_id": 555, "text": "hello"}


@pytest.mark.asyncio
async def test_rate_limit_raises_with_retry_after(bot_api):
    bot_api.respond(
        httpx.Response(
            429,
            json={
                "ok": False,
                "error_code": 429,
                "description": "Too Many Requests: retry after 30",
                "parameters": {"retry_after": 30},
            },
        )
    )

    with pytest.raises(TelegramRateLimitError) as exc_info:
        await send_media_group("-100777", ["a", "b"])

    assert exc_info.value.retry_after_seconds == 30
    assert exc_info.value.status_code == 429
    assert exc_info.value.method == "sendMediaGroup"


@pytest.mark.asyncio
async def test_429_without_hint_is_plain_api_error(bot_api):
    bot_api.respond(httpx.Response(429, json={"ok": False, "description": "Too Many Requests"}))

    with pytest.raises(TelegramApiError) as exc_info:
        await send_message(1, "x")

    assert not isinstance(exc_info.value, TelegramRateLimitError)


@pytest.mark.asyncio
async def test_ok_false_raises_api_error(bot_api):
    bot_api.respond(httpx.Response(200, json={"ok": False, "description": "chat not found"}))

    with pytest.raises(TelegramApiError, match="chat not found"):
        await send_message(1, "x")


@pytest.mark.asyncio
async def test_http_error_status_raises_api_error(bot_api):
    bot_api.respond(
        httpx.Response(400, json={"ok": False, "description": "Bad Request: message is not modified"})
    )

    with pytest.raises(TelegramApiError) as exc_info:
        await edit_message_text(1, 10, "same text")

    assert exc_info.value.status_code == 400
    assert "message is not modified" in str(exc_info.value)


@pytest.mark.asyncio
async def test_network_error_raises_api_error(monkeypatch):
    settings.telegram_dry_run = False

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    def fake_client(base_url: str = "") -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))

    monkeypatch.setattr("app.services.messaging.telegram_client.create_httpx_client", fake_client)

    with pytest.raises(TelegramApiError, match="ConnectError"):
        await answer_callback_query("cbq-1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_malformed_success_body_raises_api_error(bot_api, response):
    bot_api.respond(response)

    with pytest.raises(TelegramApiError) as exc_info:
        await send_message(1, "x")

    assert exc_info.value.method == "sendMessage"
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_send_media_group_builds_photo_items(bot_api):
    bot_api.respond(httpx.Response(200, json={"ok": True, "result": [{"message_id": 1}, {"message_id": 2}]}))

    result = await send_media_group("-100777", ["f1", "f2"])

    assert len(result) == 2
    body = json.loads(bot_api.requests[0].content)
    assert body["media"] == [{"type": "photo", "media": "f1"}, {"type": "photo", "media": "f2"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("file_ids", [[], [f"f{i}" for i in range(11)]])
async def test_send_media_group_rejects_bad_sizes(bot_api, file_ids):
    with pytest.raises(ValueError):
        await send_media_group("-100777", file_ids)
    assert bot_api.requests == []


@pytest.mark.asyncio
async def test_dry_run_makes_no_http_calls(monkeypatch):
    settings.telegram_dry_run = True

    def no_client(base_url: str = ""):
        raise AssertionError("dry-run must not open an HTTP client")

    monkeypatch.setattr("app.services.messaging.telegram_client.create_httpx_client", no_client)

    assert (await call_telegram("sendMessage", {"chat_id": 1, "text": "x"}))["dry_run"] is True
    assert len(await call_telegram("sendMediaGroup", {"chat_id": 1, "media": [{}, {}]})) == 2
