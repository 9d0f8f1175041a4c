from __future__ import annotations

from typing import Any

import pytest

from smsrelay.config.schema import TelegramConfig
from smsrelay.dispatch.sinks import TELEGRAM_MAX_MESSAGE_CHARS, SinkError, TelegramSink


class _FakePoster:
    def __init__(self, response: dict[str, Any]) -> None:
        self.response = response
        self.calls: list[tuple[str, dict[str, Any], float]] = []

    async def __call__(self, url: str, body: dict[str, Any], timeout_seconds: float) -> dict[str, Any]:
        self.calls.append((url, body, timeout_seconds))
        return self.response


@pytest.mark.asyncio
async def test_telegram_sink_posts_send_message() -> None:
    poster = _FakePoster({"ok": True, "result": {"message_id": 1}})
    sink = TelegramSink(token="123:abc", chat_id="42", api_base="https://tg.example/", poster=poster)

    await sink.send("[Receive SMS]\nFrom: +1\nContent: hi")

    url, body, timeout = poster.calls[0]
    assert url == "https://tg.example/bot123:abc/sendMessage"
    assert body["chat_id"] == "42"
    assert body["text"].startswith("[Receive SMS]")
    assert body["disable_web_page_preview"] is True
    assert timeout == 10.0


@pytest.mark.asyncio
async def test_telegram_sink_raises_when_rejected() -> None:
    poster = _FakePoster({"ok": False, "description": "Bad Request: chat not found"})
    sink = TelegramSink(token="123:abc", chat_id="42", poster=poster)

    with pytest.raises(SinkError, match="chat not found"):
        await sink.send("hello")


@pytest.mark.asyncio
async def test_telegram_sink_truncates_long_text() -> None:
    poster = _FakePoster({"ok": True})
    sink = TelegramSink(token="t", chat_id="c", poster=poster)

    await sink.send("x" * (TELEGRAM_MAX_MESSAGE_CHARS + 100))

    assert len(poster.calls[0][1]["text"]) == TELEGRAM_MAX_MESSAGE_CHARS


def test_telegram_sink_requires_credentials() -> None:
    with pytest.raises(ValueError):
        TelegramSink(token="", chat_id="42")
    with pytest.raises(ValueError):
        TelegramSink.from_config(TelegramConfig(enabled=True, token="t"))


def test_telegram_sink_from_config() -> None:
    sink = TelegramSink.from_config(
        TelegramConfig(enabled=True, token="t", chat_id="c", timeout_seconds=3, proxy="socks5://127.0.0.1:1080")
    )
    assert sink.send_url == "https://api.telegram.org/bott/sendMessage"
    assert sink.timeout_seconds == 3.0
    assert sink.proxy == "socks5://127.0.0.1:1080"
