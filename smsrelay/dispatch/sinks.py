"""Upstream notification sinks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from smsrelay.utils.helpers import truncate_string

# (url, json_body, timeout_seconds) -> decoded response
JsonPoster = Callable[[str, dict[str, Any], float], Awaitable[dict[str, Any]]]

TELEGRAM_MAX_MESSAGE_CHARS = 4096


class SinkError(Exception):
    """The upstream refused or failed to accept a notification."""


class NotificationSink(ABC):
    """Delivers one formatted notification string upstream."""

    name: str = "base"

    @abstractmethod
    async def send(self, text: str) -> None:
        """Deliver ``text``; raise on failure."""

    async def close(self) -> None:
        return None


class LogSink(NotificationSink):
    """Writes notifications to the log instead of a remote party."""

    name = "log"

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)
        logger.info(f"notification:\n{text}")


class TelegramSink(NotificationSink):
    """Sends notifications through the Telegram Bot API ``sendMessage`` method."""

    name = "telegram"

    def __init__(
        self,
        *,
        token: str,
        chat_id: str,
        api_base: str = "https://api.telegram.org",
        proxy: str | None = None,
        timeout_seconds: float = 10.0,
        poster: JsonPoster | None = None,
    ) -> None:
        self.token = str(token or "").strip()
        self.chat_id = str(chat_id or "").strip()
        if not self.token or not self.chat_id:
            raise ValueError("telegram sink requires token and chat_id")
        self.api_base = str(api_base or "https://api.telegram.org").rstrip("/")
        self.proxy = proxy or None
        self.timeout_seconds = max(0.5, float(timeout_seconds))
        self._poster = poster or self._http_post_json
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, telegram: Any, *, poster: JsonPoster | None = None) -> TelegramSink:
        return cls(
            token=telegram.token,
            chat_id=telegram.chat_id,
            api_base=telegram.api_base,
            proxy=telegram.proxy,
            timeout_seconds=telegram.timeout_seconds,
            poster=poster,
        )

    @property
    def send_url(self) -> str:
        return f"{self.api_base}/bot{self.token}/sendMessage"

    async def send(self, text: str) -> None:
        body = {
            "chat_id": self.chat_id,
            "text": truncate_string(str(text), TELEGRAM_MAX_MESSAGE_CHARS),
            "disable_web_page_preview": True,
        }
        payload = await self._poster(self.send_url, body, self.timeout_seconds)
        if not payload.get("ok", False):
            description = str(payload.get("description") or "unknown error")
            raise SinkError(f"telegram rejected message: {description}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _http_post_json(
        self,
        url: str,
        body: dict[str, Any],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=timeout_seconds, proxy=self.proxy)
        resp = await self._client.post(url, json=body)
        data = resp.json() if resp.content else {}
        if resp.status_code >= 400 and not isinstance(data, dict):
            resp.raise_for_status()
        return data if isinstance(data, dict) else {}
