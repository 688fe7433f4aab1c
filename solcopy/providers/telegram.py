"""Telegram Bot API client (sendMessage / answerCallbackQuery / setWebhook)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .base import Provider
from ..core.errors import ProviderError

logger = logging.getLogger(__name__)


class TelegramClient(Provider):
    """Thin async wrapper over the Bot API used by the notification sink and webhook."""

    name = "telegram"
    timeout_s = 10

    API_URL = "https://api.telegram.org"

    def __init__(self, token: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.token = token
        self._client = client

    async def ready(self) -> bool:
        return bool(self.token)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "Bot token not configured"}
        return {"status": "configured"}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not await self.ready():
            raise ProviderError("Telegram bot token not configured", provider=self.name)

        client = await self._get_client()
        try:
            response = await client.post(f"{self.API_URL}/bot{self.token}/{method}", json=payload)
            data = response.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"Telegram {method} failed: {e}", provider=self.name) from e
        except ValueError as e:
            raise ProviderError(f"Telegram {method} returned invalid JSON", provider=self.name) from e

        if not data.get("ok"):
            raise ProviderError(
                f"Telegram {method} error: {data.get('description', response.status_code)}",
                provider=self.name,
            )
        return data.get("result") or {}

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: str = "HTML",
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text[:200]
        await self._call("answerCallbackQuery", payload)

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        await self._call("setWebhook", payload)
        logger.info(f"Telegram webhook set to {url}")
