"""Notification sinks: Telegram chat delivery and a log-only fallback."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .formatter import format_notification
from .models import Notification

if TYPE_CHECKING:
    from ...providers.telegram import TelegramClient

logger = logging.getLogger(__name__)


class LoggingNotificationSink:
    """Writes notifications to the application log. Used when no bot is configured."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            f"[{notification.type.value}] {notification.message or ''}",
            extra={"notification": notification.model_dump(mode="json")},
        )


class TelegramNotificationSink:
    """Formats notifications as HTML and posts them to the configured chat."""

    def __init__(self, client: "TelegramClient", chat_id: str):
        self.client = client
        self.chat_id = chat_id

    async def send(self, notification: Notification) -> None:
        text, markup = format_notification(notification)
        await self.client.send_message(self.chat_id, text, reply_markup=markup)
