"""Outbound notification records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    TRADE_DETECTED = "trade_detected"
    TRADE_EXECUTED = "trade_executed"
    EXECUTION_FAILED = "execution_failed"
    TRADE_CLOSED = "trade_closed"  # TP, SL or manual; reason in data["reason"]
    WALLET_DISCOVERED = "wallet_discovered"
    WALLET_ADDED = "wallet_added"
    LISTENER_FATAL = "listener_fatal"
    BOT_STATUS = "bot_status"
    ERROR = "error"


class Notification(BaseModel):
    type: NotificationType
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
