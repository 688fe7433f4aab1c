"""Listener events and connection state."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    TRANSFER = "TRANSFER"
    BUY = "BUY"
    SELL = "SELL"


class ListenerState(str, Enum):
    """Connection lifecycle of the stream listener."""

    STOPPED = "stopped"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


class ClassifiedEvent(BaseModel):
    """A log notification recognised as a transfer or a swap."""

    type: EventType
    signature: str
    source_account: str
    amount_native: Decimal = Decimal("0")
    asset_id: Optional[str] = None
    asset_symbol: Optional[str] = None
    destination: Optional[str] = None  # TRANSFER only
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_trade(self) -> bool:
        return self.type in (EventType.BUY, EventType.SELL)
