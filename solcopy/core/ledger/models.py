"""
Ledger Models

Tracked accounts, copied trades and the persisted snapshot document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from ...config import TradingMode


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountCategory(str, Enum):
    """How an account entered the watch list."""

    MASTER = "master"
    FOLLOWED = "followed"
    DISCOVERED = "discovered"


class TradeDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeState(str, Enum):
    """Lifecycle of a copied trade. Only ever moves forward."""

    PENDING = "PENDING"  # Detected, not filled yet
    ACTIVE = "ACTIVE"  # Filled, exit monitor running
    CLOSED = "CLOSED"  # Exited (TP, SL or manual)


class ExitReason(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    MANUAL = "MANUAL"


# Allowed forward moves of TradeState
TRADE_TRANSITIONS: Dict[TradeState, Set[TradeState]] = {
    TradeState.PENDING: {TradeState.ACTIVE},
    TradeState.ACTIVE: {TradeState.CLOSED},
    TradeState.CLOSED: set(),
}


class TrackedAccount(BaseModel):
    """A wallet whose activity is subscribed to."""

    address: str
    category: AccountCategory = AccountCategory.FOLLOWED
    active: bool = True
    added_at: datetime = Field(default_factory=_utcnow)


class Trade(BaseModel):
    """A trade copied from a watched account."""

    id: str
    source_account: str
    asset_id: str
    asset_symbol: Optional[str] = None
    direction: TradeDirection
    state: TradeState = TradeState.PENDING

    # Risk parameters (taken from the runtime config, never from the source trade)
    size_native: Decimal
    tp_percent: Decimal
    sl_percent: Decimal
    mode: TradingMode = TradingMode.TEST

    # Fill
    entry_price: Optional[Decimal] = None
    asset_amount: Optional[Decimal] = None
    tx_signature: Optional[str] = None

    # Exit
    exit_price: Optional[Decimal] = None
    exit_reason: Optional[ExitReason] = None
    pnl_native: Optional[Decimal] = None
    pnl_percent: Optional[Decimal] = None

    # Metadata
    signature: Optional[str] = None  # Source transaction that triggered the copy
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def take_profit_price(self) -> Optional[Decimal]:
        if self.entry_price is None:
            return None
        return self.entry_price * (1 + self.tp_percent / 100)

    @property
    def stop_loss_price(self) -> Optional[Decimal]:
        if self.entry_price is None:
            return None
        return self.entry_price * (1 - self.sl_percent / 100)

    @property
    def display_symbol(self) -> str:
        return self.asset_symbol or f"{self.asset_id[:8]}..."


class LedgerStats(BaseModel):
    """Aggregate view over the trade ledger."""

    active_positions: int = 0
    pending_trades: int = 0
    closed_trades: int = 0
    total_trades: int = 0
    total_pnl: Decimal = Decimal("0")
    win_rate: float = 0.0
    tracked_accounts: int = 0


class LedgerSnapshot(BaseModel):
    """The document handed to the state store."""

    accounts: List[TrackedAccount] = Field(default_factory=list)
    trades: List[Trade] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=_utcnow)
