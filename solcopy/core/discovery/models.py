"""Discovery candidates and their cached risk analysis."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class WalletAnalysis(BaseModel):
    """One-shot risk heuristic for a discovered wallet."""

    balance_sol: Decimal = Decimal("0")
    tx_count: int = 0
    is_active: bool = False
    suspicious: bool = False
    last_tx_time: Optional[int] = None  # unix seconds of the most recent signature
    error: Optional[str] = None  # set when the lookup failed

    @classmethod
    def unknown(cls, error: str) -> "WalletAnalysis":
        return cls(error=error)


class DiscoveredCandidate(BaseModel):
    """Recipient of a transfer from a watched account, awaiting a follow decision."""

    address: str
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    transfer_amount: Decimal
    from_account: str
    signature: Optional[str] = None
    notified: bool = False
    ignored: bool = False
    analysis: Optional[WalletAnalysis] = None


class DiscoveryStats(BaseModel):
    total: int = 0
    added: int = 0
    pending: int = 0
    avg_transfer_amount: Decimal = Decimal("0")
