"""
Ledger Module

Tracked accounts and the trade ledger, with pluggable snapshot persistence.
"""

from .models import (
    AccountCategory,
    ExitReason,
    LedgerSnapshot,
    LedgerStats,
    TrackedAccount,
    Trade,
    TradeDirection,
    TradeState,
)
from .store import InMemoryStateStore, JsonFileStateStore, StateStore
from .ledger import Ledger

__all__ = [
    # Models
    "AccountCategory",
    "ExitReason",
    "LedgerSnapshot",
    "LedgerStats",
    "TrackedAccount",
    "Trade",
    "TradeDirection",
    "TradeState",
    # Stores
    "InMemoryStateStore",
    "JsonFileStateStore",
    "StateStore",
    # Ledger
    "Ledger",
]
