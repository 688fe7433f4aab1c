"""
Log Classifier

Heuristic classification of raw program logs into transfers and swaps.
Logs are joined into one string and matched with regular expressions, so a
miss is always possible; a miss returns None and is never an error.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Protocol

from .models import ClassifiedEvent, EventType
from ...config import LAMPORTS_PER_SOL, NATIVE_MINT, ConfigStore

SWAP_MARKER = "Program log: Instruction: Swap"

_SOL_AMOUNT_RE = re.compile(r"Transfer: (\d+\.?\d*) SOL")
_LAMPORTS_RE = re.compile(r"(\d+) lamports")
_BASE58_RE = re.compile(r"[A-HJ-NP-Za-km-z1-9]{32,44}")
_TO_RE = re.compile(r"to: ([A-HJ-NP-Za-km-z1-9]{32,44})")
_FROM_RE = re.compile(r"from: ([A-HJ-NP-Za-km-z1-9]{32,44})")


class EventClassifier(Protocol):
    def classify(self, logs: List[str], signature: str) -> Optional[ClassifiedEvent]:
        ...


class LogClassifier:
    """
    Default classifier.

    Rules, first match wins:
    1. Swap marker plus a reference to the native mint, with both `from:`
       and `to:` present: BUY when `from:` comes first, SELL otherwise.
    2. A lamports transfer whose SOL amount is inside the runtime discovery
       range: TRANSFER.
    """

    def __init__(self, master_wallet: str, config_store: ConfigStore):
        self.master_wallet = master_wallet
        self.config_store = config_store

    def classify(self, logs: List[str], signature: str) -> Optional[ClassifiedEvent]:
        text = " ".join(logs)

        event = self._classify_swap(text, signature)
        if event is not None:
            return event
        return self._classify_transfer(text, signature)

    def _classify_swap(self, text: str, signature: str) -> Optional[ClassifiedEvent]:
        if SWAP_MARKER not in text:
            return None
        if NATIVE_MINT not in text and "wsol" not in text:
            return None

        from_pos = text.find("from:")
        to_pos = text.find("to:")
        if from_pos < 0 or to_pos < 0:
            return None

        asset_id = next(
            (addr for addr in _BASE58_RE.findall(text) if addr != NATIVE_MINT),
            None,
        )
        if asset_id is None:
            return None

        amount = Decimal("0")
        match = _SOL_AMOUNT_RE.search(text)
        if match:
            try:
                amount = Decimal(match.group(1))
            except InvalidOperation:
                pass

        return ClassifiedEvent(
            type=EventType.BUY if from_pos < to_pos else EventType.SELL,
            signature=signature,
            source_account=self.master_wallet,
            amount_native=amount,
            asset_id=asset_id,
        )

    def _classify_transfer(self, text: str, signature: str) -> Optional[ClassifiedEvent]:
        if "Transfer" not in text or "lamports" not in text:
            return None

        match = _LAMPORTS_RE.search(text)
        if not match:
            return None

        amount = Decimal(match.group(1)) / LAMPORTS_PER_SOL
        cfg = self.config_store.snapshot()
        if amount < cfg.min_transfer or amount > cfg.max_transfer:
            return None

        to_match = _TO_RE.search(text)
        from_match = _FROM_RE.search(text)
        return ClassifiedEvent(
            type=EventType.TRANSFER,
            signature=signature,
            source_account=from_match.group(1) if from_match else self.master_wallet,
            amount_native=amount,
            destination=to_match.group(1) if to_match else None,
        )
