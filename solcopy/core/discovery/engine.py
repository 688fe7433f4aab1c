"""
Discovery Engine

Finds new wallets worth following: recipients of in-range SOL transfers sent
by a watched account. Each candidate is analysed once, announced once, and
forgotten after the retention window.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional

from .models import DiscoveredCandidate, DiscoveryStats, WalletAnalysis
from ..ledger import AccountCategory, Ledger
from ..notifications import NotificationQueue, NotificationType
from ...config import LAMPORTS_PER_SOL, ConfigStore

if TYPE_CHECKING:
    from ..listener import StreamListener
    from ...providers.base import ChainDataProvider

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """
    Candidate discovery and promotion.

    The engine is the only writer of the candidate window. Promotion goes
    through the ledger (sole writer of accounts) and the listener.
    """

    def __init__(
        self,
        ledger: Ledger,
        config_store: ConfigStore,
        listener: Optional["StreamListener"] = None,
        rpc: Optional["ChainDataProvider"] = None,
        notifications: Optional[NotificationQueue] = None,
        suspicious_balance: Decimal = Decimal("1000"),
        signature_limit: int = 10,
    ):
        self.ledger = ledger
        self.config_store = config_store
        self.listener = listener
        self.rpc = rpc
        self.notifications = notifications
        self.suspicious_balance = suspicious_balance
        self.signature_limit = signature_limit

        self._candidates: Dict[str, DiscoveredCandidate] = {}
        self._running = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        if self._running:
            logger.info("Discovery already running")
            return
        self._running = True
        cfg = self.config_store.snapshot()
        logger.info(f"Discovery started (range {cfg.min_transfer}-{cfg.max_transfer} SOL)")

    def stop(self) -> None:
        self._running = False
        logger.info("Discovery stopped")

    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Processing
    # =========================================================================

    async def process_transfer(
        self,
        from_account: str,
        to_account: Optional[str],
        amount: Decimal,
        signature: Optional[str] = None,
    ) -> Optional[DiscoveredCandidate]:
        """Record and announce a new candidate. Returns None when any guard rejects the transfer."""
        cfg = self.config_store.snapshot()
        if not self._running or not cfg.discovery_enabled:
            return None

        if not to_account:
            return None

        if amount < cfg.min_transfer or amount > cfg.max_transfer:
            return None

        master = self.config_store.master_wallet
        if from_account != master and not self.ledger.is_followed(from_account):
            return None

        if self.ledger.is_followed(to_account):
            logger.debug(f"Wallet {to_account[:8]}... already followed")
            return None

        if to_account in self._candidates:
            logger.debug(f"Wallet {to_account[:8]}... already discovered")
            return None

        candidate = DiscoveredCandidate(
            address=to_account,
            transfer_amount=amount,
            from_account=from_account,
            signature=signature,
        )
        self._candidates[to_account] = candidate
        logger.info(f"New wallet discovered: {to_account[:8]}... ({amount} SOL from {from_account[:8]}...)")

        analysis = await self.analyze_wallet(to_account)

        # The window may have been cleared while the lookup was in flight
        candidate = self._candidates.get(to_account)
        if candidate is None:
            return None
        candidate.analysis = analysis

        if analysis.suspicious:
            logger.info(f"Wallet {to_account[:8]}... looks suspicious, not announcing")
        elif self.notifications:
            self.notifications.publish(
                NotificationType.WALLET_DISCOVERED,
                address=to_account,
                from_account=from_account,
                transfer_amount=str(amount),
                balance_sol=str(analysis.balance_sol),
                tx_count=analysis.tx_count,
                is_active=analysis.is_active,
                signature=signature,
            )
        candidate.notified = True
        return candidate.model_copy()

    async def analyze_wallet(self, address: str) -> WalletAnalysis:
        """Balance and recent activity lookup. Lookup failures are treated as not suspicious."""
        if self.rpc is None:
            return WalletAnalysis.unknown("no RPC client configured")

        try:
            lamports = await self.rpc.get_balance(address)
            signatures = await self.rpc.get_signatures_for_address(address, limit=self.signature_limit)
        except Exception as e:
            logger.warning(f"Wallet analysis failed for {address[:8]}...: {e}")
            return WalletAnalysis.unknown(str(e))

        balance = Decimal(lamports) / LAMPORTS_PER_SOL
        tx_count = len(signatures)
        last_tx_time = signatures[0].get("blockTime") if signatures and isinstance(signatures[0], dict) else None
        return WalletAnalysis(
            balance_sol=balance,
            tx_count=tx_count,
            is_active=tx_count > 0,
            suspicious=balance > self.suspicious_balance or tx_count == 0,
            last_tx_time=last_tx_time,
        )

    # =========================================================================
    # Decisions
    # =========================================================================

    async def add_discovered_wallet(self, address: str) -> bool:
        """Promote a candidate to a followed account and subscribe to it."""
        candidate = self._candidates.get(address)
        if candidate is None:
            logger.warning(f"Wallet {address[:8]}... is not a known candidate")
            return False

        await self.ledger.add_account(address, category=AccountCategory.DISCOVERED)
        if self.listener:
            await self.listener.add_wallet(address)

        logger.info(f"Discovered wallet {address[:8]}... is now followed")
        if self.notifications:
            self.notifications.publish(NotificationType.WALLET_ADDED, address=address)
        return True

    def ignore_candidate(self, address: str) -> bool:
        """Mark a candidate as declined. It stays in the window so it is not announced again."""
        candidate = self._candidates.get(address)
        if candidate is None:
            return False
        candidate.ignored = True
        return True

    def clear_old_discoveries(self, max_age_hours: float = 24, now: Optional[datetime] = None) -> int:
        """Evict candidates discovered more than `max_age_hours` ago."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=max_age_hours)
        expired = [a for a, c in self._candidates.items() if c.discovered_at < cutoff]
        for address in expired:
            del self._candidates[address]

        if expired:
            logger.info(f"Cleared {len(expired)} old discoveries")
        return len(expired)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_candidate(self, address: str) -> Optional[DiscoveredCandidate]:
        candidate = self._candidates.get(address)
        return candidate.model_copy() if candidate else None

    def get_candidates(self) -> List[DiscoveredCandidate]:
        return [c.model_copy() for c in self._candidates.values()]

    def get_unnotified_count(self) -> int:
        return sum(1 for c in self._candidates.values() if not c.notified)

    def get_stats(self) -> DiscoveryStats:
        candidates = list(self._candidates.values())
        if not candidates:
            return DiscoveryStats()

        added = sum(1 for c in candidates if self.ledger.is_followed(c.address))
        total_amount = sum((c.transfer_amount for c in candidates), Decimal("0"))
        return DiscoveryStats(
            total=len(candidates),
            added=added,
            pending=len(candidates) - added,
            avg_transfer_amount=total_amount / len(candidates),
        )
