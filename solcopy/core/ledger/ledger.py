"""
Ledger

Sole owner of tracked accounts and trades. Every mutation is applied
synchronously (no await between read and write) and then persisted, so
mutations are atomic relative to the event loop. Reads return copies.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from .models import (
    TRADE_TRANSITIONS,
    AccountCategory,
    ExitReason,
    LedgerSnapshot,
    LedgerStats,
    TrackedAccount,
    Trade,
    TradeDirection,
    TradeState,
)
from .store import StateStore
from ..errors import InvalidTransitionError, TradeNotFoundError
from ...config import TradingMode

logger = logging.getLogger(__name__)


class Ledger:
    """
    Tracked accounts and copied trades.

    Responsibilities:
    - Idempotent add / soft remove of accounts
    - Trade creation and forward-only state transitions
    - Aggregate queries (active trades, stats)
    - Persisting snapshots through a StateStore
    """

    def __init__(
        self,
        master_wallet: str,
        store: Optional[StateStore] = None,
        persist_on_mutation: bool = True,
    ):
        self.master_wallet = master_wallet
        self._store = store
        self._persist_on_mutation = persist_on_mutation

        self._accounts: Dict[str, TrackedAccount] = {}
        self._trades: Dict[str, Trade] = {}
        self._dirty = False
        self._last_id_ns = 0

        self._ensure_master()

    # =========================================================================
    # Persistence
    # =========================================================================

    async def load(self) -> None:
        """Replace in-memory state with the stored snapshot, if any."""
        if not self._store:
            return

        try:
            snapshot = await self._store.load()
        except Exception as e:
            logger.error(f"Failed to load ledger state: {e}", exc_info=True)
            return

        if snapshot is None:
            return

        self._accounts = {a.address: a for a in snapshot.accounts}
        self._trades = {t.id: t for t in snapshot.trades}
        self._ensure_master()
        logger.info(f"Ledger loaded: {len(self._accounts)} accounts, {len(self._trades)} trades")

    async def flush(self) -> bool:
        """Save if anything changed since the last save. Failures are logged, not raised."""
        if not self._store or not self._dirty:
            return False

        snapshot = self.snapshot()
        self._dirty = False
        try:
            await self._store.save(snapshot)
            return True
        except asyncio.CancelledError:
            self._dirty = True
            raise
        except Exception as e:
            self._dirty = True
            logger.error(f"Failed to persist ledger state: {e}", exc_info=True)
            return False

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            accounts=[a.model_copy() for a in self._accounts.values()],
            trades=[t.model_copy() for t in self._trades.values()],
        )

    async def _mutated(self) -> None:
        self._dirty = True
        if self._persist_on_mutation:
            await self.flush()

    # =========================================================================
    # Accounts
    # =========================================================================

    def _ensure_master(self) -> None:
        if not self.master_wallet:
            return
        existing = self._accounts.get(self.master_wallet)
        if existing is None:
            self._accounts[self.master_wallet] = TrackedAccount(
                address=self.master_wallet,
                category=AccountCategory.MASTER,
            )
        elif not existing.active or existing.category != AccountCategory.MASTER:
            existing.active = True
            existing.category = AccountCategory.MASTER

    async def add_account(
        self,
        address: str,
        category: AccountCategory = AccountCategory.FOLLOWED,
    ) -> TrackedAccount:
        """Add an account, or reactivate it if it was removed. Never duplicates."""
        account = self._accounts.get(address)
        if account is None:
            account = TrackedAccount(address=address, category=category)
            self._accounts[address] = account
            logger.info(f"Account added: {address[:8]}... ({category.value})")
        elif not account.active:
            account.active = True
            logger.info(f"Account reactivated: {address[:8]}...")
        else:
            return account.model_copy()

        await self._mutated()
        return account.model_copy()

    async def remove_account(self, address: str) -> bool:
        """Deactivate an account. The master account cannot be removed."""
        account = self._accounts.get(address)
        if account is None or not account.active:
            return False
        if account.category == AccountCategory.MASTER:
            logger.warning("Refusing to remove the master account")
            return False

        account.active = False
        logger.info(f"Account deactivated: {address[:8]}...")
        await self._mutated()
        return True

    def is_followed(self, address: str) -> bool:
        account = self._accounts.get(address)
        return account is not None and account.active

    def active_accounts(self) -> List[str]:
        return [a.address for a in self._accounts.values() if a.active]

    def get_account(self, address: str) -> Optional[TrackedAccount]:
        account = self._accounts.get(address)
        return account.model_copy() if account else None

    def get_accounts(self) -> List[TrackedAccount]:
        return [a.model_copy() for a in self._accounts.values()]

    # =========================================================================
    # Trades
    # =========================================================================

    def _next_trade_id(self) -> str:
        # Time-ordered; bumped when two trades land in the same nanosecond tick
        now_ns = time.time_ns()
        if now_ns <= self._last_id_ns:
            now_ns = self._last_id_ns + 1
        self._last_id_ns = now_ns
        return f"T{now_ns}"

    async def create_trade(
        self,
        source_account: str,
        asset_id: str,
        direction: TradeDirection,
        size_native: Decimal,
        tp_percent: Decimal,
        sl_percent: Decimal,
        mode: TradingMode = TradingMode.TEST,
        asset_symbol: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> Trade:
        trade = Trade(
            id=self._next_trade_id(),
            source_account=source_account,
            asset_id=asset_id,
            asset_symbol=asset_symbol,
            direction=direction,
            size_native=size_native,
            tp_percent=tp_percent,
            sl_percent=sl_percent,
            mode=mode,
            signature=signature,
        )
        self._trades[trade.id] = trade
        logger.info(
            f"Trade {trade.id} created: {direction.value} {asset_id[:8]}... "
            f"size={size_native} tp={tp_percent}% sl={sl_percent}%"
        )
        await self._mutated()
        return trade.model_copy()

    def _require_trade(self, trade_id: str) -> Trade:
        trade = self._trades.get(trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        return trade

    @staticmethod
    def _check_transition(trade: Trade, to_state: TradeState) -> None:
        if to_state not in TRADE_TRANSITIONS[trade.state]:
            raise InvalidTransitionError(trade.id, trade.state.value, to_state.value)

    async def activate_trade(
        self,
        trade_id: str,
        entry_price: Decimal,
        asset_amount: Optional[Decimal] = None,
        tx_signature: Optional[str] = None,
    ) -> Trade:
        """PENDING -> ACTIVE, recording the fill price exactly once."""
        trade = self._require_trade(trade_id)
        self._check_transition(trade, TradeState.ACTIVE)
        if entry_price <= 0:
            raise ValueError(f"Trade {trade_id}: entry price must be positive")

        trade.state = TradeState.ACTIVE
        trade.entry_price = entry_price
        trade.asset_amount = asset_amount if asset_amount is not None else trade.size_native / entry_price
        trade.tx_signature = tx_signature
        trade.last_error = None
        trade.opened_at = datetime.now(timezone.utc)

        logger.info(f"Trade {trade_id} ACTIVE at {entry_price}")
        await self._mutated()
        return trade.model_copy()

    async def close_trade(
        self,
        trade_id: str,
        exit_price: Decimal,
        reason: ExitReason,
        pnl_native: Decimal,
        pnl_percent: Decimal,
    ) -> Trade:
        """ACTIVE -> CLOSED, recording exit price and pnl exactly once."""
        trade = self._require_trade(trade_id)
        self._check_transition(trade, TradeState.CLOSED)

        trade.state = TradeState.CLOSED
        trade.exit_price = exit_price
        trade.exit_reason = reason
        trade.pnl_native = pnl_native
        trade.pnl_percent = pnl_percent
        trade.closed_at = datetime.now(timezone.utc)

        logger.info(f"Trade {trade_id} CLOSED ({reason.value}) at {exit_price}, pnl={pnl_native}")
        await self._mutated()
        return trade.model_copy()

    async def update_trade_targets(
        self,
        trade_id: str,
        tp_percent: Optional[Decimal] = None,
        sl_percent: Optional[Decimal] = None,
    ) -> Trade:
        """Override TP/SL for a trade that has not closed yet."""
        trade = self._require_trade(trade_id)
        if trade.state == TradeState.CLOSED:
            raise InvalidTransitionError(
                trade_id, trade.state.value, trade.state.value, f"Trade {trade_id} is already closed"
            )
        if tp_percent is not None:
            if tp_percent <= 0:
                raise ValueError("tp_percent must be positive")
            trade.tp_percent = tp_percent
        if sl_percent is not None:
            if not 0 < sl_percent <= 100:
                raise ValueError("sl_percent must be within (0, 100]")
            trade.sl_percent = sl_percent

        await self._mutated()
        return trade.model_copy()

    async def record_trade_error(self, trade_id: str, error: str) -> Optional[Trade]:
        trade = self._trades.get(trade_id)
        if trade is None:
            return None
        trade.last_error = error
        await self._mutated()
        return trade.model_copy()

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        trade = self._trades.get(trade_id)
        return trade.model_copy() if trade else None

    def get_trades(self, state: Optional[TradeState] = None) -> List[Trade]:
        return [
            t.model_copy() for t in self._trades.values()
            if state is None or t.state == state
        ]

    def get_active_trades(self) -> List[Trade]:
        return self.get_trades(TradeState.ACTIVE)

    def get_last_trade(self) -> Optional[Trade]:
        if not self._trades:
            return None
        last = max(self._trades.values(), key=lambda t: (t.created_at, t.id))
        return last.model_copy()

    def get_stats(self) -> LedgerStats:
        trades = list(self._trades.values())
        closed = [t for t in trades if t.state == TradeState.CLOSED]
        total_pnl = sum((t.pnl_native or Decimal("0") for t in closed), Decimal("0"))
        winners = sum(1 for t in closed if (t.pnl_native or 0) > 0)

        return LedgerStats(
            active_positions=sum(1 for t in trades if t.state == TradeState.ACTIVE),
            pending_trades=sum(1 for t in trades if t.state == TradeState.PENDING),
            closed_trades=len(closed),
            total_trades=len(trades),
            total_pnl=total_pnl,
            win_rate=(winners / len(closed) * 100) if closed else 0.0,
            tracked_accounts=len(self.active_accounts()),
        )
