"""
Copy Engine

Turns BUY/SELL events from watched accounts into ledger trades, fills them
through the swap executor and hands filled trades to the exit monitor.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Set

from .executor import SwapExecutor
from .monitor import ExitMonitor, close_with_price
from ..errors import InvalidTransitionError, TradeNotFoundError
from ..ledger import ExitReason, Ledger, Trade, TradeDirection, TradeState
from ..listener import ClassifiedEvent
from ..notifications import NotificationQueue, NotificationType
from ...config import ConfigStore
from ...logging_config import event_context

if TYPE_CHECKING:
    from ...providers.base import PriceProvider

logger = logging.getLogger(__name__)

# Source signatures remembered for de-duplication
SEEN_SIGNATURES_MAX = 2048
SEEN_SIGNATURES_TTL = 3600.0


class CopyEngine:
    """
    Trade lifecycle orchestration.

    - handle_event: PENDING trade from a classified swap, auto-executed when enabled
    - execute_trade: PENDING -> ACTIVE through the executor, then monitored
    - close_trade: manual ACTIVE -> CLOSED at the current price
    """

    def __init__(
        self,
        ledger: Ledger,
        config_store: ConfigStore,
        executor: SwapExecutor,
        oracle: "PriceProvider",
        monitor: ExitMonitor,
        notifications: Optional[NotificationQueue] = None,
    ):
        self.ledger = ledger
        self.config_store = config_store
        self.executor = executor
        self.oracle = oracle
        self.monitor = monitor
        self.notifications = notifications
        self._executing: Set[str] = set()
        self._seen: "OrderedDict[str, float]" = OrderedDict()

    def _publish(self, type: NotificationType, message: Optional[str] = None, **data) -> None:
        if self.notifications:
            self.notifications.publish(type, message, **data)

    # =========================================================================
    # Detection
    # =========================================================================

    async def handle_event(self, event: ClassifiedEvent) -> Optional[Trade]:
        """Open a trade for a BUY/SELL event. Other events are ignored."""
        if not event.is_trade or not event.asset_id:
            return None
        if self._already_handled(event.signature):
            logger.info(f"Signature {event.signature[:16]}... already handled, skipping")
            return None

        cfg = self.config_store.snapshot()
        trade = await self.ledger.create_trade(
            source_account=event.source_account,
            asset_id=event.asset_id,
            asset_symbol=event.asset_symbol,
            direction=TradeDirection(event.type.value),
            size_native=cfg.trade_size,
            tp_percent=cfg.tp_percent,
            sl_percent=cfg.sl_percent,
            mode=self.config_store.mode,
            signature=event.signature,
        )
        logger.info(
            f"{trade.direction.value} detected from {event.source_account[:8]}...: "
            f"{event.asset_id[:8]}... -> trade {trade.id}"
        )

        self._publish(
            NotificationType.TRADE_DETECTED,
            trade_id=trade.id,
            source_account=trade.source_account,
            asset_id=trade.asset_id,
            direction=trade.direction.value,
            size_native=str(trade.size_native),
            tp_percent=str(trade.tp_percent),
            sl_percent=str(trade.sl_percent),
            mode=trade.mode.value,
            auto_copy=cfg.auto_copy,
        )

        if cfg.auto_copy:
            await self.execute_trade(trade.id)
        return self.ledger.get_trade(trade.id)

    def _already_handled(self, signature: str) -> bool:
        """Remember a source signature; True when it was seen within the TTL."""
        now = time.monotonic()
        while self._seen:
            seen_at = next(iter(self._seen.values()))
            if now - seen_at < SEEN_SIGNATURES_TTL and len(self._seen) < SEEN_SIGNATURES_MAX:
                break
            self._seen.popitem(last=False)

        if signature in self._seen:
            return True
        self._seen[signature] = now
        return False

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute_trade(self, trade_id: str) -> bool:
        """Fill a PENDING trade. Failures are reported and leave the trade PENDING."""
        with event_context(trade_id=trade_id):
            return await self._execute(trade_id)

    async def _execute(self, trade_id: str) -> bool:
        trade = self.ledger.get_trade(trade_id)
        if trade is None:
            logger.warning(f"Trade {trade_id} not found")
            return False
        if trade.state != TradeState.PENDING:
            logger.info(f"Trade {trade_id} is {trade.state.value}, not executing")
            return False
        if trade_id in self._executing:
            logger.info(f"Trade {trade_id} is already executing")
            return False

        self._executing.add(trade_id)
        try:
            logger.info(f"Executing trade {trade_id} in {trade.mode.value} mode")
            try:
                result = await self.executor.execute_swap(
                    trade.asset_id, trade.direction, trade.size_native, trade.mode
                )
            except Exception as e:
                logger.error(f"Executor raised for trade {trade_id}: {e}", exc_info=True)
                await self._execution_failed(trade_id, str(e) or type(e).__name__)
                return False

            if not result.success or result.fill_price is None:
                await self._execution_failed(trade_id, result.error_message or "no fill price")
                return False

            try:
                active = await self.ledger.activate_trade(
                    trade_id,
                    entry_price=result.fill_price,
                    asset_amount=result.asset_amount,
                    tx_signature=result.tx_signature,
                )
            except (InvalidTransitionError, TradeNotFoundError, ValueError) as e:
                logger.error(f"Could not activate trade {trade_id}: {e}")
                await self._execution_failed(trade_id, str(e))
                return False
        finally:
            self._executing.discard(trade_id)

        self.monitor.watch(trade_id)
        self._publish(
            NotificationType.TRADE_EXECUTED,
            trade_id=trade_id,
            asset_id=active.asset_id,
            entry_price=str(active.entry_price),
            asset_amount=str(active.asset_amount),
            tx_signature=active.tx_signature,
        )
        return True

    async def _execution_failed(self, trade_id: str, error: str) -> None:
        await self.ledger.record_trade_error(trade_id, error)
        self._publish(NotificationType.EXECUTION_FAILED, trade_id=trade_id, error=error)

    # =========================================================================
    # Manual control
    # =========================================================================

    async def close_trade(self, trade_id: str) -> bool:
        """Close an ACTIVE trade at the current oracle price."""
        trade = self.ledger.get_trade(trade_id)
        if trade is None or trade.state != TradeState.ACTIVE:
            return False

        try:
            price = await self.oracle.get_price(trade.asset_id)
        except Exception as e:
            logger.warning(f"Price lookup failed for manual close of {trade_id}: {e}")
            return False
        if price is None:
            logger.info(f"No price for {trade.asset_id[:8]}..., cannot close trade {trade_id}")
            return False

        self.monitor.cancel(trade_id)
        trade = self.ledger.get_trade(trade_id)
        if trade is None or trade.state != TradeState.ACTIVE:
            return False

        try:
            await close_with_price(self.ledger, trade, price, ExitReason.MANUAL, self.notifications)
        except InvalidTransitionError:
            return False
        return True

    async def update_trade_targets(
        self,
        trade_id: str,
        tp_percent: Optional[Decimal] = None,
        sl_percent: Optional[Decimal] = None,
    ) -> bool:
        try:
            await self.ledger.update_trade_targets(trade_id, tp_percent=tp_percent, sl_percent=sl_percent)
        except (TradeNotFoundError, InvalidTransitionError, ValueError) as e:
            logger.info(f"Target update rejected for trade {trade_id}: {e}")
            return False
        return True

    # =========================================================================
    # Monitoring
    # =========================================================================

    def resume_monitoring(self) -> int:
        """Restart exit monitors for ACTIVE trades, e.g. after loading state."""
        resumed = sum(1 for trade in self.ledger.get_active_trades() if self.monitor.watch(trade.id))
        if resumed:
            logger.info(f"Resumed monitoring of {resumed} active trades")
        return resumed

    async def stop_all_monitoring(self) -> None:
        await self.monitor.stop()
        logger.info("All exit monitors stopped")
