"""
Exit Monitor

One polling task per ACTIVE trade. Each tick fetches a price and closes the
trade when its take-profit or stop-loss threshold is crossed.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..errors import InvalidTransitionError, TradeNotFoundError
from ..ledger import ExitReason, Ledger, Trade, TradeDirection, TradeState
from ..notifications import NotificationQueue, NotificationType

if TYPE_CHECKING:
    from ...providers.base import PriceProvider

logger = logging.getLogger(__name__)


def evaluate(trade: Trade, price: Decimal) -> Optional[ExitReason]:
    """Exit decision for a price. Take-profit wins when both thresholds match."""
    take_profit = trade.take_profit_price
    stop_loss = trade.stop_loss_price
    if take_profit is None or stop_loss is None:
        return None

    if price >= take_profit:
        return ExitReason.TAKE_PROFIT
    if price <= stop_loss:
        return ExitReason.STOP_LOSS
    return None


def compute_pnl(trade: Trade, exit_price: Decimal) -> Tuple[Decimal, Decimal]:
    """(pnl in SOL, pnl as percent of size). Signed by trade direction."""
    entry = trade.entry_price or Decimal("0")
    quantity = trade.asset_amount
    if quantity is None:
        quantity = trade.size_native / entry if entry else Decimal("0")

    if trade.direction == TradeDirection.BUY:
        pnl = (exit_price - entry) * quantity
    else:
        pnl = (entry - exit_price) * quantity

    pnl_percent = pnl / trade.size_native * 100 if trade.size_native else Decimal("0")
    return pnl, pnl_percent


async def close_with_price(
    ledger: Ledger,
    trade: Trade,
    exit_price: Decimal,
    reason: ExitReason,
    notifications: Optional[NotificationQueue] = None,
) -> Trade:
    """Close an ACTIVE trade at `exit_price` and announce it."""
    pnl, pnl_percent = compute_pnl(trade, exit_price)
    closed = await ledger.close_trade(trade.id, exit_price, reason, pnl, pnl_percent)

    if notifications:
        notifications.publish(
            NotificationType.TRADE_CLOSED,
            trade_id=closed.id,
            asset_id=closed.asset_id,
            reason=reason.value,
            entry_price=str(closed.entry_price),
            exit_price=str(exit_price),
            pnl_native=str(pnl),
            pnl_percent=str(pnl_percent),
        )
    return closed


class ExitMonitor:
    """
    Managed set of cancellable per-trade polling tasks.

    Usage:
        monitor = ExitMonitor(ledger, oracle, notifications, interval=5)
        monitor.watch(trade.id)
        monitor.cancel(trade.id)
        await monitor.stop()
    """

    def __init__(
        self,
        ledger: Ledger,
        oracle: "PriceProvider",
        notifications: Optional[NotificationQueue] = None,
        interval: float = 5.0,
    ):
        self.ledger = ledger
        self.oracle = oracle
        self.notifications = notifications
        self.interval = interval
        self._tasks: Dict[str, asyncio.Task] = {}

    def watch(self, trade_id: str) -> bool:
        """Start polling a trade. Returns False if it is already watched."""
        if self.is_watching(trade_id):
            return False
        self._tasks[trade_id] = asyncio.create_task(
            self._run(trade_id), name=f"exit-monitor-{trade_id}"
        )
        logger.info(f"Exit monitor started for trade {trade_id}")
        return True

    def cancel(self, trade_id: str) -> bool:
        task = self._tasks.pop(trade_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Exit monitor cancelled for trade {trade_id}")
        return True

    async def stop(self) -> None:
        """Cancel every task. Trades stay ACTIVE and are resumed on next start."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def is_watching(self, trade_id: str) -> bool:
        task = self._tasks.get(trade_id)
        return task is not None and not task.done()

    def watched_ids(self) -> List[str]:
        return [trade_id for trade_id in self._tasks if self.is_watching(trade_id)]

    def _is_live(self, trade_id: str) -> bool:
        return self._tasks.get(trade_id) is asyncio.current_task()

    async def _run(self, trade_id: str) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                if await self._tick(trade_id):
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Exit monitor for trade {trade_id} crashed: {e}", exc_info=True)
        finally:
            if self._tasks.get(trade_id) is asyncio.current_task():
                del self._tasks[trade_id]

    async def _tick(self, trade_id: str) -> bool:
        """One poll. Returns True when monitoring of this trade is finished."""
        trade = self.ledger.get_trade(trade_id)
        if trade is None or trade.state != TradeState.ACTIVE:
            return True

        try:
            price = await self.oracle.get_price(trade.asset_id)
        except Exception as e:
            logger.warning(f"Price lookup failed for trade {trade_id}: {e}")
            return False

        if not self._is_live(trade_id):
            return True
        if price is None:
            return False

        # Re-read: a manual close may have happened during the lookup
        trade = self.ledger.get_trade(trade_id)
        if trade is None or trade.state != TradeState.ACTIVE:
            return True

        reason = evaluate(trade, price)
        if reason is None:
            return False

        try:
            await close_with_price(self.ledger, trade, price, reason, self.notifications)
        except (InvalidTransitionError, TradeNotFoundError):
            return True

        logger.info(f"Trade {trade_id} hit {reason.value} at {price}")
        return True
