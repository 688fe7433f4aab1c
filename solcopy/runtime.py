"""
Bot Runtime

Explicit wiring of every component plus startup, shutdown and the periodic
housekeeping task. Collaborators can be injected for tests.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import websockets

from .config import ConfigStore, Settings
from .core.commands import CommandDispatcher
from .core.copy_trading import (
    CopyEngine,
    ExitMonitor,
    JupiterSwapExecutor,
    ModeRoutingExecutor,
    PaperSwapExecutor,
    SwapExecutor,
)
from .core.copy_trading.executor import TransactionSigner
from .core.discovery import DiscoveryEngine
from .core.ledger import JsonFileStateStore, Ledger, StateStore
from .core.listener import ClassifiedEvent, EventType, LogClassifier, StreamListener
from .core.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationQueue,
    NotificationSink,
    NotificationType,
    TelegramNotificationSink,
)
from .providers.base import ChainDataProvider, PriceProvider
from .providers.jupiter import JupiterPriceOracle, JupiterSwapProvider
from .providers.solana_rpc import SolanaRpcClient
from .providers.telegram import TelegramClient

logger = logging.getLogger(__name__)


class BotRuntime:
    """
    Owns the component graph.

    Startup order: ledger load, notification dispatcher, resumed exit
    monitors, housekeeping, then (optionally) listener and discovery.
    Shutdown runs in reverse and flushes the ledger last.
    """

    def __init__(
        self,
        launch: Settings,
        store: Optional[StateStore] = None,
        oracle: Optional[PriceProvider] = None,
        rpc: Optional[ChainDataProvider] = None,
        executor: Optional[SwapExecutor] = None,
        sink: Optional[NotificationSink] = None,
        telegram: Optional[TelegramClient] = None,
        connector: Callable[..., Any] = websockets.connect,
        signer: Optional[TransactionSigner] = None,
    ):
        self.settings = launch
        self.config_store = ConfigStore(launch)
        self.notifications = NotificationQueue(maxsize=launch.notification_queue_size)

        self.ledger = Ledger(
            launch.master_wallet,
            store=store if store is not None else JsonFileStateStore(launch.state_file),
            persist_on_mutation=launch.persist_on_mutation,
        )

        # Providers
        self.rpc = rpc or SolanaRpcClient(
            launch.solana_rpc_url,
            commitment=launch.solana_commitment,
            timeout_s=launch.rpc_timeout_seconds,
        )
        self.oracle = oracle or JupiterPriceOracle(price_url=launch.jupiter_price_url)
        self.telegram = telegram
        if self.telegram is None and launch.telegram_bot_token:
            self.telegram = TelegramClient(launch.telegram_bot_token)

        # Trading
        self.executor = executor or self._build_executor(signer)
        self.monitor = ExitMonitor(
            self.ledger,
            self.oracle,
            self.notifications,
            interval=launch.exit_check_interval_seconds,
        )
        self.engine = CopyEngine(
            self.ledger,
            self.config_store,
            self.executor,
            self.oracle,
            self.monitor,
            self.notifications,
        )

        # Ingestion
        self.listener = StreamListener(
            launch.solana_wss_url,
            self.ledger,
            self.config_store,
            LogClassifier(launch.master_wallet, self.config_store),
            on_event=self.route_event,
            on_fatal=self._on_listener_fatal,
            notifications=self.notifications,
            connector=connector,
            commitment=launch.solana_commitment,
            reconnect_base=launch.reconnect_base_seconds,
            reconnect_cap=launch.reconnect_cap_seconds,
            max_attempts=launch.max_reconnect_attempts,
        )
        self.discovery = DiscoveryEngine(
            self.ledger,
            self.config_store,
            listener=self.listener,
            rpc=self.rpc,
            notifications=self.notifications,
            suspicious_balance=launch.suspicious_balance_sol,
            signature_limit=launch.discovery_signature_limit,
        )

        # Chat
        if sink is None:
            if self.telegram and launch.telegram_chat_id:
                sink = TelegramNotificationSink(self.telegram, launch.telegram_chat_id)
            else:
                sink = LoggingNotificationSink()
        self.dispatcher = NotificationDispatcher(self.notifications, sink)
        self.commands = CommandDispatcher(
            self.config_store,
            self.ledger,
            self.listener,
            self.discovery,
            self.engine,
            controller=self,
        )

        self._trading = False
        self._housekeeping_task: Optional[asyncio.Task] = None
        self.started_at: Optional[datetime] = None

    def _build_executor(self, signer: Optional[TransactionSigner]) -> SwapExecutor:
        paper = PaperSwapExecutor(self.oracle)
        real = None
        if self.settings.trading_wallet and isinstance(self.rpc, SolanaRpcClient):
            real = JupiterSwapExecutor(
                JupiterSwapProvider(quote_url=self.settings.jupiter_quote_url),
                self.rpc,
                self.oracle,
                wallet=self.settings.trading_wallet,
                signer=signer,
                slippage_bps=self.settings.slippage_bps,
            )
        return ModeRoutingExecutor(paper, real)

    # =========================================================================
    # Event routing
    # =========================================================================

    async def route_event(self, event: ClassifiedEvent) -> None:
        if event.type == EventType.TRANSFER:
            await self.discovery.process_transfer(
                event.source_account,
                event.destination,
                event.amount_native,
                event.signature,
            )
        else:
            await self.engine.handle_event(event)

    async def _on_listener_fatal(self, reason: str) -> None:
        self._trading = False
        self.discovery.stop()
        logger.error(f"Trading halted: {reason}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Load state and start background work. Missing launch parameters raise ConfigurationError."""
        self.settings.validate_required()
        await self.ledger.load()
        self.dispatcher.start()
        self.engine.resume_monitoring()
        self._housekeeping_task = asyncio.create_task(self._housekeeping_loop(), name="housekeeping")
        self.started_at = datetime.now(timezone.utc)

        logger.info(
            f"Runtime started (mode={self.settings.mode.value}, "
            f"master={self.settings.master_wallet[:8]}...)"
        )
        if self.settings.autostart:
            await self.start_trading()

    async def start_trading(self) -> None:
        if self._trading:
            return
        await self.listener.start()
        if self.config_store.snapshot().discovery_enabled:
            self.discovery.start()
        self._trading = True
        self.notifications.publish(NotificationType.BOT_STATUS, "🟢 Bot started", running=True)

    async def stop_trading(self) -> None:
        await self.listener.stop()
        self.discovery.stop()
        was_trading, self._trading = self._trading, False
        if was_trading:
            self.notifications.publish(NotificationType.BOT_STATUS, "🔴 Bot stopped", running=False)

    def is_trading(self) -> bool:
        return self._trading

    async def shutdown(self) -> None:
        logger.info("Runtime shutting down")
        await self.listener.stop()
        self.discovery.stop()
        self._trading = False

        if self._housekeeping_task:
            self._housekeeping_task.cancel()
            try:
                await self._housekeeping_task
            except asyncio.CancelledError:
                pass
            self._housekeeping_task = None

        await self.engine.stop_all_monitoring()
        await self.ledger.flush()
        await self.dispatcher.stop()

        for client in (self.rpc, self.oracle, self.telegram):
            close = getattr(client, "close", None)
            if close is not None:
                await close()

    # =========================================================================
    # Housekeeping
    # =========================================================================

    async def housekeeping_tick(self) -> None:
        stats = self.ledger.get_stats()
        discovery = self.discovery.get_stats()
        logger.info(
            f"Stats: {stats.active_positions} active, {stats.total_trades} trades, "
            f"pnl={stats.total_pnl} SOL, win rate {stats.win_rate:.1f}%, "
            f"{discovery.total} candidates ({self.discovery.get_unnotified_count()} unnotified)"
        )
        self.discovery.clear_old_discoveries(self.settings.discovery_retention_hours)
        await self.ledger.flush()

    async def _housekeeping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.housekeeping_interval_seconds)
            try:
                await self.housekeeping_tick()
            except Exception as e:
                logger.error(f"Housekeeping failed: {e}", exc_info=True)

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        stats = self.ledger.get_stats()
        cfg = self.config_store.snapshot()
        return {
            "running": self._trading,
            "mode": self.settings.mode.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "listener": {
                "state": self.listener.state.value,
                "active": self.listener.is_active(),
                "watched_wallets": len(self.listener.watched_wallets()),
            },
            "discovery": {
                "running": self.discovery.is_running(),
                **self.discovery.get_stats().model_dump(mode="json"),
            },
            "ledger": stats.model_dump(mode="json"),
            "monitored_trades": len(self.monitor.watched_ids()),
            "config": cfg.model_dump(mode="json"),
            "pending_notifications": self.notifications.qsize(),
        }
