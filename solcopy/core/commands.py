"""
Command Dispatcher

Parses chat commands (`/tp 30`) and inline button callbacks
(`execute_T123`) and applies them to the running components.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from html import escape
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from .copy_trading import CopyEngine
from .discovery import DiscoveryEngine
from .ledger import AccountCategory, Ledger
from .listener import StreamListener
from .notifications.formatter import (
    format_candidates,
    format_config,
    format_stats,
    format_trade,
    format_wallets,
    main_menu_keyboard,
    settings_keyboard,
)
from ..config import ConfigStore

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^[A-HJ-NP-Za-km-z1-9]{32,44}$")

HELP_TEXT = """🤖 <b>Commands</b>

/start, /stop - start or stop copy trading
/status, /stats, /config
/size &lt;sol&gt;, /tp &lt;pct&gt;, /sl &lt;pct&gt;
/range &lt;min&gt; &lt;max&gt;
/discovery on|off, /autocopy on|off
/follow &lt;addr&gt;, /unfollow &lt;addr&gt;
/confirm &lt;addr&gt;, /ignore &lt;addr&gt;, /candidates
/execute &lt;id&gt;, /close &lt;id&gt;, /targets &lt;id&gt; &lt;tp&gt; &lt;sl&gt;
/positions, /wallets, /last"""


class TradingController(Protocol):
    """Start/stop of the listener and discovery, implemented by the runtime."""

    async def start_trading(self) -> None:
        ...

    async def stop_trading(self) -> None:
        ...

    def is_trading(self) -> bool:
        ...


@dataclass
class CommandReply:
    text: str
    reply_markup: Optional[Dict[str, Any]] = None


class CommandError(ValueError):
    """Bad arguments; the message is sent back to the chat."""


CommandHandler = Callable[[List[str]], Awaitable[CommandReply]]


def _decimal(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except (InvalidOperation, ValueError):
        raise CommandError(f"❌ Invalid {name}: {escape(value)}")


def _switch(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("on", "true", "1", "yes"):
        return True
    if lowered in ("off", "false", "0", "no"):
        return False
    raise CommandError("❌ Use on or off")


def _address(value: str) -> str:
    if not _ADDRESS_RE.match(value):
        raise CommandError(f"❌ Invalid address: {escape(value)}")
    return value


class CommandDispatcher:
    """
    Inbound command surface.

    Every handler returns a reply and never raises; invalid input produces
    an error reply instead.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        ledger: Ledger,
        listener: StreamListener,
        discovery: DiscoveryEngine,
        engine: CopyEngine,
        controller: TradingController,
    ):
        self.config_store = config_store
        self.ledger = ledger
        self.listener = listener
        self.discovery = discovery
        self.engine = engine
        self.controller = controller

        self._commands: Dict[str, CommandHandler] = {
            "start": self._cmd_start,
            "stop": self._cmd_stop,
            "status": self._cmd_status,
            "help": self._cmd_help,
            "menu": self._cmd_menu,
            "config": self._cmd_config,
            "size": self._cmd_size,
            "tp": self._cmd_tp,
            "sl": self._cmd_sl,
            "range": self._cmd_range,
            "discovery": self._cmd_discovery,
            "autocopy": self._cmd_autocopy,
            "confirm": self._cmd_confirm,
            "ignore": self._cmd_ignore,
            "follow": self._cmd_follow,
            "unfollow": self._cmd_unfollow,
            "execute": self._cmd_execute,
            "close": self._cmd_close,
            "targets": self._cmd_targets,
            "stats": self._cmd_stats,
            "positions": self._cmd_positions,
            "wallets": self._cmd_wallets,
            "last": self._cmd_last,
            "candidates": self._cmd_candidates,
        }

    # =========================================================================
    # Entry points
    # =========================================================================

    async def dispatch(self, text: str) -> CommandReply:
        """Handle a `/command arg ...` message."""
        parts = (text or "").strip().split()
        if not parts or not parts[0].startswith("/"):
            return CommandReply("Send /help for the list of commands.")

        # "/tp@my_bot 30" -> "tp"
        name = parts[0][1:].split("@", 1)[0].lower()
        handler = self._commands.get(name)
        if handler is None:
            return CommandReply(f"❓ Unknown command /{escape(name)}. Send /help.")

        try:
            return await handler(parts[1:])
        except CommandError as e:
            return CommandReply(str(e))
        except Exception as e:
            logger.error(f"Command /{name} failed: {e}", exc_info=True)
            return CommandReply(f"❌ /{escape(name)} failed: {escape(str(e))}")

    async def dispatch_callback(self, data: str) -> CommandReply:
        """Handle inline keyboard callback data."""
        data = (data or "").strip()
        try:
            return await self._callback(data)
        except CommandError as e:
            return CommandReply(str(e))
        except Exception as e:
            logger.error(f"Callback {data} failed: {e}", exc_info=True)
            return CommandReply(f"❌ Action failed: {escape(str(e))}")

    async def _callback(self, data: str) -> CommandReply:
        simple = {
            "start_bot": self._cmd_start,
            "stop_bot": self._cmd_stop,
            "show_pnl": self._cmd_stats,
            "show_wallets": self._cmd_wallets,
            "last_trade": self._cmd_last,
            "active_positions": self._cmd_positions,
            "main_menu": self._cmd_menu,
        }
        if data in simple:
            return await simple[data]([])
        if data == "show_config":
            reply = await self._cmd_config([])
            return CommandReply(reply.text, settings_keyboard())
        if data == "toggle_discovery":
            enabled = self.config_store.snapshot().discovery_enabled
            return await self._cmd_discovery(["off" if enabled else "on"])
        if data in ("ignore", "ignore_wallet", "noop"):
            return CommandReply("👍 Ignored")

        prefixes = [
            ("confirm_wallet_", self._cmd_confirm),
            ("ignore_wallet_", self._cmd_ignore),
            ("execute_", self._cmd_execute),
            ("close_", self._cmd_close),
            ("details_", self._cmd_details),
            ("size_", self._cmd_size),
            ("tp_global_", self._cmd_tp),
            ("sl_global_", self._cmd_sl),
            ("disc_min_", self._set_min_transfer),
            ("disc_max_", self._set_max_transfer),
        ]
        for prefix, handler in prefixes:
            if data.startswith(prefix):
                return await handler([data[len(prefix):]])

        return CommandReply(f"❓ Unknown action: {escape(data)}")

    # =========================================================================
    # Control
    # =========================================================================

    async def _cmd_start(self, args: List[str]) -> CommandReply:
        if self.controller.is_trading():
            return CommandReply("ℹ️ Bot is already running", main_menu_keyboard(True))
        await self.controller.start_trading()
        return CommandReply(
            f"✅ Bot started\n\n{self._status_text()}",
            main_menu_keyboard(True),
        )

    async def _cmd_stop(self, args: List[str]) -> CommandReply:
        if not self.controller.is_trading():
            return CommandReply("ℹ️ Bot is not running", main_menu_keyboard(False))
        await self.controller.stop_trading()
        return CommandReply("🛑 Bot stopped. Open positions are still monitored.", main_menu_keyboard(False))

    async def _cmd_status(self, args: List[str]) -> CommandReply:
        return CommandReply(self._status_text(), main_menu_keyboard(self.controller.is_trading()))

    async def _cmd_menu(self, args: List[str]) -> CommandReply:
        return CommandReply("🤖 <b>Solana copy trading</b>", main_menu_keyboard(self.controller.is_trading()))

    async def _cmd_help(self, args: List[str]) -> CommandReply:
        return CommandReply(HELP_TEXT)

    def _status_text(self) -> str:
        stats = self.ledger.get_stats()
        running = self.controller.is_trading()
        return "\n".join([
            "🤖 <b>Status</b>",
            "",
            f"Bot: {'🟢 running' if running else '🔴 stopped'}",
            f"Listener: {self.listener.state.value}",
            f"Discovery: {'on' if self.discovery.is_running() else 'off'}",
            f"Mode: {self.config_store.mode.value}",
            f"Watched wallets: {len(self.listener.watched_wallets())}",
            f"Active positions: {stats.active_positions}",
            f"Pending trades: {stats.pending_trades}",
        ])

    # =========================================================================
    # Configuration
    # =========================================================================

    async def _cmd_config(self, args: List[str]) -> CommandReply:
        return CommandReply(format_config(self.config_store.snapshot(), self.config_store.mode))

    def _update(self, **changes: Any) -> CommandReply:
        try:
            cfg = self.config_store.update(**changes)
        except ValueError as e:
            raise CommandError(f"❌ Rejected: {escape(str(e).splitlines()[0])}")
        return CommandReply(f"✅ Updated\n\n{format_config(cfg, self.config_store.mode)}")

    async def _cmd_size(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /size &lt;sol&gt;")
        return self._update(trade_size=_decimal(args[0], "size"))

    async def _cmd_tp(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /tp &lt;percent&gt;")
        return self._update(tp_percent=_decimal(args[0], "take profit"))

    async def _cmd_sl(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /sl &lt;percent&gt;")
        return self._update(sl_percent=_decimal(args[0], "stop loss"))

    async def _cmd_range(self, args: List[str]) -> CommandReply:
        if len(args) != 2:
            raise CommandError("Usage: /range &lt;min&gt; &lt;max&gt;")
        return self._update(
            min_transfer=_decimal(args[0], "minimum"),
            max_transfer=_decimal(args[1], "maximum"),
        )

    async def _set_min_transfer(self, args: List[str]) -> CommandReply:
        return self._update(min_transfer=_decimal(args[0], "minimum"))

    async def _set_max_transfer(self, args: List[str]) -> CommandReply:
        return self._update(max_transfer=_decimal(args[0], "maximum"))

    async def _cmd_discovery(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /discovery on|off")
        enabled = _switch(args[0])
        reply = self._update(discovery_enabled=enabled)
        if enabled and self.controller.is_trading():
            self.discovery.start()
        elif not enabled:
            self.discovery.stop()
        return reply

    async def _cmd_autocopy(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /autocopy on|off")
        return self._update(auto_copy=_switch(args[0]))

    # =========================================================================
    # Wallets
    # =========================================================================

    async def _cmd_confirm(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /confirm &lt;address&gt;")
        address = _address(args[0])
        if await self.discovery.add_discovered_wallet(address):
            return CommandReply(f"✅ Following <code>{address}</code>")
        return CommandReply(f"❌ <code>{address}</code> is not a discovered wallet")

    async def _cmd_ignore(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /ignore &lt;address&gt;")
        address = _address(args[0])
        if self.discovery.ignore_candidate(address):
            return CommandReply(f"👍 Ignored <code>{address}</code>")
        return CommandReply(f"❌ <code>{address}</code> is not a discovered wallet")

    async def _cmd_follow(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /follow &lt;address&gt;")
        address = _address(args[0])
        await self.ledger.add_account(address, category=AccountCategory.FOLLOWED)
        await self.listener.add_wallet(address)
        return CommandReply(f"✅ Following <code>{address}</code>")

    async def _cmd_unfollow(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /unfollow &lt;address&gt;")
        address = _address(args[0])
        if not await self.ledger.remove_account(address):
            return CommandReply(f"❌ Cannot unfollow <code>{address}</code>")
        self.listener.remove_wallet(address)
        return CommandReply(
            f"➖ Unfollowed <code>{address}</code>\n"
            "The subscription ends at the next reconnect."
        )

    async def _cmd_wallets(self, args: List[str]) -> CommandReply:
        accounts = [a for a in self.ledger.get_accounts() if a.active]
        return CommandReply(format_wallets(accounts))

    async def _cmd_candidates(self, args: List[str]) -> CommandReply:
        return CommandReply(format_candidates(self.discovery.get_candidates()))

    # =========================================================================
    # Trades
    # =========================================================================

    async def _cmd_execute(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /execute &lt;trade id&gt;")
        trade_id = args[0]
        if await self.engine.execute_trade(trade_id):
            return CommandReply(f"✅ Trade {escape(trade_id)} executed")
        return CommandReply(f"❌ Trade {escape(trade_id)} was not executed")

    async def _cmd_close(self, args: List[str]) -> CommandReply:
        if len(args) != 1:
            raise CommandError("Usage: /close &lt;trade id&gt;")
        trade_id = args[0]
        if await self.engine.close_trade(trade_id):
            return CommandReply(f"🔒 Trade {escape(trade_id)} closed")
        return CommandReply(f"❌ Trade {escape(trade_id)} could not be closed")

    async def _cmd_targets(self, args: List[str]) -> CommandReply:
        if len(args) != 3:
            raise CommandError("Usage: /targets &lt;trade id&gt; &lt;tp&gt; &lt;sl&gt;")
        trade_id = args[0]
        tp = _decimal(args[1], "take profit")
        sl = _decimal(args[2], "stop loss")
        if await self.engine.update_trade_targets(trade_id, tp_percent=tp, sl_percent=sl):
            return CommandReply(f"✅ Trade {escape(trade_id)}: TP +{tp}% / SL -{sl}%")
        return CommandReply(f"❌ Targets for trade {escape(trade_id)} were not updated")

    async def _cmd_details(self, args: List[str]) -> CommandReply:
        trade = self.ledger.get_trade(args[0])
        if trade is None:
            return CommandReply(f"❌ Trade {escape(args[0])} not found")
        return CommandReply(format_trade(trade))

    async def _cmd_stats(self, args: List[str]) -> CommandReply:
        return CommandReply(format_stats(self.ledger.get_stats()))

    async def _cmd_positions(self, args: List[str]) -> CommandReply:
        trades = self.ledger.get_active_trades()
        if not trades:
            return CommandReply("📭 No active positions")
        return CommandReply("\n\n".join(format_trade(t) for t in trades))

    async def _cmd_last(self, args: List[str]) -> CommandReply:
        trade = self.ledger.get_last_trade()
        if trade is None:
            return CommandReply("📭 No trades yet")
        return CommandReply(format_trade(trade))
