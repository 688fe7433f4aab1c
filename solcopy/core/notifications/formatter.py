"""
Message formatting for the chat sink and command replies.

Telegram HTML parse mode; every interpolated value is escaped.
"""

from __future__ import annotations

from decimal import Decimal
from html import escape
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

from .models import Notification, NotificationType
from ..ledger.models import LedgerStats, TrackedAccount, Trade, TradeState
from ...config import TradingMode

if TYPE_CHECKING:
    from ..discovery.models import DiscoveredCandidate
    from ...config import RuntimeConfig


def _short(address: Optional[str]) -> str:
    if not address:
        return "?"
    return f"{address[:8]}..."


def _num(value: Any, places: int = 4) -> str:
    if value is None:
        return "N/A"
    return f"{Decimal(str(value)):.{places}f}"


def _keyboard(rows: Iterable[Iterable[Tuple[str, str]]]) -> Dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data} for text, data in row]
            for row in rows
        ]
    }


def format_trade(trade: Trade) -> str:
    state_emoji = {
        TradeState.ACTIVE: "🟢",
        TradeState.CLOSED: "🔴",
        TradeState.PENDING: "🟡",
    }[trade.state]

    lines = [
        f"📈 <b>TRADE {escape(trade.id)} - {state_emoji} {trade.state.value}</b>",
        "",
        f"Token: <code>{escape(trade.display_symbol)}</code>",
        f"Type: {trade.direction.value} ({trade.mode.value})",
        f"Size: {trade.size_native} SOL",
        f"Entry: {_num(trade.entry_price, 6)}",
        f"Exit: {_num(trade.exit_price, 6)}",
        f"TP: +{trade.tp_percent}% | SL: -{trade.sl_percent}%",
    ]
    if trade.pnl_native is not None:
        lines.append("")
        lines.append(f"💰 PnL: {_num(trade.pnl_native)} SOL ({_num(trade.pnl_percent, 2)}%)")
    if trade.last_error:
        lines.append(f"⚠️ Last error: {escape(trade.last_error)}")
    return "\n".join(lines)


def format_stats(stats: LedgerStats) -> str:
    return "\n".join([
        "📊 <b>Statistics</b>",
        "",
        f"Active positions: {stats.active_positions}",
        f"Pending trades: {stats.pending_trades}",
        f"Closed trades: {stats.closed_trades}",
        f"Win rate: {stats.win_rate:.1f}%",
        "",
        f"Total PnL: {_num(stats.total_pnl)} SOL",
        f"Tracked wallets: {stats.tracked_accounts}",
    ])


def format_wallets(accounts: Iterable[TrackedAccount]) -> str:
    accounts = list(accounts)
    lines = [f"💼 <b>TRACKED WALLETS</b> ({len(accounts)})", ""]
    for account in accounts:
        marker = "🟢" if account.active else "🔴"
        lines.append(f"{marker} <code>{escape(account.address)}</code> ({account.category.value})")
    return "\n".join(lines)


def format_notification(notification: Notification) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Render a notification as (html_text, reply_markup)."""
    data = notification.data
    kind = notification.type

    if kind == NotificationType.TRADE_DETECTED:
        trade_id = escape(str(data.get("trade_id")))
        text = "\n".join([
            "🚨 <b>TRADE DETECTED</b>",
            "",
            f"Wallet: <code>{escape(_short(data.get('source_account')))}</code>",
            f"Token: <code>{escape(str(data.get('asset_id')))}</code>",
            f"Type: {data.get('direction')}",
            f"Size: {data.get('size_native')} SOL",
            f"🎯 TP: +{data.get('tp_percent')}% | 🛑 SL: -{data.get('sl_percent')}%",
            "",
            "⏳ Executing..." if data.get("auto_copy") else "Awaiting confirmation.",
        ])
        markup = None
        if not data.get("auto_copy"):
            markup = _keyboard([[("✅ Execute", f"execute_{trade_id}"), ("❌ Ignore", "ignore")]])
        return text, markup

    if kind == NotificationType.TRADE_EXECUTED:
        text = "\n".join([
            "✅ <b>TRADE EXECUTED</b>",
            "",
            f"Trade ID: {escape(str(data.get('trade_id')))}",
            f"Entry: {_num(data.get('entry_price'), 6)}",
            "You will be notified when TP/SL is hit.",
        ])
        return text, _keyboard([[("🔒 Close now", f"close_{escape(str(data.get('trade_id')))}")]])

    if kind == NotificationType.EXECUTION_FAILED:
        text = "\n".join([
            "⚠️ <b>EXECUTION FAILED</b>",
            "",
            f"Trade ID: {escape(str(data.get('trade_id')))}",
            f"Error: {escape(str(data.get('error') or 'unknown'))}",
            "The trade stays PENDING and can be retried.",
        ])
        return text, _keyboard([[("🔁 Retry", f"execute_{escape(str(data.get('trade_id')))}")]])

    if kind == NotificationType.TRADE_CLOSED:
        reason = data.get("reason")
        emoji = {"TAKE_PROFIT": "🎯", "STOP_LOSS": "🛑"}.get(reason, "🔒")
        text = "\n".join([
            f"{emoji} <b>{escape(str(reason).replace('_', ' '))}</b>",
            "",
            f"Token: <code>{escape(str(data.get('asset_id')))}</code>",
            f"Entry: {_num(data.get('entry_price'), 6)}",
            f"Exit: {_num(data.get('exit_price'), 6)}",
            f"PnL: {_num(data.get('pnl_percent'), 2)}% ({_num(data.get('pnl_native'))} SOL)",
            "",
            "The position has been closed.",
        ])
        return text, None

    if kind == NotificationType.WALLET_DISCOVERED:
        address = escape(str(data.get("address")))
        text = "\n".join([
            "🔍 <b>NEW WALLET DISCOVERED</b>",
            "",
            f"Destination: <code>{address}</code>",
            f"Transfer: {data.get('transfer_amount')} SOL from <code>{escape(_short(data.get('from_account')))}</code>",
            "",
            f"💰 Balance: {_num(data.get('balance_sol'))} SOL",
            f"📊 Recent transactions: {data.get('tx_count')}",
            "",
            "Follow this wallet?",
        ])
        return text, _keyboard([
            [("✅ Add and watch", f"confirm_wallet_{address}")],
            [("❌ Ignore", f"ignore_wallet_{address}")],
        ])

    if kind == NotificationType.WALLET_ADDED:
        text = (
            "✅ Wallet added\n\n"
            f"<code>{escape(str(data.get('address')))}</code>\n\nNow watching this wallet."
        )
        return text, None

    if kind == NotificationType.LISTENER_FATAL:
        text = f"❌ <b>LISTENER STOPPED</b>\n\n{escape(notification.message or 'Reconnect attempts exhausted')}"
        return text, None

    return escape(notification.message or kind.value), None


def format_config(cfg: "RuntimeConfig", mode: TradingMode) -> str:
    discovery = "✅ on" if cfg.discovery_enabled else "❌ off"
    lines = [
        "⚙️ <b>Configuration</b>",
        "",
        f"Mode: {mode.value}",
        f"💰 Trade size: {cfg.trade_size} SOL",
        f"🎯 Take profit: +{cfg.tp_percent}%",
        f"🛑 Stop loss: -{cfg.sl_percent}%",
        f"🤖 Auto copy: {'on' if cfg.auto_copy else 'off'}",
        f"🔍 Discovery: {discovery}",
    ]
    if cfg.discovery_enabled:
        lines.append(f"   Range: {cfg.min_transfer}-{cfg.max_transfer} SOL")
    return "\n".join(lines)


def format_candidates(candidates: Iterable["DiscoveredCandidate"]) -> str:
    candidates = list(candidates)
    if not candidates:
        return "🔍 No discovered wallets in the current window."

    lines = [f"🔍 <b>DISCOVERED WALLETS</b> ({len(candidates)})", ""]
    for candidate in candidates:
        analysis = candidate.analysis
        if candidate.ignored:
            flag = "🚫"
        elif analysis is not None and analysis.suspicious:
            flag = "⚠️"
        else:
            flag = "🆕"
        detail = f"{candidate.transfer_amount} SOL"
        if analysis is not None and analysis.error is None:
            detail += f", balance {_num(analysis.balance_sol)} SOL, {analysis.tx_count} tx"
        lines.append(f"{flag} <code>{escape(candidate.address)}</code> ({detail})")
    return "\n".join(lines)


def main_menu_keyboard(running: bool) -> Dict[str, Any]:
    toggle = ("⏸ Stop bot", "stop_bot") if running else ("▶️ Start bot", "start_bot")
    return _keyboard([
        [toggle, ("⚙️ Settings", "show_config")],
        [("📊 PnL", "show_pnl"), ("💼 Wallets", "show_wallets")],
        [("📈 Last trade", "last_trade"), ("🎯 Positions", "active_positions")],
    ])


def settings_keyboard() -> Dict[str, Any]:
    return _keyboard([
        [(f"{size} SOL", f"size_{size}") for size in ("0.1", "0.5", "1")],
        [(f"TP +{pct}%", f"tp_global_{pct}") for pct in ("10", "25", "50", "100")],
        [(f"SL -{pct}%", f"sl_global_{pct}") for pct in ("5", "10", "20", "50")],
        [("🔍 Toggle discovery", "toggle_discovery"), ("🔙 Menu", "main_menu")],
    ])
