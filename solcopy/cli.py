#!/usr/bin/env python3
"""Command line entry point: run the bot, inspect state, check configuration"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import httpx

from .config import settings
from .core.errors import ConfigurationError
from .core.ledger import JsonFileStateStore, Ledger, TradeState


def print_stats(ledger: Ledger) -> None:
    """Pretty print ledger statistics"""
    stats = ledger.get_stats()

    print("\n📊 Ledger")
    print("=" * 50)
    print(f"Tracked wallets:  {stats.tracked_accounts}")
    print(f"Active positions: {stats.active_positions}")
    print(f"Pending trades:   {stats.pending_trades}")
    print(f"Closed trades:    {stats.closed_trades}")
    print(f"Total PnL:        {stats.total_pnl:.4f} SOL")
    print(f"Win rate:         {stats.win_rate:.1f}%")

    active = ledger.get_trades(TradeState.ACTIVE)
    if active:
        print("\nActive positions:")
        print("-" * 50)
        for i, trade in enumerate(active, 1):
            print(
                f"{i:2d}. {trade.id} {trade.direction.value:<4} {trade.display_symbol:<12} "
                f"entry={trade.entry_price} tp=+{trade.tp_percent}% sl=-{trade.sl_percent}%"
            )


async def cli_status(state_file: Path, url: Optional[str] = None) -> int:
    """Print stats from a running instance, or from the state file"""
    if url:
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{url.rstrip('/')}/status")
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            print(f"❌ Could not reach {url}: {e}")
            return 1

        ledger = data.get("ledger", {})
        print(f"\n🤖 Bot {'running' if data.get('running') else 'stopped'} ({data.get('mode')})")
        print(f"Listener: {data.get('listener', {}).get('state')}")
        print(f"Active positions: {ledger.get('active_positions')}")
        print(f"Total PnL: {ledger.get('total_pnl')} SOL")
        return 0

    if not state_file.exists():
        print(f"ℹ️  No state file at {state_file}")
        return 0

    ledger = Ledger(settings.master_wallet, store=JsonFileStateStore(state_file))
    await ledger.load()
    print_stats(ledger)
    return 0


def cli_check_config() -> int:
    try:
        settings.validate_required()
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1

    runtime = settings.initial_runtime_config()
    print("✅ Configuration OK")
    print(f"Mode:           {settings.mode.value}")
    print(f"Master wallet:  {settings.master_wallet}")
    print(f"Stream:         {settings.solana_wss_url}")
    print(f"Telegram:       {'configured' if settings.telegram_bot_token else 'log only'}")
    print(f"Trade size:     {runtime.trade_size} SOL (TP +{runtime.tp_percent}% / SL -{runtime.sl_percent}%)")
    return 0


def cli_run(host: Optional[str], port: Optional[int]) -> int:
    try:
        settings.validate_required()
    except ConfigurationError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    import uvicorn

    from .logging_config import setup_logging

    setup_logging()
    uvicorn.run(
        "solcopy.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="solcopy", description="Solana copy trading bot")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Start the bot and its HTTP server")
    run_parser.add_argument("--host", help="Bind address (default: HOST)")
    run_parser.add_argument("--port", type=int, help="Bind port (default: PORT)")

    status_parser = subparsers.add_parser("status", help="Show ledger statistics")
    status_parser.add_argument("--state-file", type=Path, default=settings.state_file, help="Ledger snapshot")
    status_parser.add_argument("--url", help="Query a running instance instead of the state file")

    subparsers.add_parser("check-config", help="Validate required settings")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "run":
        return cli_run(args.host, args.port)

    if args.command == "status":
        return asyncio.run(cli_status(args.state_file, args.url))

    if args.command == "check-config":
        return cli_check_config()

    print(f"❌ Unknown command: {args.command}")
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
