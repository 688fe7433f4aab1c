"""
Runtime Tests

Component wiring, event routing, lifecycle and the CLI entry points.
"""

import pytest
from decimal import Decimal

from solcopy import cli
from solcopy.core.errors import ConfigurationError
from solcopy.core.ledger import TradeDirection, TradeState
from solcopy.core.listener import ClassifiedEvent, EventType, ListenerState
from solcopy.core.notifications import NotificationType

from conftest import MASTER, NEW_WALLET, TOKEN, RuntimeHarness, wait_for


def transfer_event(amount="1.5"):
    return ClassifiedEvent(
        type=EventType.TRANSFER,
        signature="sig",
        source_account=MASTER,
        amount_native=Decimal(amount),
        destination=NEW_WALLET,
    )


class TestEventRouting:
    """Transfers go to discovery, swaps to the copy engine."""

    @pytest.mark.asyncio
    async def test_transfer_routed_to_discovery(self, harness):
        runtime = harness.runtime
        runtime.discovery.start()

        await runtime.route_event(transfer_event())

        assert runtime.discovery.get_candidate(NEW_WALLET) is not None
        assert runtime.ledger.get_trades() == []

    @pytest.mark.asyncio
    async def test_swap_routed_to_engine(self, harness):
        runtime = harness.runtime
        event = ClassifiedEvent(
            type=EventType.SELL,
            signature="sig",
            source_account=MASTER,
            amount_native=Decimal("1"),
            asset_id=TOKEN,
        )

        await runtime.route_event(event)

        trades = runtime.ledger.get_trades()
        assert len(trades) == 1
        assert trades[0].direction == TradeDirection.SELL
        assert runtime.discovery.get_candidates() == []
        await runtime.monitor.stop()


class TestLifecycle:
    """Startup, shutdown and listener failure."""

    @pytest.mark.asyncio
    async def test_start_resumes_active_trades(self, harness):
        runtime = harness.runtime
        trade = await runtime.ledger.create_trade(
            source_account=MASTER,
            asset_id=TOKEN,
            direction=TradeDirection.BUY,
            size_native=Decimal("1"),
            tp_percent=Decimal("50"),
            sl_percent=Decimal("20"),
        )
        await runtime.ledger.activate_trade(trade.id, Decimal("1"))

        await runtime.start()
        try:
            assert runtime.monitor.watched_ids() == [trade.id]
            assert runtime.started_at is not None
            assert not runtime.is_trading()
        finally:
            await runtime.shutdown()

        assert runtime.monitor.watched_ids() == []
        assert runtime.ledger.get_trade(trade.id).state == TradeState.ACTIVE
        harness.rpc.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_config_aborts_before_start(self, launch_settings):
        launch_settings.solana_wss_url = ""
        launch_settings.autostart = True
        harness = RuntimeHarness(launch_settings)
        runtime = harness.runtime

        with pytest.raises(ConfigurationError, match="SOLANA_WSS_URL"):
            await runtime.start()

        assert runtime.started_at is None
        assert not runtime.is_trading()
        assert harness.sockets == []
        assert runtime.listener.state == ListenerState.STOPPED

    @pytest.mark.asyncio
    async def test_autostart(self, launch_settings):
        launch_settings.autostart = True
        harness = RuntimeHarness(launch_settings)
        runtime = harness.runtime

        await runtime.start()
        try:
            assert runtime.is_trading()
            await wait_for(lambda: runtime.listener.state == ListenerState.SUBSCRIBED)
            assert harness.sockets[0].sent[0]["params"][0]["mentions"] == [MASTER]
        finally:
            await runtime.shutdown()

        assert not runtime.is_trading()
        assert [n.type for n in harness.sink.delivered] == [NotificationType.BOT_STATUS]

    @pytest.mark.asyncio
    async def test_listener_fatal_halts_trading(self, harness):
        runtime = harness.runtime
        await runtime.start_trading()
        assert runtime.discovery.is_running()

        await runtime._on_listener_fatal("reconnect attempts exhausted")

        assert not runtime.is_trading()
        assert not runtime.discovery.is_running()
        await runtime.listener.stop()

    @pytest.mark.asyncio
    async def test_housekeeping_evicts_and_skips_clean_flush(self, harness, monkeypatch):
        runtime = harness.runtime
        runtime.discovery.start()
        await runtime.route_event(transfer_event())
        saves = harness.store.save_count

        monkeypatch.setattr(runtime.settings, "discovery_retention_hours", 0)
        await runtime.housekeeping_tick()

        assert runtime.discovery.get_candidates() == []
        assert harness.store.save_count == saves

    def test_status_document(self, harness):
        status = harness.runtime.status()

        assert status["running"] is False
        assert status["listener"]["state"] == "stopped"
        assert status["listener"]["watched_wallets"] == 1
        assert status["discovery"]["running"] is False
        assert status["pending_notifications"] == 0


class TestCli:
    """Command line entry points."""

    def test_check_config_ok(self, launch_settings, monkeypatch, capsys):
        monkeypatch.setattr(cli, "settings", launch_settings)

        assert cli.main(["check-config"]) == 0
        assert "Configuration OK" in capsys.readouterr().out

    def test_check_config_missing_master(self, launch_settings, monkeypatch, capsys):
        launch_settings.master_wallet = ""
        monkeypatch.setattr(cli, "settings", launch_settings)

        assert cli.main(["check-config"]) == 1
        assert "MASTER_WALLET" in capsys.readouterr().out

    def test_status_without_state_file(self, launch_settings, monkeypatch, tmp_path, capsys):
        monkeypatch.setattr(cli, "settings", launch_settings)

        assert cli.main(["status", "--state-file", str(tmp_path / "none.json")]) == 0
        assert "No state file" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()
