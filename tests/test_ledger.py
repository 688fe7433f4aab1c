"""
Ledger Tests

Account bookkeeping, trade lifecycle and snapshot persistence.
"""

import asyncio
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from solcopy.core.errors import InvalidTransitionError, TradeNotFoundError
from solcopy.core.ledger import (
    AccountCategory,
    ExitReason,
    InMemoryStateStore,
    JsonFileStateStore,
    Ledger,
    TradeDirection,
    TradeState,
)

from conftest import FOLLOWED, MASTER, TOKEN


async def _open_trade(ledger, direction=TradeDirection.BUY):
    return await ledger.create_trade(
        source_account=MASTER,
        asset_id=TOKEN,
        direction=direction,
        size_native=Decimal("1"),
        tp_percent=Decimal("50"),
        sl_percent=Decimal("20"),
    )


# =============================================================================
# Accounts
# =============================================================================


class TestAccounts:
    """Tracked account bookkeeping."""

    def test_master_always_present(self, ledger):
        account = ledger.get_account(MASTER)
        assert account is not None
        assert account.category == AccountCategory.MASTER
        assert ledger.is_followed(MASTER)

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, ledger):
        await ledger.add_account(FOLLOWED)
        await ledger.add_account(FOLLOWED)
        await ledger.add_account(FOLLOWED, category=AccountCategory.DISCOVERED)

        addresses = [a.address for a in ledger.get_accounts()]
        assert addresses.count(FOLLOWED) == 1
        assert ledger.get_account(FOLLOWED).category == AccountCategory.FOLLOWED

    @pytest.mark.asyncio
    async def test_remove_then_readd_reactivates(self, ledger):
        await ledger.add_account(FOLLOWED)
        assert await ledger.remove_account(FOLLOWED) is True
        assert ledger.is_followed(FOLLOWED) is False
        assert FOLLOWED not in ledger.active_accounts()

        # Soft delete: the record is still there
        assert ledger.get_account(FOLLOWED) is not None

        await ledger.add_account(FOLLOWED)
        assert ledger.is_followed(FOLLOWED) is True
        assert len([a for a in ledger.get_accounts() if a.address == FOLLOWED]) == 1

    @pytest.mark.asyncio
    async def test_remove_unknown_returns_false(self, ledger):
        assert await ledger.remove_account(FOLLOWED) is False

    @pytest.mark.asyncio
    async def test_master_cannot_be_removed(self, ledger):
        assert await ledger.remove_account(MASTER) is False
        assert ledger.is_followed(MASTER)


# =============================================================================
# Trades
# =============================================================================


class TestTradeLifecycle:
    """PENDING -> ACTIVE -> CLOSED, never backwards."""

    @pytest.mark.asyncio
    async def test_create_trade_is_pending(self, ledger):
        trade = await _open_trade(ledger)

        assert trade.state == TradeState.PENDING
        assert trade.entry_price is None
        assert trade.id.startswith("T")

    @pytest.mark.asyncio
    async def test_ids_are_unique_and_ordered(self, ledger):
        first = await _open_trade(ledger)
        second = await _open_trade(ledger)

        assert first.id != second.id
        assert int(first.id[1:]) < int(second.id[1:])
        assert ledger.get_last_trade().id == second.id

    @pytest.mark.asyncio
    async def test_activate_then_close(self, ledger):
        trade = await _open_trade(ledger)

        active = await ledger.activate_trade(trade.id, Decimal("2"), tx_signature="sig")
        assert active.state == TradeState.ACTIVE
        assert active.entry_price == Decimal("2")
        assert active.asset_amount == Decimal("0.5")
        assert active.opened_at is not None

        closed = await ledger.close_trade(
            trade.id, Decimal("3"), ExitReason.TAKE_PROFIT, Decimal("0.5"), Decimal("50")
        )
        assert closed.state == TradeState.CLOSED
        assert closed.exit_price == Decimal("3")
        assert closed.exit_reason == ExitReason.TAKE_PROFIT

    @pytest.mark.asyncio
    async def test_state_never_moves_backwards(self, ledger):
        trade = await _open_trade(ledger)

        with pytest.raises(InvalidTransitionError):
            await ledger.close_trade(trade.id, Decimal("1"), ExitReason.MANUAL, Decimal("0"), Decimal("0"))

        await ledger.activate_trade(trade.id, Decimal("1"))
        with pytest.raises(InvalidTransitionError):
            await ledger.activate_trade(trade.id, Decimal("5"))

        await ledger.close_trade(trade.id, Decimal("1"), ExitReason.MANUAL, Decimal("0"), Decimal("0"))
        with pytest.raises(InvalidTransitionError):
            await ledger.close_trade(trade.id, Decimal("2"), ExitReason.MANUAL, Decimal("1"), Decimal("1"))

        # Entry and exit were recorded exactly once
        final = ledger.get_trade(trade.id)
        assert final.entry_price == Decimal("1")
        assert final.exit_price == Decimal("1")

    @pytest.mark.asyncio
    async def test_unknown_trade_raises(self, ledger):
        with pytest.raises(TradeNotFoundError):
            await ledger.activate_trade("T-missing", Decimal("1"))
        assert ledger.get_trade("T-missing") is None

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, ledger):
        trade = await _open_trade(ledger)
        trade.state = TradeState.CLOSED

        assert ledger.get_trade(trade.id).state == TradeState.PENDING

    @pytest.mark.asyncio
    async def test_update_targets(self, ledger):
        trade = await _open_trade(ledger)

        updated = await ledger.update_trade_targets(trade.id, tp_percent=Decimal("80"))
        assert updated.tp_percent == Decimal("80")
        assert updated.sl_percent == Decimal("20")

        with pytest.raises(ValueError):
            await ledger.update_trade_targets(trade.id, sl_percent=Decimal("120"))

        await ledger.activate_trade(trade.id, Decimal("1"))
        await ledger.close_trade(trade.id, Decimal("1"), ExitReason.MANUAL, Decimal("0"), Decimal("0"))
        with pytest.raises(InvalidTransitionError):
            await ledger.update_trade_targets(trade.id, tp_percent=Decimal("10"))


class TestStats:
    """Aggregate queries."""

    @pytest.mark.asyncio
    async def test_stats(self, ledger):
        await ledger.add_account(FOLLOWED)

        winner = await _open_trade(ledger)
        await ledger.activate_trade(winner.id, Decimal("1"))
        await ledger.close_trade(winner.id, Decimal("1.5"), ExitReason.TAKE_PROFIT, Decimal("0.5"), Decimal("50"))

        loser = await _open_trade(ledger)
        await ledger.activate_trade(loser.id, Decimal("1"))
        await ledger.close_trade(loser.id, Decimal("0.8"), ExitReason.STOP_LOSS, Decimal("-0.2"), Decimal("-20"))

        active = await _open_trade(ledger)
        await ledger.activate_trade(active.id, Decimal("1"))
        await _open_trade(ledger)

        stats = ledger.get_stats()
        assert stats.total_trades == 4
        assert stats.active_positions == 1
        assert stats.pending_trades == 1
        assert stats.closed_trades == 2
        assert stats.total_pnl == Decimal("0.3")
        assert stats.win_rate == 50.0
        assert stats.tracked_accounts == 2

    def test_empty_stats(self, ledger):
        stats = ledger.get_stats()
        assert stats.total_trades == 0
        assert stats.win_rate == 0.0


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    """Snapshots through the state store."""

    @pytest.mark.asyncio
    async def test_saves_on_every_mutation(self, ledger, state_store):
        await ledger.add_account(FOLLOWED)
        await _open_trade(ledger)

        assert state_store.save_count == 2
        assert len(state_store.snapshot.trades) == 1

    @pytest.mark.asyncio
    async def test_batched_mode_saves_on_flush(self):
        store = InMemoryStateStore()
        ledger = Ledger(MASTER, store=store, persist_on_mutation=False)

        await ledger.add_account(FOLLOWED)
        assert store.save_count == 0

        assert await ledger.flush() is True
        assert store.save_count == 1
        assert await ledger.flush() is False

    @pytest.mark.asyncio
    async def test_save_failure_is_swallowed(self):
        store = InMemoryStateStore()
        store.save = AsyncMock(side_effect=OSError("disk full"))
        ledger = Ledger(MASTER, store=store)

        account = await ledger.add_account(FOLLOWED)

        assert account.address == FOLLOWED
        assert ledger.is_followed(FOLLOWED)

    @pytest.mark.asyncio
    async def test_cancelled_save_keeps_ledger_dirty(self):
        store = InMemoryStateStore()
        ledger = Ledger(MASTER, store=store, persist_on_mutation=False)
        await ledger.add_account(FOLLOWED)

        entered = asyncio.Event()

        async def hanging_save(snapshot):
            entered.set()
            await asyncio.Event().wait()

        real_save, store.save = store.save, hanging_save
        flushing = asyncio.create_task(ledger.flush())
        await entered.wait()
        flushing.cancel()
        with pytest.raises(asyncio.CancelledError):
            await flushing

        store.save = real_save
        assert await ledger.flush() is True
        assert FOLLOWED in [a.address for a in store.snapshot.accounts]

    @pytest.mark.asyncio
    async def test_json_file_store_restores_state(self, tmp_path):
        path = tmp_path / "state" / "state.json"
        ledger = Ledger(MASTER, store=JsonFileStateStore(path))
        await ledger.add_account(FOLLOWED)
        trade = await _open_trade(ledger)
        await ledger.activate_trade(trade.id, Decimal("0.25"))

        restored = Ledger(MASTER, store=JsonFileStateStore(path))
        await restored.load()

        assert restored.is_followed(FOLLOWED)
        loaded = restored.get_trade(trade.id)
        assert loaded.state == TradeState.ACTIVE
        assert loaded.entry_price == Decimal("0.25")
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_missing_file_starts_fresh(self, tmp_path):
        ledger = Ledger(MASTER, store=JsonFileStateStore(tmp_path / "absent.json"))
        await ledger.load()

        assert ledger.active_accounts() == [MASTER]
