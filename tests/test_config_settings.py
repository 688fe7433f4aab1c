from decimal import Decimal

import pytest

from solcopy.config import ConfigStore, RuntimeConfig, Settings, TradingMode
from solcopy.core.errors import ConfigurationError


def test_settings_load_from_env(monkeypatch):
    """Launch parameters come from environment variables, case-insensitively."""

    monkeypatch.setenv("MASTER_WALLET", "env-master")
    monkeypatch.setenv("SOLANA_WSS_URL", "wss://env.example")
    monkeypatch.setenv("mode", "REAL")
    monkeypatch.setenv("TP_PERCENT", "40")

    settings = Settings(_env_file=None)

    assert settings.master_wallet == "env-master"
    assert settings.solana_wss_url == "wss://env.example"
    assert settings.mode == TradingMode.REAL
    assert settings.initial_runtime_config().tp_percent == Decimal("40")


def test_validate_required_missing_master(monkeypatch):
    """Missing master wallet or stream URL is fatal."""

    monkeypatch.delenv("MASTER_WALLET", raising=False)
    monkeypatch.delenv("SOLANA_WSS_URL", raising=False)
    settings = Settings(_env_file=None, master_wallet="", solana_wss_url="")

    with pytest.raises(ConfigurationError) as exc:
        settings.validate_required()

    assert "MASTER_WALLET" in str(exc.value)
    assert "SOLANA_WSS_URL" in str(exc.value)


def test_validate_required_real_mode_needs_rpc():
    settings = Settings(
        _env_file=None,
        master_wallet="m",
        solana_wss_url="wss://x",
        solana_rpc_url="",
        mode=TradingMode.REAL,
    )

    with pytest.raises(ConfigurationError, match="SOLANA_RPC_URL"):
        settings.validate_required()


def test_validate_required_ok(launch_settings):
    launch_settings.validate_required()


class TestRuntimeConfig:
    """Runtime config validation and atomic updates."""

    def test_defaults_are_valid(self):
        cfg = RuntimeConfig()
        assert cfg.min_transfer <= cfg.max_transfer
        assert cfg.auto_copy is True

    def test_min_above_max_rejected(self):
        with pytest.raises(ValueError):
            RuntimeConfig(min_transfer=Decimal("5"), max_transfer=Decimal("1"))

    def test_update_merges_and_returns_copy(self, config_store):
        updated = config_store.update(tp_percent=Decimal("50"))

        assert updated.tp_percent == Decimal("50")
        assert config_store.snapshot().tp_percent == Decimal("50")

        # Mutating a snapshot never leaks into the store
        updated.tp_percent = Decimal("1")
        assert config_store.snapshot().tp_percent == Decimal("50")

    def test_rejected_update_leaves_config_untouched(self, config_store):
        before = config_store.snapshot()

        with pytest.raises(ValueError):
            config_store.update(min_transfer=Decimal("100"), max_transfer=Decimal("1"))
        with pytest.raises(ValueError):
            config_store.update(sl_percent=Decimal("150"))
        with pytest.raises(ValueError):
            config_store.update(trade_size=Decimal("0"))

        assert config_store.snapshot() == before

    def test_unknown_field_rejected(self, config_store):
        with pytest.raises(ValueError, match="Unknown"):
            config_store.update(leverage=10)

    def test_exposes_launch_settings(self, launch_settings):
        store = ConfigStore(launch_settings)
        assert store.master_wallet == launch_settings.master_wallet
        assert store.mode == TradingMode.TEST
