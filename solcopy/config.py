import copy

from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import ConfigurationError


BASE_DIR = Path(__file__).resolve().parents[1]

NATIVE_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


class TradingMode(str, Enum):
    """Whether fills are simulated or sent on-chain."""

    TEST = "TEST"
    REAL = "REAL"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="json or console")

    # Accounts / Mode
    master_wallet: str = Field(default="", description="Master account watched for transfers and swaps")
    mode: TradingMode = Field(default=TradingMode.TEST, description="TEST simulates fills, REAL submits swaps")
    autostart: bool = Field(
        default=False,
        description="Start the listener and discovery on boot instead of waiting for /start",
    )
    trading_wallet: str = Field(default="", description="Public key that REAL swaps are built for")

    # Solana endpoints
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="HTTP JSON-RPC endpoint used for balances, signatures and sendTransaction",
    )
    solana_wss_url: str = Field(default="", description="Websocket endpoint used for logsSubscribe")
    solana_commitment: str = Field(default="confirmed", description="Commitment level for subscriptions")
    rpc_timeout_seconds: float = Field(default=20.0, description="HTTP RPC timeout")

    # Stream listener
    reconnect_base_seconds: float = Field(default=1.0, description="Base delay for reconnect backoff")
    reconnect_cap_seconds: float = Field(default=30.0, description="Maximum reconnect delay")
    max_reconnect_attempts: int = Field(default=10, description="Attempts before the listener gives up")

    # Discovery
    discovery_retention_hours: float = Field(default=24.0, description="Candidate retention window")
    suspicious_balance_sol: Decimal = Field(
        default=Decimal("1000"),
        description="Balance above which a discovered wallet is considered suspicious",
    )
    discovery_signature_limit: int = Field(default=10, description="Recent signatures fetched for risk checks")

    # Trading
    exit_check_interval_seconds: float = Field(default=5.0, description="TP/SL polling interval")
    slippage_bps: int = Field(default=100, description="Slippage tolerance for REAL swaps")
    jupiter_price_url: str = Field(default="https://price.jup.ag/v6/price", description="Jupiter price API")
    jupiter_quote_url: str = Field(default="https://quote-api.jup.ag/v6", description="Jupiter quote/swap API")

    # Persistence / housekeeping
    state_file: Path = Field(default=BASE_DIR / "state.json", description="Ledger snapshot location")
    persist_on_mutation: bool = Field(default=True, description="Save after every ledger mutation")
    housekeeping_interval_seconds: float = Field(default=60.0, description="Stats/eviction/flush period")

    # Telegram
    telegram_bot_token: str = Field(default="", description="Telegram bot token")
    telegram_chat_id: str = Field(default="", description="Only chat allowed to receive and send commands")
    telegram_webhook_secret: str = Field(default="", description="Expected X-Telegram-Bot-Api-Secret-Token")
    telegram_webhook_url: str = Field(default="", description="Public webhook URL registered with setWebhook on startup")
    notification_queue_size: int = Field(default=1000, description="Outbound notification buffer")

    # Runtime defaults (mutable afterwards through the ConfigStore)
    discovery_enabled: bool = Field(default=True, description="Initial discovery toggle")
    min_sol_transfer: Decimal = Field(default=Decimal("0.5"), description="Lower bound for discovery transfers")
    max_sol_transfer: Decimal = Field(default=Decimal("10"), description="Upper bound for discovery transfers")
    trade_size_sol: Decimal = Field(default=Decimal("0.1"), description="Size of every copied trade")
    tp_percent: Decimal = Field(default=Decimal("25"), description="Default take-profit percent")
    sl_percent: Decimal = Field(default=Decimal("10"), description="Default stop-loss percent")
    auto_copy: bool = Field(default=True, description="Execute detected trades without confirmation")

    def validate_required(self) -> None:
        """Abort startup when launch parameters are missing."""
        missing = []
        if not self.master_wallet:
            missing.append("MASTER_WALLET")
        if not self.solana_wss_url:
            missing.append("SOLANA_WSS_URL")
        if self.mode == TradingMode.REAL and not self.solana_rpc_url:
            missing.append("SOLANA_RPC_URL")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    def initial_runtime_config(self) -> "RuntimeConfig":
        return RuntimeConfig(
            discovery_enabled=self.discovery_enabled,
            min_transfer=self.min_sol_transfer,
            max_transfer=self.max_sol_transfer,
            trade_size=self.trade_size_sol,
            tp_percent=self.tp_percent,
            sl_percent=self.sl_percent,
            auto_copy=self.auto_copy,
        )


class RuntimeConfig(BaseModel):
    """Trading parameters adjustable while the bot runs."""

    discovery_enabled: bool = True
    min_transfer: Decimal = Field(default=Decimal("0.5"), ge=0)
    max_transfer: Decimal = Field(default=Decimal("10"), ge=0)
    trade_size: Decimal = Field(default=Decimal("0.1"), gt=0)
    tp_percent: Decimal = Field(default=Decimal("25"), gt=0, le=1000)
    sl_percent: Decimal = Field(default=Decimal("10"), gt=0, le=100)
    auto_copy: bool = True

    @model_validator(mode="after")
    def _check_range(self) -> "RuntimeConfig":
        if self.min_transfer > self.max_transfer:
            raise ValueError("min_transfer must not exceed max_transfer")
        return self


class ConfigStore:
    """
    Owns launch settings and the mutable runtime configuration.

    Reads hand out copies; `update` validates the merged document before
    swapping it in, so a rejected update leaves the current config untouched.
    """

    def __init__(self, launch: Settings, runtime: Optional[RuntimeConfig] = None):
        self._settings = launch
        self._runtime = runtime or launch.initial_runtime_config()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def master_wallet(self) -> str:
        return self._settings.master_wallet

    @property
    def mode(self) -> TradingMode:
        return self._settings.mode

    def snapshot(self) -> RuntimeConfig:
        return self._runtime.model_copy(deep=True)

    def update(self, **changes: Any) -> RuntimeConfig:
        unknown = set(changes) - set(RuntimeConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown runtime config fields: {', '.join(sorted(unknown))}")

        merged = copy.deepcopy(self._runtime.model_dump())
        merged.update({k: v for k, v in changes.items() if v is not None})
        try:
            updated = RuntimeConfig.model_validate(merged)
        except ValidationError as e:
            raise ValueError(str(e)) from e

        self._runtime = updated
        return self.snapshot()


settings = Settings()
