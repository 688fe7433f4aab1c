"""
Error Classification

Exceptions shared by the core components. Only ConfigurationError is fatal;
everything else is caught at a component boundary and reported.
"""

from typing import Any, Optional


class SolcopyError(Exception):
    """Base class for all bot errors."""


class ConfigurationError(SolcopyError):
    """Required launch configuration is missing or invalid."""


class InvalidTransitionError(SolcopyError):
    """Raised when a trade state change would move backwards."""

    def __init__(
        self,
        trade_id: str,
        from_state: Any,
        to_state: Any,
        message: Optional[str] = None,
    ):
        self.trade_id = trade_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            message or f"Trade {trade_id}: invalid transition {from_state} -> {to_state}"
        )


class TradeNotFoundError(SolcopyError):
    """No trade with the given id."""

    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(f"Trade {trade_id} not found")


class ExecutionError(SolcopyError):
    """The swap collaborator could not complete a trade."""


class ProviderError(SolcopyError):
    """An external data provider (RPC, price API, Telegram) failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
