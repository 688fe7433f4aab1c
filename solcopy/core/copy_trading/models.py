"""Copy trading result types."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class ExecutionResult:
    """Result of a copy trade execution."""

    success: bool
    fill_price: Optional[Decimal] = None  # SOL per token
    asset_amount: Optional[Decimal] = None
    tx_signature: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def failed(cls, error_message: str) -> "ExecutionResult":
        return cls(success=False, error_message=error_message)
