from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class PriceProvider(Provider):
    """Provider for token prices quoted in the native asset"""

    @abstractmethod
    async def get_price(self, asset_id: str) -> Optional[Decimal]:
        """Current price of one unit of asset_id, or None when no quote is available"""
        pass


class ChainDataProvider(Provider):
    """Provider for account-level chain lookups"""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance in lamports"""
        pass

    @abstractmethod
    async def get_signatures_for_address(self, address: str, limit: int = 10) -> list:
        """Most recent transaction signatures for an address"""
        pass
