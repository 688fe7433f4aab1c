"""HTTP providers: Jupiter prices and swaps, Solana RPC, Telegram Bot API."""

from .base import ChainDataProvider, PriceProvider, Provider
from .jupiter import JupiterPriceOracle, JupiterQuote, JupiterSwapProvider, JupiterSwapResult
from .solana_rpc import SolanaRpcClient
from .telegram import TelegramClient

__all__ = [
    "Provider",
    "PriceProvider",
    "ChainDataProvider",
    "JupiterPriceOracle",
    "JupiterQuote",
    "JupiterSwapProvider",
    "JupiterSwapResult",
    "SolanaRpcClient",
    "TelegramClient",
]
