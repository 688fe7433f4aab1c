"""
Jupiter Price and Swap Provider for Solana.

- Price API: spot price of a token quoted in SOL (vsToken = wrapped SOL mint)
- Quote API: best route for a swap
- Swap API: unsigned, base64 encoded swap transaction for a quote

No API key required.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from .base import PriceProvider
from ..config import NATIVE_MINT
from ..core.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_PRICE_URL = "https://price.jup.ag/v6/price"
DEFAULT_QUOTE_URL = "https://quote-api.jup.ag/v6"


class JupiterPriceOracle(PriceProvider):
    """
    Price oracle backed by the Jupiter Price API.

    Every lookup failure (HTTP error, missing token, unparseable price) is
    reported as "no data" so callers can simply retry on their next tick.
    """

    name = "jupiter"
    timeout_s = 10

    def __init__(
        self,
        price_url: str = DEFAULT_PRICE_URL,
        vs_token: str = NATIVE_MINT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.price_url = price_url
        self.vs_token = vs_token
        self._client = client

    async def ready(self) -> bool:
        return bool(self.price_url)

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "configured", "price_url": self.price_url}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_price(self, asset_id: str) -> Optional[Decimal]:
        """Price of one token unit in SOL, or None if unavailable."""
        if asset_id == self.vs_token:
            return Decimal("1")

        client = await self._get_client()
        try:
            resp = await client.get(
                self.price_url,
                params={"ids": asset_id, "vsToken": self.vs_token},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Jupiter price lookup failed for {asset_id[:8]}...: {e}")
            return None

        price = ((data.get("data") or {}).get(asset_id) or {}).get("price")
        if price is None:
            return None
        try:
            value = Decimal(str(price))
        except (InvalidOperation, ValueError):
            return None
        return value if value > 0 else None


# =============================================================================
# Swaps (REAL mode)
# =============================================================================


@dataclass
class JupiterQuote:
    """A priced route for one swap, valid for a short time."""
    input_mint: str
    output_mint: str
    in_amount: int                              # In smallest units (lamports)
    out_amount: int                             # In smallest units
    other_amount_threshold: int                 # Minimum output (with slippage)
    slippage_bps: int
    price_impact_pct: float
    route_labels: List[str] = field(default_factory=list)

    # Raw response, required to build the transaction
    quote_response: Optional[Dict[str, Any]] = None

    fetched_at: float = field(default_factory=time.time)

    @property
    def is_valid(self) -> bool:
        """Quotes go stale after 30 seconds."""
        return (time.time() - self.fetched_at) < 30


@dataclass
class JupiterSwapResult:
    """Unsigned swap transaction ready for the signer."""
    swap_transaction: str                       # Base64 encoded, unsigned
    last_valid_block_height: int
    priority_fee_lamports: int


class JupiterSwapProvider:
    """
    Jupiter quote and swap transaction builder.

    Usage:
        provider = JupiterSwapProvider()
        quote = await provider.get_swap_quote(NATIVE_MINT, token_mint, 100_000_000)
        swap = await provider.build_swap_transaction(quote, user_public_key="...")
        # sign swap.swap_transaction, then send through the RPC client
    """

    def __init__(
        self,
        quote_url: str = DEFAULT_QUOTE_URL,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.quote_url = quote_url.rstrip("/")
        self._timeout_s = timeout_s
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_swap_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int = 50,
        swap_mode: str = "ExactIn",
    ) -> JupiterQuote:
        """
        Get a swap quote.

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount: Amount in smallest units (lamports for SOL)
            slippage_bps: Slippage tolerance in basis points (50 = 0.5%)
            swap_mode: "ExactIn" (amount is input) or "ExactOut" (amount is output)
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
            "swapMode": swap_mode,
        }

        client = await self._get_client()
        try:
            response = await client.get(f"{self.quote_url}/quote", params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"Jupiter quote HTTP error: {e.response.status_code}", provider="jupiter") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Jupiter quote failed: {e}", provider="jupiter") from e

        if "error" in data:
            raise ProviderError(f"Jupiter quote error: {data['error']}", provider="jupiter")

        try:
            return JupiterQuote(
                input_mint=data["inputMint"],
                output_mint=data["outputMint"],
                in_amount=int(data["inAmount"]),
                out_amount=int(data["outAmount"]),
                other_amount_threshold=int(data.get("otherAmountThreshold", data["outAmount"])),
                slippage_bps=slippage_bps,
                price_impact_pct=float(data.get("priceImpactPct", 0)),
                route_labels=[
                    (step.get("swapInfo") or {}).get("label", "?")
                    for step in data.get("routePlan", [])
                ],
                quote_response=data,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed Jupiter quote: {e}", provider="jupiter") from e

    async def build_swap_transaction(
        self,
        quote: JupiterQuote,
        user_public_key: str,
        priority_level: str = "medium",
    ) -> JupiterSwapResult:
        """Build an unsigned swap transaction for a fresh quote."""
        if not quote.quote_response:
            raise ProviderError("Quote response required for swap transaction", provider="jupiter")

        if not quote.is_valid:
            raise ProviderError("Quote has expired, please get a new quote", provider="jupiter")

        payload = {
            "quoteResponse": quote.quote_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": 10_000_000,  # 0.01 SOL max
                    "priorityLevel": priority_level,
                }
            },
        }

        client = await self._get_client()
        try:
            response = await client.post(f"{self.quote_url}/swap", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"Jupiter swap HTTP error: {e.response.status_code}", provider="jupiter") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Jupiter swap failed: {e}", provider="jupiter") from e

        if "error" in data or "swapTransaction" not in data:
            raise ProviderError(f"Jupiter swap error: {data.get('error', 'no transaction')}", provider="jupiter")

        return JupiterSwapResult(
            swap_transaction=data["swapTransaction"],
            last_valid_block_height=data.get("lastValidBlockHeight", 0),
            priority_fee_lamports=data.get("prioritizationFeeLamports", 0),
        )
