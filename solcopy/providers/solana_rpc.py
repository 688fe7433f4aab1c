"""
Solana HTTP JSON-RPC client.

Balance and signature lookups for discovery risk checks, and
sendTransaction for REAL fills.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import ChainDataProvider
from ..core.errors import ProviderError

logger = logging.getLogger(__name__)


class SolanaRpcClient(ChainDataProvider):
    """
    Minimal JSON-RPC client.

    Usage:
        rpc = SolanaRpcClient("https://api.mainnet-beta.solana.com")
        lamports = await rpc.get_balance(address)
        signatures = await rpc.get_signatures_for_address(address, limit=10)
    """

    name = "solana-rpc"

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        timeout_s: float = 20.0,
        max_retries: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self._client = client
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "RPC URL not configured"}
        try:
            await self._rpc_call("getHealth", [])
            return {"status": "healthy"}
        except ProviderError as e:
            return {"status": "error", "reason": str(e)}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Call an RPC method and return its `result`. Transport errors are retried."""
        client = await self._get_client()
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        for attempt in range(self.max_retries):
            try:
                response = await client.post(
                    self.rpc_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                if attempt == self.max_retries - 1:
                    raise ProviderError(f"HTTP error: {e.response.status_code}", provider=self.name) from e
                await asyncio.sleep(0.5 * (attempt + 1))
                continue
            except (httpx.HTTPError, ValueError) as e:
                if attempt == self.max_retries - 1:
                    raise ProviderError(f"{method} failed: {e}", provider=self.name) from e
                await asyncio.sleep(0.5 * (attempt + 1))
                continue

            if "error" in data:
                error = data["error"]
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                raise ProviderError(f"RPC error: {message}", provider=self.name)
            return data.get("result")

        raise ProviderError("Max retries exceeded", provider=self.name)

    async def get_balance(self, address: str) -> int:
        result = await self._rpc_call("getBalance", [address, {"commitment": self.commitment}])
        if isinstance(result, dict):
            return int(result.get("value", 0))
        return int(result or 0)

    async def get_signatures_for_address(self, address: str, limit: int = 10) -> List[Dict[str, Any]]:
        result = await self._rpc_call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self.commitment}],
        )
        return list(result or [])

    async def send_transaction(self, signed_transaction: str, skip_preflight: bool = False) -> str:
        """
        Send a signed, base64 encoded transaction.

        Returns:
            The transaction signature (base58)
        """
        options = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": self.commitment,
            "maxRetries": self.max_retries,
        }
        signature = await self._rpc_call("sendTransaction", [signed_transaction, options])
        if not signature:
            raise ProviderError("No signature returned from sendTransaction", provider=self.name)
        logger.info(f"Transaction sent: {signature}")
        return signature
