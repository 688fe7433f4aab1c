"""
Swap Executors

Fill a copied trade, either on paper at the oracle price (TEST) or on-chain
through Jupiter (REAL).
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Protocol

from .models import ExecutionResult
from ..errors import ExecutionError
from ..ledger import TradeDirection
from ...config import LAMPORTS_PER_SOL, NATIVE_MINT, TradingMode

if TYPE_CHECKING:
    from ...providers.base import PriceProvider
    from ...providers.jupiter import JupiterSwapProvider
    from ...providers.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)

# Takes an unsigned base64 transaction and returns it signed, base64 encoded
TransactionSigner = Callable[[str], Awaitable[str]]


class SwapExecutor(Protocol):
    async def execute_swap(
        self,
        asset_id: str,
        direction: TradeDirection,
        size_native: Decimal,
        mode: TradingMode,
    ) -> ExecutionResult:
        ...


class PaperSwapExecutor:
    """Simulated fills at the current oracle price. Nothing is sent on-chain."""

    def __init__(self, oracle: "PriceProvider"):
        self.oracle = oracle

    async def execute_swap(
        self,
        asset_id: str,
        direction: TradeDirection,
        size_native: Decimal,
        mode: TradingMode = TradingMode.TEST,
    ) -> ExecutionResult:
        price = await self.oracle.get_price(asset_id)
        if price is None or price <= 0:
            return ExecutionResult.failed(f"No price available for {asset_id[:8]}...")

        logger.info(f"Paper fill: {direction.value} {size_native} SOL of {asset_id[:8]}... at {price}")
        return ExecutionResult(
            success=True,
            fill_price=price,
            asset_amount=size_native / price,
            tx_signature=f"paper-{uuid.uuid4().hex[:16]}",
        )


class JupiterSwapExecutor:
    """
    On-chain fills through Jupiter.

    BUY spends `size_native` SOL (ExactIn); SELL sells tokens for exactly
    `size_native` SOL (ExactOut). The transaction is signed by the injected
    signer and sent over RPC. The recorded fill price is the oracle quote at
    submission time.
    """

    def __init__(
        self,
        swap_provider: "JupiterSwapProvider",
        rpc: "SolanaRpcClient",
        oracle: "PriceProvider",
        wallet: str,
        signer: Optional[TransactionSigner] = None,
        slippage_bps: int = 100,
    ):
        self.swap_provider = swap_provider
        self.rpc = rpc
        self.oracle = oracle
        self.wallet = wallet
        self.signer = signer
        self.slippage_bps = slippage_bps

    async def execute_swap(
        self,
        asset_id: str,
        direction: TradeDirection,
        size_native: Decimal,
        mode: TradingMode = TradingMode.REAL,
    ) -> ExecutionResult:
        if self.signer is None:
            return ExecutionResult.failed("no signer configured")

        lamports = int(size_native * LAMPORTS_PER_SOL)
        if direction == TradeDirection.BUY:
            input_mint, output_mint, swap_mode = NATIVE_MINT, asset_id, "ExactIn"
        else:
            input_mint, output_mint, swap_mode = asset_id, NATIVE_MINT, "ExactOut"

        try:
            quote = await self.swap_provider.get_swap_quote(
                input_mint=input_mint,
                output_mint=output_mint,
                amount=lamports,
                slippage_bps=self.slippage_bps,
                swap_mode=swap_mode,
            )
            swap = await self.swap_provider.build_swap_transaction(quote, user_public_key=self.wallet)
            signed = await self.signer(swap.swap_transaction)
            if not signed:
                raise ExecutionError("signer returned no transaction")
            tx_signature = await self.rpc.send_transaction(signed)
        except Exception as e:
            logger.error(f"Jupiter swap failed for {asset_id[:8]}...: {e}", exc_info=True)
            return ExecutionResult.failed(str(e))

        price = await self.oracle.get_price(asset_id)
        if price is None or price <= 0:
            # Sent but unpriced: the trade cannot be monitored without an entry
            return ExecutionResult(
                success=False,
                tx_signature=tx_signature,
                error_message=f"Swap sent ({tx_signature}) but no price available",
            )

        return ExecutionResult(
            success=True,
            fill_price=price,
            asset_amount=size_native / price,
            tx_signature=tx_signature,
        )


class ModeRoutingExecutor:
    """Routes each trade to the paper or the on-chain executor by its mode."""

    def __init__(self, paper: SwapExecutor, real: Optional[SwapExecutor] = None):
        self.paper = paper
        self.real = real

    async def execute_swap(
        self,
        asset_id: str,
        direction: TradeDirection,
        size_native: Decimal,
        mode: TradingMode,
    ) -> ExecutionResult:
        if mode == TradingMode.REAL:
            if self.real is None:
                return ExecutionResult.failed("REAL execution is not configured")
            return await self.real.execute_swap(asset_id, direction, size_native, mode)
        return await self.paper.execute_swap(asset_id, direction, size_native, mode)
