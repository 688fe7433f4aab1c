"""
Copy Trading Module

Replicates swaps from watched accounts with fixed size and TP/SL exits.
"""

from .models import ExecutionResult
from .executor import (
    JupiterSwapExecutor,
    ModeRoutingExecutor,
    PaperSwapExecutor,
    SwapExecutor,
)
from .monitor import ExitMonitor, compute_pnl, evaluate
from .engine import CopyEngine

__all__ = [
    # Models
    "ExecutionResult",
    # Executors
    "SwapExecutor",
    "PaperSwapExecutor",
    "JupiterSwapExecutor",
    "ModeRoutingExecutor",
    # Exit monitoring
    "ExitMonitor",
    "evaluate",
    "compute_pnl",
    # Engine
    "CopyEngine",
]
