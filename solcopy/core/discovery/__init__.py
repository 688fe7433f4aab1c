"""Wallet discovery from transfers sent by watched accounts."""

from .engine import DiscoveryEngine
from .models import DiscoveredCandidate, DiscoveryStats, WalletAnalysis

__all__ = [
    "DiscoveryEngine",
    "DiscoveredCandidate",
    "DiscoveryStats",
    "WalletAnalysis",
]
