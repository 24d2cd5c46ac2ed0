"""Execution slippage analytics: classical, peer-refined and vs-VWAP."""

from slipgauge.analytics import (
    CovarianceMatrix,
    SlippageResult,
    calculate_slippage,
    get_slippage,
)
from slipgauge.core.config import SlippageConfig

__all__ = [
    "CovarianceMatrix",
    "SlippageConfig",
    "SlippageResult",
    "calculate_slippage",
    "get_slippage",
]
