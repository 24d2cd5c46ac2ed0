"""Analytics module for execution slippage measurement."""

from slipgauge.analytics.market_data import MarketData
from slipgauge.analytics.peers import (
    CovarianceMatrix,
    calculate_peer_weights,
    correlation_matrix,
    resolve_peer_weights,
    select_peers,
    volatilities_from_covariance,
)
from slipgauge.analytics.counterfactual import (
    calculate_counterfactual_prices,
    truncate_return,
)
from slipgauge.analytics.market_vwap import (
    calculate_market_vwap,
    execution_market_vwap,
)
from slipgauge.analytics.slippage import (
    calculate_fill_vwap,
    calculate_slippage_fraction,
    calculate_vs_vwap_fraction,
    convert_fraction,
    spread_cross_proportion,
)
from slipgauge.analytics.results import (
    ExecutionMarkout,
    SlippageResult,
    execution_markout,
    get_slippage,
    refinement_comparison,
    slippage_statistics,
)
from slipgauge.analytics.engine import calculate_slippage

__all__ = [
    # Market data
    "MarketData",
    # Peers
    "CovarianceMatrix",
    "calculate_peer_weights",
    "correlation_matrix",
    "resolve_peer_weights",
    "select_peers",
    "volatilities_from_covariance",
    # Counterfactual
    "calculate_counterfactual_prices",
    "truncate_return",
    # Market VWAP
    "calculate_market_vwap",
    "execution_market_vwap",
    # Slippage primitives
    "calculate_fill_vwap",
    "calculate_slippage_fraction",
    "calculate_vs_vwap_fraction",
    "convert_fraction",
    "spread_cross_proportion",
    # Engine & results
    "calculate_slippage",
    "SlippageResult",
    "ExecutionMarkout",
    "execution_markout",
    "get_slippage",
    "refinement_comparison",
    "slippage_statistics",
]
