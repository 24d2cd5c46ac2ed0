"""Peer-adjusted counterfactual prices for refined slippage.

For an execution with arrival price p0 and first fill at t0, each fill at
time t gets

    counterfactual_price = p0 * exp(sum_peer w_peer * r_peer(t))
    r_peer(t) = ln(mid_peer(t) / mid_peer(t0))

optionally clamped to +/- truncation * vol_peer. The counterfactual price
strips out the part of the traded asset's move that its peers explain.

Missing data degrades gracefully:
    - no peer quote at t0: the peer contributes zero for the whole execution
    - no peer quote at t: the peer contributes zero for that fill only
"""

import logging
import math
from typing import Dict, Hashable, List, Optional

import numpy as np
import pandas as pd

from slipgauge.analytics.market_data import MarketData
from slipgauge.core.exceptions import ReferentialIntegrityError

logger = logging.getLogger(__name__)


def truncate_return(peer_return: float, volatility: Optional[float], truncation: float) -> float:
    """
    Clamp a peer return to [-truncation * vol, +truncation * vol].

    Returns the input unchanged when there is no volatility for the peer or
    truncation is infinite.

    Example:
        >>> truncate_return(0.05, volatility=0.01, truncation=2.0)
        0.02
    """
    if volatility is None or math.isinf(truncation):
        return peer_return
    bound = truncation * volatility
    return min(max(peer_return, -bound), bound)


def peer_column_names(peer: Hashable) -> tuple:
    """Fill-level column names holding a peer's mid price and return."""
    return f"{peer}_mid", f"{peer}_return"


def _volatility_lookup(volatilities: Optional[pd.DataFrame]) -> Dict[Hashable, float]:
    if volatilities is None:
        return {}
    lookup = {}
    for asset, vol in zip(volatilities["asset"], volatilities["volatility"]):
        if pd.notna(vol):
            lookup.setdefault(asset, float(vol))
    return lookup


def calculate_counterfactual_prices(
    fills: pd.DataFrame,
    arrival_prices: Dict[Hashable, float],
    market: MarketData,
    peers: pd.DataFrame,
    volatilities: Optional[pd.DataFrame] = None,
    truncation: float = float("inf"),
) -> pd.DataFrame:
    """
    Compute the counterfactual price of every fill.

    Args:
        fills: Fill table with 'time', 'execution_name' (canonical names)
        arrival_prices: Arrival price per execution name
        market: Quote access for peer mid prices
        peers: Peer table with 'execution_name', 'peer', 'weight'
        volatilities: Optional table with 'asset', 'volatility'; peers
            without an entry are not truncated
        truncation: Clamp multiplier; float("inf") disables truncation

    Returns:
        DataFrame aligned to `fills.index` with 'counterfactual_return',
        'counterfactual_price', and '<peer>_mid' / '<peer>_return' for every
        peer in order of first appearance in the peer table. Peer columns
        are NaN where the peer has no usable quote.

    Raises:
        ReferentialIntegrityError: If the peer table repeats an
            (execution, peer) pair
    """
    duplicated = peers.duplicated(subset=["execution_name", "peer"])
    if duplicated.any():
        first = peers.loc[duplicated].iloc[0]
        raise ReferentialIntegrityError(
            f"peer table lists peer '{first['peer']}' more than once "
            f"for execution '{first['execution_name']}'"
        )

    vols = _volatility_lookup(volatilities)
    all_peers: List[Hashable] = list(dict.fromkeys(peers["peer"]))

    out = pd.DataFrame(index=fills.index)
    out["counterfactual_return"] = 0.0
    for peer in all_peers:
        mid_col, return_col = peer_column_names(peer)
        out[mid_col] = np.nan
        out[return_col] = np.nan

    peers_by_execution = {
        name: list(zip(group["peer"], group["weight"].astype(float)))
        for name, group in peers.groupby("execution_name", sort=False)
    }

    for execution_name, exec_fills in fills.groupby("execution_name", sort=False):
        base_time = exec_fills["time"].min()

        base_prices = {}
        for peer, _ in peers_by_execution.get(execution_name, []):
            base = market.mid_at(peer, base_time)
            if base is None:
                logger.warning(
                    f"Execution {execution_name}: no quote for peer {peer} at first fill "
                    f"time {base_time}, peer ignored"
                )
            else:
                base_prices[peer] = base

        for idx, time in zip(exec_fills.index, exec_fills["time"]):
            counterfactual_return = 0.0
            for peer, weight in peers_by_execution.get(execution_name, []):
                mid_col, return_col = peer_column_names(peer)
                mid = market.mid_at(peer, time)
                if mid is None:
                    continue
                out.at[idx, mid_col] = mid
                if peer not in base_prices:
                    continue

                peer_return = truncate_return(
                    math.log(mid / base_prices[peer]), vols.get(peer), truncation
                )
                out.at[idx, return_col] = peer_return
                counterfactual_return += weight * peer_return

            out.at[idx, "counterfactual_return"] = counterfactual_return

    arrival = fills["execution_name"].map(arrival_prices).astype(float)
    out["counterfactual_price"] = arrival * np.exp(out["counterfactual_return"])

    return out
