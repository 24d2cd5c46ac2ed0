"""Market VWAP benchmark estimated from interval volumes and quote mids.

Each volume interval is priced at the traded asset's quote mid nearest to
the interval midpoint. The running market VWAP at a fill covers every
interval overlapping [first fill time, fill time].
"""

import logging
from typing import Dict, Hashable

import numpy as np
import pandas as pd

from slipgauge.analytics.market_data import MarketData

logger = logging.getLogger(__name__)


def price_volume_intervals(intervals: pd.DataFrame, market: MarketData, symbol: Hashable) -> np.ndarray:
    """
    Reference price of each volume interval.

    Args:
        intervals: DataFrame with 'time_from', 'time_to'
        market: Quote access
        symbol: Asset the intervals belong to

    Returns:
        Array of mid prices nearest to each interval midpoint (NaN if the
        symbol has no quotes)
    """
    prices = np.full(len(intervals), np.nan)
    for i, (time_from, time_to) in enumerate(zip(intervals["time_from"], intervals["time_to"])):
        midpoint = time_from + (time_to - time_from) / 2
        mid = market.nearest_mid(symbol, midpoint)
        if mid is not None:
            prices[i] = mid
    return prices


def calculate_market_vwap(fills: pd.DataFrame, market: MarketData) -> pd.Series:
    """
    Running market VWAP at each fill.

    For a fill at t in an execution whose first fill is at t0, the intervals
    used are those with time_from <= t and time_to >= t0.

    Args:
        fills: Fill table with 'time', 'execution_name', 'asset'
        market: Quote and volume access

    Returns:
        Series aligned to `fills.index`; NaN where no interval overlaps the
        window or their total volume is zero

    Example:
        >>> vwap = calculate_market_vwap(fills_df, MarketData(quotes_df, volume_df))
    """
    result = pd.Series(np.nan, index=fills.index, name="market_vwap")
    priced: Dict[Hashable, tuple] = {}

    for execution_name, exec_fills in fills.groupby("execution_name", sort=False):
        window_start = exec_fills["time"].min()
        used = 0

        for idx, time, asset in zip(exec_fills.index, exec_fills["time"], exec_fills["asset"]):
            if asset not in priced:
                intervals = market.volume_intervals(asset)
                priced[asset] = (intervals, price_volume_intervals(intervals, market, asset))
            intervals, prices = priced[asset]
            if intervals.empty:
                continue

            overlaps = (
                (intervals["time_from"] <= time) & (intervals["time_to"] >= window_start)
            ).to_numpy() & ~np.isnan(prices)
            volumes = intervals["volume"].to_numpy(dtype=float)[overlaps]
            used = int(overlaps.sum())

            total_volume = volumes.sum()
            if total_volume == 0:
                continue

            result.at[idx] = (volumes * prices[overlaps]).sum() / total_volume

        logger.debug(f"Execution {execution_name}: {used} volume intervals in market VWAP window")

    return result


def execution_market_vwap(fills: pd.DataFrame, running_vwap: pd.Series) -> Dict[Hashable, float]:
    """
    Market VWAP over each execution's full window.

    Takes the last defined running value in fill order. Executions with no
    defined value are left out of the returned mapping.
    """
    vwaps = {}
    defined = running_vwap.notna()
    for execution_name, exec_fills in fills.groupby("execution_name", sort=False):
        values = running_vwap.loc[exec_fills.index][defined.loc[exec_fills.index]]
        if values.empty:
            logger.warning(f"Execution {execution_name}: no market volume overlaps the execution window")
            continue
        vwaps[execution_name] = float(values.iloc[-1])
    return vwaps
