"""Slippage result container and data helpers for reporting and charts.

Provides:
- SlippageResult: Fill-level table plus summaries per output unit
- get_slippage: Summary lookup by unit
- slippage_statistics: Cross-execution statistics per metric
- refinement_comparison: How refined slippage compares to classical
- execution_markout: Price lines and cumulative slippage path of one execution

These produce plain DataFrames and dicts; formatting and rendering are left
to the caller.
"""

from dataclasses import dataclass
from typing import Dict, Hashable, Optional, Union

import numpy as np
import pandas as pd

from slipgauge.analytics.slippage import parse_unit
from slipgauge.core.models import Side, SlippageUnit

STATISTIC_METRICS = (
    "classical_slippage",
    "refined_slippage",
    "vs_vwap_slippage",
    "spread_cross_pct",
)


@dataclass(frozen=True)
class SlippageResult:
    """Output of one slippage calculation.

    Attributes:
        fills: One row per fill with arrival price, side, bid/ask and
            spread crossing, plus counterfactual and peer columns when peers
            were used and 'market_vwap' when volume was supplied
        summary: Unit ('bps', 'pct', 'usd') -> one row per execution
        peers: Peer table used for refined slippage, or None
        volatilities: Volatility table used for truncation, or None
        quotes: Quote table the fills were matched against, or None
    """

    fills: pd.DataFrame
    summary: Dict[str, pd.DataFrame]
    peers: Optional[pd.DataFrame] = None
    volatilities: Optional[pd.DataFrame] = None
    quotes: Optional[pd.DataFrame] = None

    @property
    def has_refined(self) -> bool:
        """True if refined slippage was calculated."""
        return "counterfactual_price" in self.fills.columns

    @property
    def has_vwap(self) -> bool:
        """True if market VWAP was estimated."""
        return "market_vwap" in self.fills.columns

    def get(self, unit: Union[SlippageUnit, str] = SlippageUnit.BPS) -> pd.DataFrame:
        """Summary in the requested unit. See get_slippage."""
        return get_slippage(self, unit)


def get_slippage(result: SlippageResult, unit: Union[SlippageUnit, str] = SlippageUnit.BPS) -> pd.DataFrame:
    """
    Retrieve the slippage summary in one unit.

    Args:
        result: Output of calculate_slippage
        unit: 'bps' (basis points), 'pct' (percent) or 'usd' (currency)

    Returns:
        Summary DataFrame, one row per execution

    Raises:
        UnknownUnitError: If unit is not one of bps, pct, usd
    """
    return result.summary[parse_unit(unit).value]


def slippage_statistics(
    result: SlippageResult, unit: Union[SlippageUnit, str] = SlippageUnit.BPS
) -> pd.DataFrame:
    """
    Mean and dispersion of each metric across executions.

    Only metrics present in the summary are reported. spread_cross_pct is
    a proportion and is never unit-converted.

    Returns:
        DataFrame indexed by metric with columns count, mean, std, variance
        (sample statistics, ddof=1; NaN rows are ignored)
    """
    summary = get_slippage(result, unit)
    rows = []
    for metric in STATISTIC_METRICS:
        if metric not in summary.columns:
            continue
        values = summary[metric].dropna().astype(float)
        rows.append(
            {
                "metric": metric,
                "count": int(len(values)),
                "mean": float(values.mean()) if len(values) else float("nan"),
                "std": float(values.std()) if len(values) > 1 else float("nan"),
                "variance": float(values.var()) if len(values) > 1 else float("nan"),
            }
        )
    return pd.DataFrame(rows, columns=["metric", "count", "mean", "std", "variance"]).set_index("metric")


def refinement_comparison(
    result: SlippageResult, unit: Union[SlippageUnit, str] = SlippageUnit.BPS
) -> Dict[str, float]:
    """
    Compare refined against classical slippage across executions.

    Returns:
        Dict with:
        - mean_difference: mean(refined) - mean(classical)
        - std_reduction_pct: (1 - std(refined) / std(classical)) * 100,
          NaN when classical slippage has no dispersion

    Raises:
        ValueError: If the result has no refined slippage
    """
    if not result.has_refined:
        raise ValueError("result has no refined slippage; supply peers or a covariance matrix")

    stats = slippage_statistics(result, unit)
    classical = stats.loc["classical_slippage"]
    refined = stats.loc["refined_slippage"]

    if np.isnan(classical["std"]) or classical["std"] == 0:
        std_reduction = float("nan")
    else:
        std_reduction = (1 - refined["std"] / classical["std"]) * 100

    return {
        "mean_difference": float(refined["mean"] - classical["mean"]),
        "std_reduction_pct": float(std_reduction),
    }


@dataclass(frozen=True)
class ExecutionMarkout:
    """Chart data for one execution.

    Attributes:
        prices: Long-format price lines with columns time, price, series.
            Series are 'bid', 'ask' and 'arrival_price' at every quote in the
            window, plus 'counterfactual_price' at each fill when available.
        fills: One row per fill with time, price, quantity
        slippage: Cumulative slippage in bps after each fill, long format
            with columns time, slippage_bps, type ('classical', 'refined')
    """

    prices: pd.DataFrame
    fills: pd.DataFrame
    slippage: pd.DataFrame


def execution_markout(
    result: SlippageResult,
    execution_name: Hashable,
    window_before=None,
    window_after=None,
) -> ExecutionMarkout:
    """
    Price and cumulative slippage paths of one execution.

    The price window runs from the first fill time minus `window_before` to
    the last fill time plus `window_after`. Windows use the same time units
    as the input tables (a number or a pd.Timedelta); None means no padding.

    Args:
        result: Output of calculate_slippage
        execution_name: Execution to chart
        window_before: Padding before the first fill
        window_after: Padding after the last fill

    Returns:
        ExecutionMarkout with price lines, fill points and slippage paths

    Raises:
        KeyError: If the execution is not in the result

    Example:
        >>> markout = execution_markout(result, "order-1", window_before=60, window_after=60)
        >>> for name, group in markout.slippage.groupby("type"):
        ...     plt.plot(group["time"], group["slippage_bps"], label=name)
    """
    fills = result.fills[result.fills["execution_name"] == execution_name]
    if fills.empty:
        raise KeyError(f"execution '{execution_name}' not found in result")

    return ExecutionMarkout(
        prices=_price_lines(result, fills, window_before, window_after),
        fills=fills[["time", "price", "quantity"]].reset_index(drop=True),
        slippage=_cumulative_slippage(result, fills),
    )


def _price_lines(result: SlippageResult, fills: pd.DataFrame, window_before, window_after) -> pd.DataFrame:
    time_start = fills["time"].min()
    time_end = fills["time"].max()
    if window_before is not None:
        time_start = time_start - window_before
    if window_after is not None:
        time_end = time_end + window_after

    arrival_price = float(fills["arrival_price"].iloc[0])
    frames = []
    if result.quotes is not None:
        quotes = result.quotes[
            (result.quotes["symbol"] == fills["asset"].iloc[0])
            & (result.quotes["time"] >= time_start)
            & (result.quotes["time"] <= time_end)
        ].sort_values("time", kind="mergesort")
        for series, prices in (
            ("bid", quotes["bid_price"].to_numpy(dtype=float)),
            ("ask", quotes["ask_price"].to_numpy(dtype=float)),
            ("arrival_price", np.full(len(quotes), arrival_price)),
        ):
            frames.append(
                pd.DataFrame({"time": quotes["time"].to_numpy(), "price": prices, "series": series})
            )

    if result.has_refined:
        frames.append(
            pd.DataFrame(
                {
                    "time": fills["time"].to_numpy(),
                    "price": fills["counterfactual_price"].to_numpy(dtype=float),
                    "series": "counterfactual_price",
                }
            )
        )

    if not frames:
        return pd.DataFrame(columns=["time", "price", "series"])
    return pd.concat(frames, ignore_index=True)


def _cumulative_slippage(result: SlippageResult, fills: pd.DataFrame) -> pd.DataFrame:
    arrival_price = float(fills["arrival_price"].iloc[0])
    sign = Side.parse(fills["side"].iloc[0]).sign
    cumulative_notional = fills["quantity"].cumsum().to_numpy(dtype=float) * arrival_price

    benchmarks = {"classical": np.full(len(fills), arrival_price)}
    if result.has_refined:
        benchmarks["refined"] = fills["counterfactual_price"].to_numpy(dtype=float)

    frames = []
    for kind, benchmark in benchmarks.items():
        cumulative_cost = np.cumsum(
            (fills["price"].to_numpy(dtype=float) - benchmark) * fills["quantity"].to_numpy(dtype=float)
        )
        frames.append(
            pd.DataFrame(
                {
                    "time": fills["time"].to_numpy(),
                    "slippage_bps": sign * cumulative_cost / cumulative_notional * 10000,
                    "type": kind,
                }
            )
        )

    return pd.concat(frames, ignore_index=True)
