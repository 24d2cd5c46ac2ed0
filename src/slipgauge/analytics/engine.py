"""Slippage aggregation: fill-level annotation and per-execution summaries.

calculate_slippage is the single entry point. It validates every input
table, annotates each fill with its benchmarks, and aggregates fills into
one summary row per execution in bps, pct and usd.

Classical slippage and spread crossing are always computed. Refined
slippage (peer-adjusted counterfactual benchmark) and vs-VWAP slippage
(market VWAP benchmark) are separate calculators that only run when their
inputs are supplied; when skipped, their columns are simply absent.
"""

import logging
from typing import Dict, Hashable, List, Optional

import pandas as pd

from slipgauge.analytics.counterfactual import calculate_counterfactual_prices, peer_column_names
from slipgauge.analytics.market_data import MarketData
from slipgauge.analytics.market_vwap import calculate_market_vwap, execution_market_vwap
from slipgauge.analytics.peers import resolve_peer_weights, volatilities_from_covariance
from slipgauge.analytics.results import SlippageResult
from slipgauge.analytics.schema import normalize_table
from slipgauge.analytics.slippage import (
    calculate_fill_vwap,
    calculate_slippage_fraction,
    calculate_vs_vwap_fraction,
    convert_fraction,
    spread_cross_proportion,
)
from slipgauge.core.config import SlippageConfig
from slipgauge.core.exceptions import ReferentialIntegrityError
from slipgauge.core.models import Side, SlippageUnit

logger = logging.getLogger(__name__)

FILL_COLUMNS = [
    "time",
    "quantity",
    "price",
    "execution_name",
    "asset",
    "arrival_price",
    "side",
    "bid_price",
    "ask_price",
    "spread_cross",
]

SUMMARY_COLUMNS = [
    "execution_name",
    "side",
    "classical_slippage",
    "refined_slippage",
    "spread_cross_pct",
    "vs_vwap_slippage",
    "fill_vwap",
    "market_vwap",
    "total_quantity",
    "arrival_price",
]

# Fill-level columns added by the refined benchmark ahead of the peer columns
COUNTERFACTUAL_COLUMNS = ("counterfactual_return", "counterfactual_price")

# Summary columns holding slippage fractions, converted per output unit
SLIPPAGE_COLUMNS = ("classical_slippage", "refined_slippage", "vs_vwap_slippage")


class RefinedBenchmark:
    """Refined slippage against peer-adjusted counterfactual prices."""

    summary_columns = ("refined_slippage",)

    def __init__(
        self,
        market: MarketData,
        peers: pd.DataFrame,
        volatilities: Optional[pd.DataFrame],
        truncation: float,
    ):
        self.market = market
        self.peers = peers
        self.volatilities = volatilities
        self.truncation = truncation

        taken = set(FILL_COLUMNS) | set(COUNTERFACTUAL_COLUMNS) | set(VwapBenchmark.fill_columns)
        for peer in dict.fromkeys(peers["peer"]):
            for column in peer_column_names(peer):
                if column in taken:
                    raise ValueError(
                        f"peer '{peer}' would add column '{column}', which is already in use"
                    )
                taken.add(column)

    def annotate(self, fills: pd.DataFrame, arrival_prices: Dict[Hashable, float]) -> pd.DataFrame:
        counterfactual = calculate_counterfactual_prices(
            fills,
            arrival_prices,
            self.market,
            self.peers,
            volatilities=self.volatilities,
            truncation=self.truncation,
        )
        peer_columns = [
            col for peer in dict.fromkeys(self.peers["peer"]) for col in peer_column_names(peer)
        ]
        return counterfactual[list(COUNTERFACTUAL_COLUMNS) + peer_columns]

    def summarize(self, execution_name, exec_fills: pd.DataFrame, arrival_price: float, side: Side) -> dict:
        return {
            "refined_slippage": calculate_slippage_fraction(
                exec_fills["price"],
                exec_fills["quantity"],
                exec_fills["counterfactual_price"],
                arrival_price,
                side,
            )
        }


class VwapBenchmark:
    """Slippage of the average fill price against the market VWAP."""

    summary_columns = ("vs_vwap_slippage", "fill_vwap", "market_vwap")
    fill_columns = ("market_vwap",)

    def __init__(self, market: MarketData):
        self.market = market
        self._execution_vwaps: Dict[Hashable, float] = {}

    def annotate(self, fills: pd.DataFrame, arrival_prices: Dict[Hashable, float]) -> pd.DataFrame:
        running = calculate_market_vwap(fills, self.market)
        self._execution_vwaps = execution_market_vwap(fills, running)
        return running.to_frame()

    def summarize(self, execution_name, exec_fills: pd.DataFrame, arrival_price: float, side: Side) -> dict:
        market_vwap = self._execution_vwaps.get(execution_name)
        if market_vwap is None:
            return {}

        fill_vwap = calculate_fill_vwap(exec_fills["price"], exec_fills["quantity"])
        return {
            "vs_vwap_slippage": calculate_vs_vwap_fraction(fill_vwap, market_vwap, arrival_price, side),
            "fill_vwap": fill_vwap,
            "market_vwap": market_vwap,
        }


def _order_fills(fills: pd.DataFrame) -> pd.DataFrame:
    """Executions in first-appearance order, fills by time within each."""
    rank = {name: i for i, name in enumerate(pd.unique(fills["execution_name"]))}
    return (
        fills.assign(_execution_rank=fills["execution_name"].map(rank))
        .sort_values(["_execution_rank", "time"], kind="mergesort")
        .drop(columns="_execution_rank")
        .reset_index(drop=True)
    )


def _execution_lookup(metadata: pd.DataFrame, fills: pd.DataFrame) -> Dict[Hashable, tuple]:
    duplicated = metadata["execution_name"].duplicated()
    if duplicated.any():
        name = metadata.loc[duplicated, "execution_name"].iloc[0]
        raise ReferentialIntegrityError(f"execution '{name}' appears more than once in metadata")

    lookup = {
        name: (float(arrival), Side.parse(side))
        for name, arrival, side in zip(
            metadata["execution_name"], metadata["arrival_price"], metadata["side"]
        )
    }

    unknown = [name for name in pd.unique(fills["execution_name"]) if name not in lookup]
    if unknown:
        raise ReferentialIntegrityError(f"fills reference unknown executions: {unknown}")

    return lookup


def _annotate_spread(fills: pd.DataFrame, market: MarketData) -> pd.DataFrame:
    bids, asks, crosses = [], [], []
    for asset, time, price, side in zip(fills["asset"], fills["time"], fills["price"], fills["side"]):
        quote = market.quote_at(asset, time)
        if quote is None:
            logger.error(f"No quote for {asset} at fill time {time}")
            raise ReferentialIntegrityError(f"no quote for {asset} at fill time {time}")
        bids.append(quote.bid_price)
        asks.append(quote.ask_price)
        crosses.append(spread_cross_proportion(price, quote.bid_price, quote.ask_price, side))

    return fills.assign(bid_price=bids, ask_price=asks, spread_cross=crosses)


def calculate_slippage(
    fills: pd.DataFrame,
    metadata: pd.DataFrame,
    quotes: pd.DataFrame,
    volume: Optional[pd.DataFrame] = None,
    peers: Optional[pd.DataFrame] = None,
    volatilities: Optional[pd.DataFrame] = None,
    covariance=None,
    config: Optional[SlippageConfig] = None,
) -> SlippageResult:
    """
    Calculate classical, refined and vs-VWAP slippage for every execution.

    Args:
        fills: One row per fill: time, quantity, price, execution_name, asset
        metadata: One row per execution: execution_name, side,
            desired_quantity, arrival_price
        quotes: Top-of-book snapshots: time, symbol, bid_price, ask_price.
            Must hold a quote for every fill's asset at the exact fill time.
        volume: Optional interval volumes (time_from, time_to, symbol,
            volume). Enables vs-VWAP slippage.
        peers: Optional peer weights (execution_name, peer, weight). Enables
            refined slippage.
        volatilities: Optional (asset, volatility) used to truncate peer
            returns. Without it peer returns are not truncated.
        covariance: Optional covariance matrix (labels + covariance(horizon))
            from which peers and volatilities are derived. Mutually
            exclusive with `peers`.
        config: Run configuration; defaults to SlippageConfig()

    Returns:
        SlippageResult with the fill-level table and summaries per unit

    Raises:
        SchemaError: If an input table misses a required column
        ReferentialIntegrityError: If tables do not reference each other
            consistently or a fill has no exact-time quote
        SingularCovarianceError: If a peer covariance submatrix is singular
        ValueError: If both peers and covariance are given, a side is not
            'buy'/'sell', a fill quantity is not positive, or a peer label
            would produce a fill-level column name that is already taken

    Example:
        >>> result = calculate_slippage(fills_df, metadata_df, quotes_df, volume=volume_df)
        >>> result.get("bps")[["execution_name", "classical_slippage", "vs_vwap_slippage"]]
    """
    config = config or SlippageConfig()
    if peers is not None and covariance is not None:
        raise ValueError("pass either a peer table or a covariance matrix, not both")

    fills = normalize_table(fills, "fills", config)
    metadata = normalize_table(metadata, "metadata", config)
    quotes = normalize_table(quotes, "quotes", config)
    volume = normalize_table(volume, "volume", config)
    peers = normalize_table(peers, "peers", config)
    volatilities = normalize_table(volatilities, "volatilities", config)

    if (fills["quantity"] <= 0).any():
        raise ValueError("fill quantities must be positive")

    fills = _order_fills(fills)
    executions = _execution_lookup(metadata, fills)

    arrival_prices = {name: arrival for name, (arrival, _) in executions.items()}
    fills["arrival_price"] = fills["execution_name"].map(arrival_prices).astype(float)
    fills["side"] = fills["execution_name"].map(
        {name: side.value for name, (_, side) in executions.items()}
    )

    market = MarketData(quotes, volume)
    fills = _annotate_spread(fills, market)

    truncate = config.truncation_enabled
    if covariance is not None:
        peers = resolve_peer_weights(
            covariance, fills, config.num_peers, config.covariance_horizon
        )
        if volatilities is None:
            volatilities = volatilities_from_covariance(covariance, config.covariance_horizon)
    elif volatilities is None:
        truncate = False
    truncation = config.peer_return_truncation if truncate else float("inf")
    logger.debug(f"Peer return truncation: {truncation if truncate else 'off'}")

    benchmarks: List = []
    if peers is not None:
        benchmarks.append(RefinedBenchmark(market, peers, volatilities, truncation))
    if market.has_volume:
        benchmarks.append(VwapBenchmark(market))

    logger.info(
        f"Calculating slippage for {len(executions)} executions, {len(fills)} fills "
        f"(refined={'on' if peers is not None else 'off'}, "
        f"vwap={'on' if market.has_volume else 'off'})"
    )

    fill_level = fills[FILL_COLUMNS]
    for benchmark in benchmarks:
        fill_level = pd.concat([fill_level, benchmark.annotate(fill_level, arrival_prices)], axis=1)

    rows = []
    for execution_name, exec_fills in fill_level.groupby("execution_name", sort=False):
        arrival_price, side = executions[execution_name]
        total_quantity = float(exec_fills["quantity"].sum())

        row = {
            "execution_name": execution_name,
            "side": side.value,
            "classical_slippage": calculate_slippage_fraction(
                exec_fills["price"], exec_fills["quantity"], arrival_price, arrival_price, side
            ),
            "spread_cross_pct": float(
                (exec_fills["spread_cross"] * exec_fills["quantity"]).sum() / total_quantity
            ),
            "total_quantity": total_quantity,
            "arrival_price": arrival_price,
        }
        for benchmark in benchmarks:
            row.update(benchmark.summarize(execution_name, exec_fills, arrival_price, side))
        rows.append(row)

    active = {"execution_name", "side", "classical_slippage", "spread_cross_pct", "total_quantity", "arrival_price"}
    for benchmark in benchmarks:
        active.update(benchmark.summary_columns)
    summary_base = pd.DataFrame(rows, columns=[c for c in SUMMARY_COLUMNS if c in active])

    summary = {unit.value: _convert_summary(summary_base, unit) for unit in SlippageUnit}

    logger.info(f"Slippage calculated for {len(summary_base)} executions")

    return SlippageResult(
        fills=fill_level,
        summary=summary,
        peers=peers,
        volatilities=volatilities,
        quotes=quotes,
    )


def _convert_summary(summary_base: pd.DataFrame, unit: SlippageUnit) -> pd.DataFrame:
    converted = summary_base.copy()
    for column in SLIPPAGE_COLUMNS:
        if column in converted.columns:
            converted[column] = convert_fraction(
                summary_base[column].astype(float),
                unit,
                summary_base["arrival_price"],
                summary_base["total_quantity"],
            )
    return converted
