"""Slippage primitives for execution quality measurement.

Sign convention (all slippage fractions):
    - Negative = cost (unfavorable execution)
    - Positive = gain (favorable execution)

For buys, paying MORE than the benchmark is a cost.
For sells, receiving LESS than the benchmark is a cost.

Fractions are dimensionless price returns relative to the arrival price
and are converted to output units only at the very end.
"""

from typing import Union

import numpy as np

from slipgauge.core.exceptions import UnknownUnitError
from slipgauge.core.models import Side, SlippageUnit

ArrayLike = Union[np.ndarray, list, float]


def spread_cross_proportion(price: float, bid: float, ask: float, side: Union[Side, str]) -> float:
    """
    How favorably a fill priced within the prevailing spread.

    1.0 means the fill executed at the favorable touch (bid for a buy,
    ask for a sell), 0.0 at the unfavorable touch. Values are clamped to
    [0, 1]. A locked or crossed market (spread <= 0) scores 0.5.

    Examples:
        >>> spread_cross_proportion(100.5, bid=100.0, ask=101.0, side="buy")
        0.5
        >>> spread_cross_proportion(100.0, bid=100.0, ask=101.0, side="buy")
        1.0
        >>> spread_cross_proportion(101.0, bid=100.0, ask=101.0, side="sell")
        1.0
    """
    side = Side.parse(side)
    spread = ask - bid
    if spread <= 0:
        return 0.5

    if side is Side.BUY:
        proportion = (ask - price) / spread
    else:
        proportion = (price - bid) / spread

    return float(min(max(proportion, 0.0), 1.0))


def calculate_fill_vwap(prices: ArrayLike, quantities: ArrayLike) -> float:
    """Volume-weighted average fill price, NaN if total quantity is zero."""
    prices = np.asarray(prices, dtype=float)
    quantities = np.asarray(quantities, dtype=float)

    total_quantity = quantities.sum()
    if total_quantity == 0:
        return float("nan")
    return float((prices * quantities).sum() / total_quantity)


def calculate_slippage_fraction(
    prices: ArrayLike,
    quantities: ArrayLike,
    benchmarks: ArrayLike,
    arrival_price: float,
    side: Union[Side, str],
) -> float:
    """
    Quantity-weighted slippage of fills against per-fill benchmarks.

    slippage = side_sign * sum((price - benchmark) * quantity) / (total_qty * arrival_price)

    The denominator is always the arrival notional so that classical and
    refined slippage share a scale.

    Args:
        prices: Fill prices
        quantities: Fill quantities (positive)
        benchmarks: One benchmark per fill, or a scalar (e.g. arrival price)
        arrival_price: Arrival price of the execution
        side: 'buy' or 'sell'

    Returns:
        Slippage as a fraction. NaN if the arrival notional is zero.

    Examples:
        >>> # Buy: arrival 100, filled 100 @ 101 and 100 @ 102 -> -150 bps
        >>> calculate_slippage_fraction([101, 102], [100, 100], 100.0, 100.0, "buy")
        -0.015
    """
    side = Side.parse(side)
    prices = np.asarray(prices, dtype=float)
    quantities = np.asarray(quantities, dtype=float)
    benchmarks = np.broadcast_to(np.asarray(benchmarks, dtype=float), prices.shape)

    notional = quantities.sum() * arrival_price
    if notional == 0:
        return float("nan")

    return float(side.sign * ((prices - benchmarks) * quantities).sum() / notional)


def calculate_vs_vwap_fraction(
    fill_vwap: float,
    market_vwap: float,
    arrival_price: float,
    side: Union[Side, str],
) -> float:
    """
    Slippage of the execution's average price against the market VWAP.

    Normalized by arrival price, not by market VWAP, so it is comparable
    with classical slippage.
    """
    side = Side.parse(side)
    if arrival_price == 0:
        return float("nan")
    return float(side.sign * (fill_vwap - market_vwap) / arrival_price)


def parse_unit(unit: Union[SlippageUnit, str]) -> SlippageUnit:
    """Coerce a unit key, raising UnknownUnitError for anything unsupported."""
    try:
        return SlippageUnit(unit)
    except ValueError:
        raise UnknownUnitError(unit, tuple(u.value for u in SlippageUnit)) from None


def convert_fraction(
    fraction: ArrayLike,
    unit: Union[SlippageUnit, str],
    arrival_price: ArrayLike = 1.0,
    total_quantity: ArrayLike = 1.0,
):
    """
    Express a slippage fraction in an output unit.

    - bps: fraction * 10,000
    - pct: fraction * 100
    - usd: fraction * arrival_price * total_quantity

    Works elementwise on arrays and pandas Series.

    Examples:
        >>> convert_fraction(-0.015, "bps")
        -150.0
        >>> convert_fraction(-0.015, "usd", arrival_price=100.0, total_quantity=200)
        -300.0
    """
    unit = parse_unit(unit)
    if unit is SlippageUnit.BPS:
        return fraction * 10000
    if unit is SlippageUnit.PCT:
        return fraction * 100
    return fraction * arrival_price * total_quantity
