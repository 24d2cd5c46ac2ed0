"""Unit tests for slippage primitives."""

import math

import numpy as np
import pandas as pd
import pytest

from slipgauge.analytics.slippage import (
    calculate_fill_vwap,
    calculate_slippage_fraction,
    calculate_vs_vwap_fraction,
    convert_fraction,
    parse_unit,
    spread_cross_proportion,
)
from slipgauge.core.exceptions import UnknownUnitError
from slipgauge.core.models import Side, SlippageUnit


# =============================================================================
# spread_cross_proportion Tests
# =============================================================================


class TestSpreadCrossProportion:
    """Tests for spread_cross_proportion function."""

    def test_buy_at_mid_is_half(self):
        """Buy at the mid of a 100/101 market scores 0.5."""
        assert spread_cross_proportion(100.5, bid=100.0, ask=101.0, side="buy") == 0.5

    def test_buy_at_bid_is_best(self):
        """Buy at the bid is the favorable touch."""
        assert spread_cross_proportion(100.0, bid=100.0, ask=101.0, side="buy") == 1.0

    def test_buy_at_ask_is_worst(self):
        """Buy at the ask is the unfavorable touch."""
        assert spread_cross_proportion(101.0, bid=100.0, ask=101.0, side="buy") == 0.0

    def test_sell_at_ask_is_best(self):
        """Sell at the ask is the favorable touch."""
        assert spread_cross_proportion(101.0, bid=100.0, ask=101.0, side="sell") == 1.0

    def test_sell_at_bid_is_worst(self):
        """Sell at the bid is the unfavorable touch."""
        assert spread_cross_proportion(100.0, bid=100.0, ask=101.0, side="sell") == 0.0

    def test_clamped_outside_spread(self):
        """Prices through the touch clamp to [0, 1]."""
        assert spread_cross_proportion(102.0, bid=100.0, ask=101.0, side="buy") == 0.0
        assert spread_cross_proportion(99.0, bid=100.0, ask=101.0, side="buy") == 1.0
        assert spread_cross_proportion(99.0, bid=100.0, ask=101.0, side="sell") == 0.0

    @pytest.mark.parametrize("side", ["buy", "sell"])
    @pytest.mark.parametrize("price", [95.0, 100.0, 105.0])
    def test_zero_spread_is_half(self, side, price):
        """Locked market scores 0.5 whatever the price or side."""
        assert spread_cross_proportion(price, bid=100.0, ask=100.0, side=side) == 0.5

    def test_crossed_market_is_half(self):
        """Crossed market (ask < bid) also scores 0.5."""
        assert spread_cross_proportion(100.0, bid=100.5, ask=100.0, side="buy") == 0.5

    def test_invalid_side_raises_value_error(self):
        """Invalid side parameter should raise ValueError."""
        with pytest.raises(ValueError, match="side must be 'buy' or 'sell'"):
            spread_cross_proportion(100.0, bid=99.0, ask=101.0, side="hold")


# =============================================================================
# calculate_slippage_fraction Tests
# =============================================================================


class TestCalculateSlippageFraction:
    """Tests for calculate_slippage_fraction function."""

    def test_buy_paid_more_is_negative(self):
        """Buy: arrival 100, fills at 101 and 102 -> -150 bps."""
        # -1 * ((1 * 100) + (2 * 100)) / (200 * 100) = -0.015
        fraction = calculate_slippage_fraction([101.0, 102.0], [100, 100], 100.0, 100.0, "buy")

        assert fraction == pytest.approx(-0.015)

    def test_sell_received_less_is_negative(self):
        """Sell: arrival 100, fills at 99 and 98 -> -150 bps."""
        fraction = calculate_slippage_fraction([99.0, 98.0], [100, 100], 100.0, 100.0, "sell")

        assert fraction == pytest.approx(-0.015)

    def test_side_swap_negates(self):
        """Same fills, opposite side -> exactly negated slippage."""
        prices = [100.3, 99.1, 101.7]
        quantities = [50, 120, 30]

        buy = calculate_slippage_fraction(prices, quantities, 100.0, 100.0, "buy")
        sell = calculate_slippage_fraction(prices, quantities, 100.0, 100.0, "sell")

        assert buy == -sell

    def test_per_fill_benchmarks(self):
        """Per-fill benchmarks replace the arrival price in the numerator only."""
        # Benchmarks track prices exactly -> zero slippage
        fraction = calculate_slippage_fraction(
            [101.0, 102.0], [100, 100], [101.0, 102.0], 100.0, Side.BUY
        )

        assert fraction == 0.0

    def test_quantity_weighting(self):
        """Larger fills dominate the result."""
        # -1 * ((1 * 300) + (3 * 100)) / (400 * 100) = -0.015
        fraction = calculate_slippage_fraction([101.0, 103.0], [300, 100], 100.0, 100.0, "buy")

        assert fraction == pytest.approx(-0.015)

    def test_zero_notional_returns_nan(self):
        """Zero arrival price leaves slippage undefined."""
        fraction = calculate_slippage_fraction([1.0], [10], 0.0, 0.0, "buy")

        assert math.isnan(fraction)

    def test_accepts_series(self):
        """pandas Series inputs work like lists."""
        fraction = calculate_slippage_fraction(
            pd.Series([101.0, 102.0]), pd.Series([100, 100]), 100.0, 100.0, "buy"
        )

        assert fraction == pytest.approx(-0.015)


# =============================================================================
# VWAP helpers Tests
# =============================================================================


class TestFillVwap:
    """Tests for calculate_fill_vwap and calculate_vs_vwap_fraction."""

    def test_fill_vwap_weighted(self):
        """[100, 200] with quantities [10, 20] -> 166.67."""
        assert calculate_fill_vwap([100.0, 200.0], [10, 20]) == pytest.approx(166.6666666667)

    def test_fill_vwap_zero_quantity_nan(self):
        """Zero total quantity returns NaN."""
        assert np.isnan(calculate_fill_vwap([100.0], [0]))

    def test_vs_vwap_buy_above_market_is_negative(self):
        """Buying above market VWAP is a cost."""
        # -1 * (101.5 - 101.0) / 100 = -0.005
        assert calculate_vs_vwap_fraction(101.5, 101.0, 100.0, "buy") == pytest.approx(-0.005)

    def test_vs_vwap_sell_below_market_is_negative(self):
        """Selling below market VWAP is a cost."""
        assert calculate_vs_vwap_fraction(99.5, 101.0, 100.0, "sell") == pytest.approx(-0.015)


# =============================================================================
# Unit conversion Tests
# =============================================================================


class TestConvertFraction:
    """Tests for convert_fraction and parse_unit."""

    def test_bps(self):
        assert convert_fraction(-0.015, "bps") == pytest.approx(-150.0)

    def test_pct(self):
        assert convert_fraction(-0.015, SlippageUnit.PCT) == pytest.approx(-1.5)

    def test_usd(self):
        """usd scales by arrival notional."""
        assert convert_fraction(-0.015, "usd", arrival_price=100.0, total_quantity=200) == pytest.approx(-300.0)

    def test_series(self):
        """Elementwise on Series."""
        converted = convert_fraction(
            pd.Series([0.01, -0.02]), "usd", pd.Series([10.0, 20.0]), pd.Series([5.0, 1.0])
        )

        assert converted.tolist() == pytest.approx([0.5, -0.4])

    def test_unknown_unit_lists_valid_set(self):
        """Unknown unit raises and names the valid units."""
        with pytest.raises(UnknownUnitError, match="bps, pct, usd"):
            parse_unit("eur")

    def test_unknown_unit_is_value_error(self):
        """UnknownUnitError can be caught as ValueError."""
        with pytest.raises(ValueError):
            convert_fraction(0.01, "bp")
