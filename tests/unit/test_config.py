"""Unit tests for SlippageConfig and input schema handling."""

import math
from datetime import timedelta

import pandas as pd
import pytest
from pydantic import ValidationError

from slipgauge.analytics.schema import normalize_table, validate_columns
from slipgauge.core.config import SlippageConfig
from slipgauge.core.exceptions import SchemaError


class TestSlippageConfig:
    """Tests for SlippageConfig."""

    def test_defaults(self):
        config = SlippageConfig()

        assert config.num_peers is None
        assert config.peer_return_truncation == 2.0
        assert config.covariance_horizon is None
        assert config.column_map == {}
        assert config.truncation_enabled is True

    def test_all_peers_keyword(self):
        assert SlippageConfig(num_peers="all").num_peers is None

    def test_num_peers_must_be_positive(self):
        with pytest.raises(ValidationError):
            SlippageConfig(num_peers=0)

    def test_infinite_truncation(self):
        config = SlippageConfig(peer_return_truncation=math.inf)

        assert config.truncation_enabled is False

    @pytest.mark.parametrize("value", [0.0, -1.0, float("nan")])
    def test_truncation_must_be_positive(self, value):
        with pytest.raises(ValidationError):
            SlippageConfig(peer_return_truncation=value)

    def test_horizon_accepts_timedelta(self):
        config = SlippageConfig(covariance_horizon=timedelta(minutes=5))

        assert config.covariance_horizon == timedelta(minutes=5)

    def test_unknown_column_map_key(self):
        with pytest.raises(ValidationError, match="unknown canonical columns"):
            SlippageConfig(column_map={"ticker": "symbol"})

    def test_column_lookup(self):
        config = SlippageConfig(column_map={"symbol": "ticker"})

        assert config.column("symbol") == "ticker"
        assert config.column("time") == "time"


class TestSchema:
    """Tests for validate_columns and normalize_table."""

    def test_missing_column(self):
        quotes = pd.DataFrame({"time": [1.0], "symbol": ["A"], "bid_price": [1.0]})

        with pytest.raises(SchemaError, match="ask_price") as exc_info:
            validate_columns(quotes, "quotes", SlippageConfig())

        assert exc_info.value.table == "quotes"
        assert exc_info.value.column == "ask_price"

    def test_error_names_alias(self):
        quotes = pd.DataFrame({"time": [1.0], "symbol": ["A"], "bid_price": [1.0], "ask_price": [2.0]})
        config = SlippageConfig(column_map={"symbol": "ticker"})

        with pytest.raises(SchemaError, match="'ticker'"):
            validate_columns(quotes, "quotes", config)

    def test_normalize_renames_and_copies(self):
        quotes = pd.DataFrame({"ts": [1.0], "symbol": ["A"], "bid_price": [1.0], "ask_price": [2.0]})
        config = SlippageConfig(column_map={"time": "ts"})

        out = normalize_table(quotes, "quotes", config)

        assert list(out.columns) == ["time", "symbol", "bid_price", "ask_price"]
        assert "ts" in quotes.columns

    def test_normalize_drops_shadowed_column(self):
        """A stray column already named like the canonical target is replaced."""
        quotes = pd.DataFrame(
            {"time": ["junk"], "ts": [1.0], "symbol": ["A"], "bid_price": [1.0], "ask_price": [2.0]}
        )
        config = SlippageConfig(column_map={"time": "ts"})

        out = normalize_table(quotes, "quotes", config)

        assert out["time"].tolist() == [1.0]

    def test_optional_table_none(self):
        assert normalize_table(None, "volume", SlippageConfig()) is None

    def test_extra_columns_kept(self):
        vols = pd.DataFrame({"asset": ["A"], "volatility": [0.1], "source": ["x"]})

        out = normalize_table(vols, "volatilities", SlippageConfig())

        assert "source" in out.columns
