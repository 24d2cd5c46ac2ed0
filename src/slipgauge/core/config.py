"""Configuration for a slippage calculation run."""

import math
from datetime import timedelta
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

# Canonical column names, per input table. Callers whose tables use other
# names map canonical -> actual through SlippageConfig.column_map.
CANONICAL_COLUMNS = (
    "time",
    "quantity",
    "price",
    "execution_name",
    "asset",
    "side",
    "desired_quantity",
    "arrival_price",
    "symbol",
    "bid_price",
    "ask_price",
    "time_from",
    "time_to",
    "volume",
    "peer",
    "weight",
    "volatility",
)


class SlippageConfig(BaseModel):
    """
    Scalar settings for one call to calculate_slippage.

    Attributes:
        num_peers: Number of peers to select by absolute correlation when
            deriving weights from a covariance matrix. None or "all" uses
            every other asset in the matrix.
        peer_return_truncation: Peer returns are clamped to this many
            volatilities. Use float("inf") to disable truncation.
        covariance_horizon: Horizon passed to the covariance matrix lookup.
            Should match the spacing of fills. None uses the matrix as quoted.
        column_map: Canonical column name -> name used in the caller's tables.

    Example:
        >>> config = SlippageConfig(
        ...     num_peers=4,
        ...     column_map={"execution_name": "order_id", "symbol": "ticker"},
        ... )
    """

    num_peers: Optional[Union[int, Literal["all"]]] = None
    peer_return_truncation: float = 2.0
    covariance_horizon: Optional[Union[timedelta, float]] = None
    column_map: Dict[str, str] = Field(default_factory=dict)

    @field_validator("num_peers")
    @classmethod
    def _check_num_peers(cls, v):
        if v == "all":
            return None
        if v is not None and v < 1:
            raise ValueError(f"num_peers must be at least 1, got {v}")
        return v

    @field_validator("peer_return_truncation")
    @classmethod
    def _check_truncation(cls, v: float) -> float:
        if math.isnan(v) or v <= 0:
            raise ValueError(f"peer_return_truncation must be positive, got {v}")
        return v

    @field_validator("column_map")
    @classmethod
    def _check_column_map(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(set(v) - set(CANONICAL_COLUMNS))
        if unknown:
            raise ValueError(f"column_map has unknown canonical columns: {unknown}")
        return v

    def column(self, canonical: str) -> str:
        """Name under which a canonical column appears in the input tables."""
        return self.column_map.get(canonical, canonical)

    @property
    def truncation_enabled(self) -> bool:
        return not math.isinf(self.peer_return_truncation)
