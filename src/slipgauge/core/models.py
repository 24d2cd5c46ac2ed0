"""Core data models for execution slippage analysis."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, computed_field


class Side(str, Enum):
    """Trade side."""

    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Any) -> "Side":
        """Coerce a raw metadata value into a Side."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"side must be 'buy' or 'sell', got '{value}'") from None

    @property
    def sign(self) -> int:
        """Multiplier that makes unfavorable execution negative.

        Buys lose when the realized price is above the benchmark, sells when
        it is below, so buys carry -1 and sells +1.
        """
        return -1 if self is Side.BUY else 1


class SlippageUnit(str, Enum):
    """Output units for summary tables."""

    BPS = "bps"
    PCT = "pct"
    USD = "usd"


class QuoteSnapshot(BaseModel):
    """Top-of-book quote for one symbol at one instant."""

    symbol: Any
    time: Any  # numeric clock or timestamp, whatever the input tables use
    bid_price: float
    ask_price: float

    @computed_field
    @property
    def mid_price(self) -> float:
        """Mid price between best bid and ask."""
        return (self.bid_price + self.ask_price) / 2
