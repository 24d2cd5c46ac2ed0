"""Read-only access to top-of-book quotes and interval volumes.

Lookups are exact-match on (symbol, time) except for nearest_mid, which is
used only to price volume intervals. Quotes sharing a (symbol, time) key
resolve to the first snapshot in input order.
"""

from typing import Any, Dict, Hashable, Optional, Tuple

import numpy as np
import pandas as pd

from slipgauge.core.models import QuoteSnapshot


class MarketData:
    """
    Indexed view over quote snapshots and (optionally) volume intervals.

    Args:
        quotes: DataFrame with 'time', 'symbol', 'bid_price', 'ask_price'
        volume: Optional DataFrame with 'time_from', 'time_to', 'symbol', 'volume'

    Example:
        >>> market = MarketData(quotes_df)
        >>> market.mid_at("AAPL", 1.0)
        100.5
    """

    def __init__(self, quotes: pd.DataFrame, volume: Optional[pd.DataFrame] = None):
        ordered = quotes.sort_values(["symbol", "time"], kind="mergesort")

        self._quotes: Dict[Tuple[Hashable, Any], QuoteSnapshot] = {}
        for symbol, time, bid, ask in zip(
            ordered["symbol"], ordered["time"], ordered["bid_price"], ordered["ask_price"]
        ):
            if (symbol, time) not in self._quotes:
                self._quotes[(symbol, time)] = QuoteSnapshot(
                    symbol=symbol, time=time, bid_price=float(bid), ask_price=float(ask)
                )

        self._times: Dict[Hashable, pd.Index] = {}
        self._mids: Dict[Hashable, np.ndarray] = {}
        for symbol, group in ordered.groupby("symbol", sort=False):
            self._times[symbol] = pd.Index(group["time"])
            self._mids[symbol] = (
                (group["bid_price"] + group["ask_price"]) / 2
            ).to_numpy(dtype=float)

        self._volume: Dict[Hashable, pd.DataFrame] = {}
        if volume is not None:
            ordered_volume = volume.sort_values(["symbol", "time_from"], kind="mergesort")
            for symbol, group in ordered_volume.groupby("symbol", sort=False):
                self._volume[symbol] = group.reset_index(drop=True)
        self._has_volume = volume is not None

    @property
    def has_volume(self) -> bool:
        """True if a volume table was supplied (even an empty one)."""
        return self._has_volume

    def quote_at(self, symbol: Hashable, time: Any) -> Optional[QuoteSnapshot]:
        """Quote snapshot at exactly `time`, or None."""
        return self._quotes.get((symbol, time))

    def mid_at(self, symbol: Hashable, time: Any) -> Optional[float]:
        """Mid price at exactly `time`, or None."""
        quote = self._quotes.get((symbol, time))
        if quote is None:
            return None
        return quote.mid_price

    def nearest_mid(self, symbol: Hashable, time: Any) -> Optional[float]:
        """
        Mid price of the snapshot nearest in time to `time`.

        Distance is absolute time difference. On a tie the earlier snapshot
        wins, and among snapshots sharing a timestamp the first in input
        order wins.

        Returns:
            Mid price, or None if the symbol has no quotes at all
        """
        times = self._times.get(symbol)
        if times is None or len(times) == 0:
            return None

        pos = times.searchsorted(time, side="left")
        if pos == 0:
            chosen = times[0]
        elif pos == len(times):
            chosen = times[-1]
        else:
            before, after = times[pos - 1], times[pos]
            chosen = before if abs(time - before) <= abs(after - time) else after

        first = times.searchsorted(chosen, side="left")
        return float(self._mids[symbol][first])

    def volume_intervals(self, symbol: Hashable) -> pd.DataFrame:
        """Volume intervals for a symbol ordered by start time (may be empty)."""
        intervals = self._volume.get(symbol)
        if intervals is None:
            return pd.DataFrame(columns=["time_from", "time_to", "symbol", "volume"])
        return intervals
