"""Column contracts for the input tables.

Every table is validated and renamed to canonical column names before any
computation starts, so the rest of the package only deals with canonical
names.
"""

import logging
from typing import Dict, Optional, Tuple

import pandas as pd

from slipgauge.core.config import SlippageConfig
from slipgauge.core.exceptions import SchemaError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "fills": ("time", "quantity", "price", "execution_name", "asset"),
    "metadata": ("execution_name", "side", "desired_quantity", "arrival_price"),
    "quotes": ("time", "symbol", "bid_price", "ask_price"),
    "volume": ("time_from", "time_to", "symbol", "volume"),
    "peers": ("execution_name", "peer", "weight"),
    "volatilities": ("asset", "volatility"),
}


def validate_columns(df: pd.DataFrame, table: str, config: SlippageConfig) -> None:
    """
    Check that a table carries every column its contract requires.

    Args:
        df: Input table
        table: Contract name (key of REQUIRED_COLUMNS)
        config: Run configuration holding the column name mapping

    Raises:
        SchemaError: On the first missing column, naming table and column
    """
    for column in REQUIRED_COLUMNS[table]:
        alias = config.column(column)
        if alias not in df.columns:
            raise SchemaError(table, column, alias)


def normalize_table(
    df: Optional[pd.DataFrame], table: str, config: SlippageConfig
) -> Optional[pd.DataFrame]:
    """
    Validate a table and return a copy that uses canonical column names.

    Optional tables pass through as None.
    """
    if df is None:
        return None

    validate_columns(df, table, config)

    renames = {
        config.column(column): column
        for column in REQUIRED_COLUMNS[table]
        if config.column(column) != column
    }
    # A stray column already holding a canonical name would collide with the rename
    shadowed = [c for c in renames.values() if c in df.columns]
    out = df.drop(columns=shadowed).rename(columns=renames)

    logger.debug(f"Validated {table}: {len(out)} rows, renamed {renames or 'nothing'}")
    return out
