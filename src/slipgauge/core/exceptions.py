"""Exception hierarchy for slippage calculations."""


class SlippageError(Exception):
    """Base class for all fatal slippage calculation errors."""


class SchemaError(SlippageError):
    """An input table is missing a required column."""

    def __init__(self, table: str, column: str, alias: str):
        self.table = table
        self.column = column
        self.alias = alias
        super().__init__(
            f"{table} must have a column representing '{column}' named '{alias}'. "
            f"If it uses a different name, pass it through column_map."
        )


class ReferentialIntegrityError(SlippageError):
    """Input tables do not reference each other consistently."""


class SingularCovarianceError(SlippageError):
    """Peer covariance submatrix cannot be inverted."""


class UnknownUnitError(SlippageError, ValueError):
    """Requested output unit is not one of the supported units."""

    def __init__(self, unit, valid: tuple):
        self.unit = unit
        self.valid = valid
        super().__init__(
            f"unit must be one of {', '.join(valid)}, got '{unit}'"
        )
