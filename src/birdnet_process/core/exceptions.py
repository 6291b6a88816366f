"""Exception types raised by the aggregation core.

Empty results are never raised: operations that find nothing to aggregate
return ``None`` so callers can short-circuit.
"""


class BirdnetProcessError(Exception):
    """Base class for all package errors."""


class MissingColumnError(BirdnetProcessError, KeyError):
    """A required column is absent from the input table."""

    def __init__(self, column: str, source: str = "data"):
        self.column = column
        self.source = source
        super().__init__(f"Missing '{column}' column in {source}.")

    def __str__(self) -> str:
        # KeyError.__str__ would quote the whole message
        return self.args[0]


class InsufficientSpeciesError(BirdnetProcessError, ValueError):
    """Fewer than two species remain where a comparison across species is needed."""
