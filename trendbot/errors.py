"""Error taxonomy for the decision engine.

Every error is also a ``ValueError`` so callers that only guard against bad
inputs keep working.  Insufficient data is not an error: classifiers return
``MarketContext.UNDEFINED`` instead.
"""


class TrendBotError(ValueError):
    """Base class for all engine errors."""


class InvalidInputError(TrendBotError):
    """A bar arrived out of chronological order."""


class InvalidConfigError(TrendBotError):
    """A parameter or symbol attribute is out of its valid range."""


class SizingError(TrendBotError):
    """The position sizer could not produce a tradable volume."""


class InvalidRiskError(SizingError):
    """Risk inputs (balance, risk %, risk per unit) are unusable."""


class UnaffordableError(SizingError):
    """The minimum tradable volume would exceed the risk budget."""
