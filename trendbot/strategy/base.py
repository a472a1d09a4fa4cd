"""Strategy protocols.

Defines the capabilities the engine selects by configuration: context
classification and signal confirmation.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from trendbot.strategy.models import MarketContext, PriceBar


@runtime_checkable
class ContextClassifier(Protocol):
    """Maps recent history to a ``MarketContext``."""

    name: str

    def classify(self, bars: Sequence[PriceBar]) -> MarketContext:
        """Classify the most recent bar of *bars* (oldest first)."""
        ...


@runtime_checkable
class SignalFilter(Protocol):
    """Confirms (or vetoes) a trending context before entry."""

    name: str

    def confirms(self, context: MarketContext, bars: Sequence[PriceBar]) -> bool:
        """Return True when the indicators agree with *context*."""
        ...
