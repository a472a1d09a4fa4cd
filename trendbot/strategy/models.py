"""Strategy data models — typed representations for bars, contexts and levels."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal, Optional


Direction = Literal["up", "down"]


class MarketContext(str, Enum):
    """Market regime produced by a context classifier.

    ``UNDEFINED`` means insufficient data or invalid inputs and is never
    tradable.
    """

    UNDEFINED = "undefined"
    TRENDING_UP = "trending_up"
    TRENDING_DOWN = "trending_down"
    RANGING = "ranging"

    @property
    def direction(self) -> Optional[Direction]:
        """``"up"`` / ``"down"`` for trending contexts, else ``None``."""
        if self is MarketContext.TRENDING_UP:
            return "up"
        if self is MarketContext.TRENDING_DOWN:
            return "down"
        return None


@dataclass(frozen=True)
class PriceBar:
    """A single closed OHLCV bar."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    def true_range(self, previous: Optional["PriceBar"] = None) -> float:
        """True range relative to *previous* (plain high-low without one)."""
        if previous is None:
            return self.high - self.low
        return max(
            self.high - self.low,
            abs(self.high - previous.close),
            abs(self.low - previous.close),
        )


@dataclass(frozen=True)
class FractalLevel:
    """A strict local extremum on the higher timeframe.

    ``direction`` is ``"up"`` for a high that beats its neighbours and
    ``"down"`` for a low beneath them.
    """

    direction: Direction
    price: float
    timestamp: datetime
    index: int


@dataclass(frozen=True)
class ReactionWaitState:
    """Bookkeeping between a level break and its confirmation."""

    direction: Direction
    breakout_close: float
    target_price: float
    negation_price: float
    wait_start: datetime


@dataclass(frozen=True)
class RiskParameters:
    """Per-trade risk settings."""

    risk_pct: float
    stop_loss_pips: float
    take_profit_pips: float
