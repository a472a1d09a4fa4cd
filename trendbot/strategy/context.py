"""Market context detection — regime classification from recent bars.

Provides two interchangeable classifiers:
- ``ChannelSlopeClassifier``: Keltner channel around an EMA of typical
  price, combined with the slope of that EMA.
- ``MomentumThresholdClassifier``: N-bar close-to-close change measured in
  pips against a fixed threshold.

Both return ``MarketContext.UNDEFINED`` when the history is too short or the
inputs are unusable, and keep the figures behind their last decision in
``last_reading`` for diagnostics.
"""

import math
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from trendbot.errors import InvalidConfigError
from trendbot.strategy.indicators import calculate_atr, calculate_ema
from trendbot.strategy.models import MarketContext, PriceBar

Slope = Literal["rising", "falling", "flat"]


@dataclass(frozen=True)
class ContextReading:
    """Snapshot of the values behind one classification."""

    context: MarketContext
    close: Optional[float] = None
    ema: Optional[float] = None
    upper: Optional[float] = None
    lower: Optional[float] = None
    slope: Optional[Slope] = None
    change_pips: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            "context": self.context.value,
            "close": self.close,
            "ema": self.ema,
            "upper": self.upper,
            "lower": self.lower,
            "slope": self.slope,
            "change_pips": (
                round(self.change_pips, 2) if self.change_pips is not None else None
            ),
        }


def ema_slope(values: Sequence[float]) -> Slope:
    """Direction of the last three EMA values.

    Strictly increasing → ``"rising"``, strictly decreasing → ``"falling"``,
    anything else → ``"flat"``.
    """
    a, b, c = values[-3:]
    if a < b < c:
        return "rising"
    if a > b > c:
        return "falling"
    return "flat"


class ChannelSlopeClassifier:
    """Keltner channel + EMA slope regime classifier.

    Rules (evaluated on the latest bar):
        - close > upper channel AND EMA rising → trending up.
        - close < lower channel AND EMA falling → trending down.
        - close inside the channel AND EMA flat → ranging.
        - close inside the channel with the EMA still sloping → the slope's
          trend (pullback inside a trend) when *pullback_follows_slope* is
          set, ranging otherwise.
        - anything else → ranging.

    Args:
        ema_period: EMA period over typical price.
        atr_period: Wilder ATR period.
        multiplier: Channel half-width in ATRs.
        pullback_follows_slope: Classify in-channel bars by the EMA slope.
    """

    name = "channel_slope"

    def __init__(
        self,
        ema_period: int = 20,
        atr_period: int = 10,
        multiplier: float = 2.0,
        pullback_follows_slope: bool = True,
    ) -> None:
        if ema_period < 1:
            raise InvalidConfigError(f"ema_period must be >= 1, got {ema_period}")
        if atr_period < 1:
            raise InvalidConfigError(f"atr_period must be >= 1, got {atr_period}")
        if multiplier <= 0:
            raise InvalidConfigError(f"multiplier must be positive, got {multiplier}")
        self.ema_period = ema_period
        self.atr_period = atr_period
        self.multiplier = multiplier
        self.pullback_follows_slope = pullback_follows_slope
        self.last_reading = ContextReading(context=MarketContext.UNDEFINED)

    @property
    def min_bars(self) -> int:
        """Bars needed for both indicators and three EMA values."""
        return max(self.ema_period + 2, self.atr_period)

    def classify(self, bars: Sequence[PriceBar]) -> MarketContext:
        if len(bars) < self.min_bars:
            self.last_reading = ContextReading(context=MarketContext.UNDEFINED)
            return MarketContext.UNDEFINED

        ema = calculate_ema([b.typical_price for b in bars], self.ema_period)
        atr = calculate_atr(bars, self.atr_period)

        ema_now = ema[-1]
        atr_now = atr[-1]
        close = bars[-1].close
        if math.isnan(ema_now) or math.isnan(atr_now):
            self.last_reading = ContextReading(context=MarketContext.UNDEFINED)
            return MarketContext.UNDEFINED

        upper = ema_now + self.multiplier * atr_now
        lower = ema_now - self.multiplier * atr_now
        slope = ema_slope(ema)

        if close > upper and slope == "rising":
            context = MarketContext.TRENDING_UP
        elif close < lower and slope == "falling":
            context = MarketContext.TRENDING_DOWN
        elif lower <= close <= upper:
            if slope == "flat" or not self.pullback_follows_slope:
                context = MarketContext.RANGING
            elif slope == "rising":
                context = MarketContext.TRENDING_UP
            else:
                context = MarketContext.TRENDING_DOWN
        else:
            context = MarketContext.RANGING

        self.last_reading = ContextReading(
            context=context,
            close=close,
            ema=ema_now,
            upper=upper,
            lower=lower,
            slope=slope,
        )
        return context


class MomentumThresholdClassifier:
    """N-bar momentum classifier.

    ``change = (close[now] − close[now − lookback]) / pip_size``

    Args:
        lookback: Bars between the compared closes (values below 1 are
            treated as 1).
        threshold_pips: Change needed to call a trend, in pips.
        pip_size: Pip size of the instrument (e.g. 0.0001 for EUR/USD).
    """

    name = "momentum"

    def __init__(
        self,
        lookback: int = 10,
        threshold_pips: float = 20.0,
        pip_size: float = 0.0001,
    ) -> None:
        self.lookback = lookback if lookback > 0 else 1
        self.threshold_pips = threshold_pips
        self.pip_size = pip_size
        self.last_reading = ContextReading(context=MarketContext.UNDEFINED)

    @property
    def min_bars(self) -> int:
        return self.lookback + 1

    def classify(self, bars: Sequence[PriceBar]) -> MarketContext:
        if len(bars) < self.min_bars or self.pip_size <= 0:
            self.last_reading = ContextReading(context=MarketContext.UNDEFINED)
            return MarketContext.UNDEFINED

        current = bars[-1].close
        reference = bars[-1 - self.lookback].close
        change_pips = (current - reference) / self.pip_size

        if change_pips > self.threshold_pips:
            context = MarketContext.TRENDING_UP
        elif change_pips < -self.threshold_pips:
            context = MarketContext.TRENDING_DOWN
        else:
            context = MarketContext.RANGING

        self.last_reading = ContextReading(
            context=context,
            close=current,
            change_pips=change_pips,
        )
        return context
