"""Signal confirmation filters — optional gate between context and entry.

``OscillatorThresholdFilter`` confirms a trend when RSI agrees with it;
``CrossoverStrengthFilter`` demands a MACD crossover in the trend direction,
price on the right side of a long trend EMA, and ADX above a threshold.
No filter at all means every trending context is confirmed.
"""

import logging
import math
from typing import Optional, Sequence

from trendbot.errors import InvalidConfigError
from trendbot.strategy.base import SignalFilter
from trendbot.strategy.indicators import (
    calculate_adx,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
)
from trendbot.strategy.models import MarketContext, PriceBar

logger = logging.getLogger("trendbot.strategy")


class OscillatorThresholdFilter:
    """RSI threshold filter.

    Trending up is confirmed iff RSI > *buy_threshold*; trending down iff
    RSI < *sell_threshold*.
    """

    name = "rsi"

    def __init__(
        self,
        period: int = 14,
        buy_threshold: float = 55.0,
        sell_threshold: float = 45.0,
    ) -> None:
        if period < 1:
            raise InvalidConfigError(f"RSI period must be >= 1, got {period}")
        self.period = period
        self.buy_threshold = buy_threshold
        self.sell_threshold = sell_threshold
        self.last_reading: dict = {}

    def confirms(self, context: MarketContext, bars: Sequence[PriceBar]) -> bool:
        self.last_reading = {"filter": self.name}
        if context.direction is None or len(bars) < self.period + 1:
            return False

        rsi = calculate_rsi([b.close for b in bars], self.period)[-1]
        self.last_reading["rsi"] = round(rsi, 2)

        if context is MarketContext.TRENDING_UP:
            return rsi > self.buy_threshold
        return rsi < self.sell_threshold


class CrossoverStrengthFilter:
    """MACD crossover confirmed by a trend EMA and ADX strength.

    Buy (trending up) needs all of:
        - ADX ≥ *adx_threshold*
        - previous MACD < previous signal and current MACD > current signal
        - close > trend EMA
    Sell (trending down) mirrors the crossover and EMA conditions.
    """

    name = "macd_adx"

    def __init__(
        self,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        trend_ema_period: int = 200,
        adx_period: int = 14,
        adx_threshold: float = 20.0,
    ) -> None:
        if not 1 <= macd_fast < macd_slow:
            raise InvalidConfigError(
                f"MACD periods must satisfy 1 <= fast < slow, got {macd_fast}/{macd_slow}"
            )
        if macd_signal < 1 or trend_ema_period < 1 or adx_period < 1:
            raise InvalidConfigError("MACD signal, trend EMA and ADX periods must be >= 1")
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.trend_ema_period = trend_ema_period
        self.adx_period = adx_period
        self.adx_threshold = adx_threshold
        self.last_reading: dict = {}

    @property
    def min_bars(self) -> int:
        """Bars needed for two MACD/signal pairs, the trend EMA and one ADX value."""
        return max(
            self.macd_slow + self.macd_signal,
            self.trend_ema_period,
            2 * self.adx_period + 1,
        )

    def confirms(self, context: MarketContext, bars: Sequence[PriceBar]) -> bool:
        self.last_reading = {"filter": self.name}
        if context.direction is None or len(bars) < self.min_bars:
            return False

        closes = [b.close for b in bars]
        macd_line, signal_line, _ = calculate_macd(
            closes, self.macd_fast, self.macd_slow, self.macd_signal,
        )
        trend_ema = calculate_ema(closes, self.trend_ema_period)[-1]
        adx = calculate_adx(bars, self.adx_period)[-1]

        prev_macd, curr_macd = macd_line[-2], macd_line[-1]
        prev_signal, curr_signal = signal_line[-2], signal_line[-1]
        if any(math.isnan(v) for v in (prev_macd, curr_macd, prev_signal, curr_signal, adx)):
            return False

        close = closes[-1]
        self.last_reading.update({
            "adx": round(adx, 2),
            "trend_ema": trend_ema,
            "macd": curr_macd,
            "macd_signal": curr_signal,
            "prev_macd": prev_macd,
            "prev_macd_signal": prev_signal,
        })

        if adx < self.adx_threshold:
            logger.debug(
                "ADX %.2f below threshold %.2f, weak trend", adx, self.adx_threshold,
            )
            return False

        if context is MarketContext.TRENDING_UP:
            return (
                close > trend_ema
                and prev_macd < prev_signal
                and curr_macd > curr_signal
            )
        return (
            close < trend_ema
            and prev_macd > prev_signal
            and curr_macd < curr_signal
        )


def filter_confirms(
    signal_filter: Optional[SignalFilter],
    context: MarketContext,
    bars: Sequence[PriceBar],
) -> bool:
    """Apply *signal_filter*; an absent filter confirms any trending context."""
    if context.direction is None:
        return False
    if signal_filter is None:
        return True
    return signal_filter.confirms(context, bars)
