"""Fractal detection on higher-timeframe bars — pure functions."""

from typing import Optional, Sequence

from trendbot.strategy.models import Direction, FractalLevel, PriceBar


def _is_up_fractal(bars: Sequence[PriceBar], i: int, window: int) -> bool:
    """True if the high at *i* is strictly above the *window* highs on each side."""
    high = bars[i].high
    for j in range(1, window + 1):
        if bars[i - j].high >= high or bars[i + j].high >= high:
            return False
    return True


def _is_down_fractal(bars: Sequence[PriceBar], i: int, window: int) -> bool:
    """True if the low at *i* is strictly below the *window* lows on each side."""
    low = bars[i].low
    for j in range(1, window + 1):
        if bars[i - j].low <= low or bars[i + j].low <= low:
            return False
    return True


def find_latest_fractal(
    bars: Sequence[PriceBar],
    direction: Direction,
    window: int = 2,
) -> Optional[FractalLevel]:
    """Return the most recent fractal of *direction*, or ``None``.

    Scans backward from the newest bar that still has *window* bars to its
    right.  ``"up"`` looks for a high above its neighbours, ``"down"`` for a
    low beneath them.
    """
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")

    check = _is_up_fractal if direction == "up" else _is_down_fractal
    for i in range(len(bars) - 1 - window, window - 1, -1):
        if check(bars, i, window):
            bar = bars[i]
            return FractalLevel(
                direction=direction,
                price=bar.high if direction == "up" else bar.low,
                timestamp=bar.timestamp,
                index=i,
            )
    return None
