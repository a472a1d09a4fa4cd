"""Technical indicators — EMA, ATR, Keltner, RSI, ADX, MACD. Pure functions, no I/O.

Series-returning functions keep the input length and pad the warm-up
region with ``float('nan')``.
"""

import math
from typing import Sequence

from trendbot.strategy.models import PriceBar


def _nan_series(n: int) -> list[float]:
    return [float("nan")] * n


def calculate_ema(values: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    values and placed at index ``period - 1``.

    Raises ``ValueError`` if fewer than *period* values are provided.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(values) < period:
        raise ValueError(
            f"Need at least {period} values for EMA({period}), "
            f"got {len(values)}"
        )

    k = 2.0 / (period + 1)
    ema = _nan_series(len(values))

    # Seed: SMA of first *period* values
    ema[period - 1] = sum(values[:period]) / period

    for i in range(period, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


def true_ranges(bars: Sequence[PriceBar]) -> list[float]:
    """True range per bar.  The first bar has no previous close: high - low."""
    return [
        bar.true_range(bars[i - 1] if i > 0 else None)
        for i, bar in enumerate(bars)
    ]


def calculate_atr(bars: Sequence[PriceBar], period: int = 14) -> list[float]:
    """Calculate a Wilder-smoothed Average True Range series.

    Algorithm:
        1. TR = max(high - low, |high - prev_close|, |low - prev_close|)
        2. Seed = simple average of the first *period* true ranges,
           placed at index ``period - 1``.
        3. ``atr[i] = (atr[i-1] × (period - 1) + tr[i]) / period``

    Raises ``ValueError`` if fewer than *period* bars are provided.
    """
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")
    if len(bars) < period:
        raise ValueError(
            f"Need at least {period} bars for ATR({period}), got {len(bars)}"
        )

    tr = true_ranges(bars)
    atr = _nan_series(len(bars))
    atr[period - 1] = sum(tr[:period]) / period

    for i in range(period, len(bars)):
        atr[i] = (atr[i - 1] * (period - 1) + tr[i]) / period

    return atr


def calculate_keltner(
    bars: Sequence[PriceBar],
    ema_period: int = 20,
    atr_period: int = 10,
    multiplier: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Keltner channels around an EMA of typical price.

    Middle = EMA(typical price, *ema_period*)
    Upper  = middle + *multiplier* × ATR(*atr_period*)
    Lower  = middle − *multiplier* × ATR(*atr_period*)

    Returns ``(upper, middle, lower)``, each the same length as *bars*.
    """
    middle = calculate_ema([b.typical_price for b in bars], ema_period)
    atr = calculate_atr(bars, atr_period)

    upper = _nan_series(len(bars))
    lower = _nan_series(len(bars))
    for i, (m, a) in enumerate(zip(middle, atr)):
        if math.isnan(m) or math.isnan(a):
            continue
        upper[i] = m + multiplier * a
        lower[i] = m - multiplier * a

    return upper, middle, lower


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(closes: Sequence[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS)

    Requires at least ``period + 1`` closes.
    """
    if len(closes) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} closes for RSI({period}), "
            f"got {len(closes)}"
        )

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi = _nan_series(len(closes))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one against closes
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(bars: Sequence[PriceBar], period: int = 14) -> list[float]:
    """Calculate the Average Directional Index (ADX).

    Algorithm:
        1. +DM / -DM directional movement per bar.
        2. Wilder-smooth +DM, -DM, and TR over *period*.
        3. +DI = 100 × smoothed_+DM / smoothed_TR
        4. -DI = 100 × smoothed_-DM / smoothed_TR
        5. DX = 100 × |+DI − −DI| / (+DI + −DI)
        6. ADX = Wilder-smoothed DX over *period*.

    Requires at least ``2 × period + 1`` bars.
    """
    min_bars = 2 * period + 1
    if len(bars) < min_bars:
        raise ValueError(
            f"Need at least {min_bars} bars for ADX({period}), got {len(bars)}"
        )

    n = len(bars)

    plus_dm_raw: list[float] = [0.0]
    minus_dm_raw: list[float] = [0.0]
    tr_raw: list[float] = [0.0]

    for i in range(1, n):
        up_move = bars[i].high - bars[i - 1].high
        down_move = bars[i - 1].low - bars[i].low

        plus_dm_raw.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm_raw.append(down_move if (down_move > up_move and down_move > 0) else 0.0)
        tr_raw.append(bars[i].true_range(bars[i - 1]))

    smoothed_plus_dm = sum(plus_dm_raw[1 : period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1 : period + 1])
    smoothed_tr = sum(tr_raw[1 : period + 1])

    def _compute_dx(s_pdm: float, s_mdm: float, s_tr: float) -> float:
        if s_tr == 0:
            return 0.0
        plus_di = 100.0 * s_pdm / s_tr
        minus_di = 100.0 * s_mdm / s_tr
        di_sum = plus_di + minus_di
        if di_sum == 0:
            return 0.0
        return 100.0 * abs(plus_di - minus_di) / di_sum

    dx_values = [_compute_dx(smoothed_plus_dm, smoothed_minus_dm, smoothed_tr)]

    for i in range(period + 1, n):
        smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
        smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
        smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]
        dx_values.append(
            _compute_dx(smoothed_plus_dm, smoothed_minus_dm, smoothed_tr)
        )

    # dx_values[0] belongs to bar index *period*, so the ADX seed built from
    # the first *period* DX values lands on bar index 2*period - 1.
    adx = _nan_series(n)
    adx_prev = sum(dx_values[:period]) / period
    adx[2 * period - 1] = adx_prev

    for j in range(period, len(dx_values)):
        adx_prev = (adx_prev * (period - 1) + dx_values[j]) / period
        adx[period + j] = adx_prev

    return adx


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD line, signal line and histogram.

    MACD line   = EMA(close, *fast*) − EMA(close, *slow*)
    Signal line = EMA(MACD line, *signal*)
    Histogram   = MACD line − signal line

    Requires at least ``slow + signal - 1`` closes so that one signal value
    exists.  Returns three lists the same length as *closes*.
    """
    if fast >= slow:
        raise ValueError(f"fast period ({fast}) must be < slow period ({slow})")
    min_closes = slow + signal - 1
    if len(closes) < min_closes:
        raise ValueError(
            f"Need at least {min_closes} closes for MACD({fast},{slow},{signal}), "
            f"got {len(closes)}"
        )

    fast_ema = calculate_ema(closes, fast)
    slow_ema = calculate_ema(closes, slow)

    n = len(closes)
    macd_line = _nan_series(n)
    for i in range(slow - 1, n):
        macd_line[i] = fast_ema[i] - slow_ema[i]

    # The signal EMA runs over the defined part of the MACD line only.
    signal_tail = calculate_ema(macd_line[slow - 1 :], signal)
    signal_line = _nan_series(slow - 1) + signal_tail

    histogram = _nan_series(n)
    for i in range(n):
        if not math.isnan(signal_line[i]):
            histogram[i] = macd_line[i] - signal_line[i]

    return macd_line, signal_line, histogram
