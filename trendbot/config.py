"""TrendBot — application configuration.

Loads .env variables into a typed config object.
Validates required variables and value ranges on startup.
"""

import os
from dataclasses import dataclass
from datetime import time, timedelta

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "TRADE_SYMBOL",
]

CONTEXT_STRATEGIES = ("channel_slope", "momentum")
SIGNAL_FILTERS = ("none", "rsi", "macd_adx")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    trade_symbol: str = "EURUSD"
    trade_label: str = "MarketTrendBot_v2"

    # Risk & trade management
    risk_per_trade_pct: float = 1.0
    stop_loss_pips: float = 20.0
    take_profit_pips: float = 40.0
    trailing_stop_pips: float = 0.0  # 0 disables trailing

    # Admission gate
    session_start: time = time(9, 0)
    session_end: time = time(15, 0)
    utc_offset_hours: float = 3.0

    history_capacity: int = 500

    # Context classification
    context_strategy: str = "channel_slope"
    ema_period: int = 20
    atr_period: int = 10
    channel_multiplier: float = 2.0
    pullback_follows_slope: bool = True
    momentum_lookback: int = 10
    momentum_threshold_pips: float = 20.0

    # Signal filter
    signal_filter: str = "none"
    rsi_period: int = 14
    rsi_buy_threshold: float = 55.0
    rsi_sell_threshold: float = 45.0
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    trend_ema_period: int = 200
    adx_period: int = 14
    adx_threshold: float = 20.0

    # Fractal reaction
    use_reaction_filter: bool = False
    higher_timeframe: str = "4h"
    fractal_window: int = 2
    reaction_pct: float = 0.1
    reaction_timeout_minutes: int = 240

    log_level: str = "INFO"
    health_port: int = 8080

    @property
    def reaction_timeout(self) -> timedelta:
        """Reaction wait timeout as a ``timedelta``."""
        return timedelta(minutes=self.reaction_timeout_minutes)


def _parse_time(name: str, value: str) -> time:
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise ValueError(f"{name} must be HH:MM, got {value!r}") from exc


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def validate_config(cfg: Config) -> Config:
    """Reject out-of-range settings with a ``ValueError`` naming the variable."""
    if not 0 < cfg.risk_per_trade_pct <= 100:
        raise ValueError(
            f"RISK_PER_TRADE_PCT must be in (0, 100], got {cfg.risk_per_trade_pct}"
        )
    if cfg.stop_loss_pips <= 0:
        raise ValueError(f"STOP_LOSS_PIPS must be positive, got {cfg.stop_loss_pips}")
    if cfg.take_profit_pips <= 0:
        raise ValueError(f"TAKE_PROFIT_PIPS must be positive, got {cfg.take_profit_pips}")
    if cfg.trailing_stop_pips < 0:
        raise ValueError(
            f"TRAILING_STOP_PIPS must not be negative, got {cfg.trailing_stop_pips}"
        )
    if cfg.history_capacity < 1:
        raise ValueError(f"HISTORY_CAPACITY must be >= 1, got {cfg.history_capacity}")
    if cfg.context_strategy not in CONTEXT_STRATEGIES:
        raise ValueError(
            f"CONTEXT_STRATEGY must be one of {', '.join(CONTEXT_STRATEGIES)}, "
            f"got {cfg.context_strategy!r}"
        )
    if cfg.signal_filter not in SIGNAL_FILTERS:
        raise ValueError(
            f"SIGNAL_FILTER must be one of {', '.join(SIGNAL_FILTERS)}, "
            f"got {cfg.signal_filter!r}"
        )
    if cfg.session_start >= cfg.session_end:
        raise ValueError("SESSION_START must be earlier than SESSION_END")
    if cfg.reaction_timeout_minutes <= 0:
        raise ValueError(
            f"REACTION_TIMEOUT_MINUTES must be positive, got {cfg.reaction_timeout_minutes}"
        )
    return cfg


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing or invalid
    variable.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    env = os.environ.get
    cfg = Config(
        trade_symbol=os.environ["TRADE_SYMBOL"],
        trade_label=env("TRADE_LABEL", "MarketTrendBot_v2"),
        risk_per_trade_pct=float(env("RISK_PER_TRADE_PCT", "1.0")),
        stop_loss_pips=float(env("STOP_LOSS_PIPS", "20")),
        take_profit_pips=float(env("TAKE_PROFIT_PIPS", "40")),
        trailing_stop_pips=float(env("TRAILING_STOP_PIPS", "0")),
        session_start=_parse_time("SESSION_START", env("SESSION_START", "09:00")),
        session_end=_parse_time("SESSION_END", env("SESSION_END", "15:00")),
        utc_offset_hours=float(env("UTC_OFFSET_HOURS", "3")),
        history_capacity=int(env("HISTORY_CAPACITY", "500")),
        context_strategy=env("CONTEXT_STRATEGY", "channel_slope"),
        ema_period=int(env("EMA_PERIOD", "20")),
        atr_period=int(env("ATR_PERIOD", "10")),
        channel_multiplier=float(env("CHANNEL_MULTIPLIER", "2.0")),
        pullback_follows_slope=_parse_bool(env("PULLBACK_FOLLOWS_SLOPE", "true")),
        momentum_lookback=int(env("MOMENTUM_LOOKBACK", "10")),
        momentum_threshold_pips=float(env("MOMENTUM_THRESHOLD_PIPS", "20")),
        signal_filter=env("SIGNAL_FILTER", "none"),
        rsi_period=int(env("RSI_PERIOD", "14")),
        rsi_buy_threshold=float(env("RSI_BUY_THRESHOLD", "55")),
        rsi_sell_threshold=float(env("RSI_SELL_THRESHOLD", "45")),
        macd_fast=int(env("MACD_FAST", "12")),
        macd_slow=int(env("MACD_SLOW", "26")),
        macd_signal=int(env("MACD_SIGNAL", "9")),
        trend_ema_period=int(env("TREND_EMA_PERIOD", "200")),
        adx_period=int(env("ADX_PERIOD", "14")),
        adx_threshold=float(env("ADX_THRESHOLD", "20")),
        use_reaction_filter=_parse_bool(env("USE_REACTION_FILTER", "false")),
        higher_timeframe=env("HIGHER_TIMEFRAME", "4h"),
        fractal_window=int(env("FRACTAL_WINDOW", "2")),
        reaction_pct=float(env("REACTION_PCT", "0.1")),
        reaction_timeout_minutes=int(env("REACTION_TIMEOUT_MINUTES", "240")),
        log_level=env("LOG_LEVEL", "INFO"),
        health_port=int(env("HEALTH_PORT", "8080")),
    )
    return validate_config(cfg)
