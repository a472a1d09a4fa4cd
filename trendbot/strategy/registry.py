"""Strategy registry — maps configuration names to classifier and filter classes.

Used by ``TradingEngine.from_config`` to select the context classifier and
the optional signal filter.
"""

from typing import Optional

from trendbot.config import Config
from trendbot.strategy.base import ContextClassifier, SignalFilter
from trendbot.strategy.context import ChannelSlopeClassifier, MomentumThresholdClassifier
from trendbot.strategy.signal_filter import CrossoverStrengthFilter, OscillatorThresholdFilter


CLASSIFIER_REGISTRY: dict[str, type] = {
    "channel_slope": ChannelSlopeClassifier,
    "momentum": MomentumThresholdClassifier,
}

FILTER_REGISTRY: dict[str, type] = {
    "rsi": OscillatorThresholdFilter,
    "macd_adx": CrossoverStrengthFilter,
}


def get_classifier(config: Config, pip_size: float) -> ContextClassifier:
    """Instantiate the classifier named by ``config.context_strategy``.

    Raises ``KeyError`` if the name is not registered.
    """
    name = config.context_strategy
    if name not in CLASSIFIER_REGISTRY:
        raise KeyError(
            f"Unknown context strategy '{name}'. "
            f"Available: {', '.join(CLASSIFIER_REGISTRY.keys())}"
        )
    if name == "momentum":
        return MomentumThresholdClassifier(
            lookback=config.momentum_lookback,
            threshold_pips=config.momentum_threshold_pips,
            pip_size=pip_size,
        )
    return ChannelSlopeClassifier(
        ema_period=config.ema_period,
        atr_period=config.atr_period,
        multiplier=config.channel_multiplier,
        pullback_follows_slope=config.pullback_follows_slope,
    )


def get_signal_filter(config: Config) -> Optional[SignalFilter]:
    """Instantiate the filter named by ``config.signal_filter``.

    ``"none"`` yields ``None``.  Raises ``KeyError`` for unknown names.
    """
    name = config.signal_filter
    if name == "none":
        return None
    if name not in FILTER_REGISTRY:
        raise KeyError(
            f"Unknown signal filter '{name}'. "
            f"Available: none, {', '.join(FILTER_REGISTRY.keys())}"
        )
    if name == "rsi":
        return OscillatorThresholdFilter(
            period=config.rsi_period,
            buy_threshold=config.rsi_buy_threshold,
            sell_threshold=config.rsi_sell_threshold,
        )
    return CrossoverStrengthFilter(
        macd_fast=config.macd_fast,
        macd_slow=config.macd_slow,
        macd_signal=config.macd_signal,
        trend_ema_period=config.trend_ema_period,
        adx_period=config.adx_period,
        adx_threshold=config.adx_threshold,
    )
