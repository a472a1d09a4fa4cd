"""TrendBot — decision engine (per-bar orchestration).

Connects history, context classification, admission gate, signal filter,
reaction state machine, position sizing and trailing stops into a single
synchronous evaluation per closed bar.  The engine performs no I/O: the host
feeds bars, account data and positions in, and acts on the returned intents.

Mutable session data (history, reaction machine, last trade date) lives in
a ``SessionState`` value owned by the caller and passed into every call.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Sequence

from trendbot.broker.models import (
    AccountSnapshot,
    ExecutionResult,
    OpenPosition,
    OrderIntent,
    Quote,
    SymbolMetadata,
    TrailingStopIntent,
)
from trendbot.config import Config
from trendbot.errors import InvalidConfigError, SizingError
from trendbot.risk.position_sizer import calculate_volume
from trendbot.risk.trailing_stop import evaluate_trailing_stops
from trendbot.strategy.base import ContextClassifier, SignalFilter
from trendbot.strategy.history import BoundedBarHistory
from trendbot.strategy.models import MarketContext, PriceBar, RiskParameters
from trendbot.strategy.reaction import IDLE, ReactionMachine, ReactionParams, advance, wait_elapsed
from trendbot.strategy.registry import get_classifier, get_signal_filter
from trendbot.strategy.session_filter import check_admission
from trendbot.strategy.signal_filter import filter_confirms

logger = logging.getLogger("trendbot")


@dataclass
class SessionState:
    """Everything the engine remembers between bars of one session."""

    history: BoundedBarHistory
    reaction: ReactionMachine = IDLE
    last_trade_date: Optional[date] = None


@dataclass(frozen=True)
class Evaluation:
    """Outcome of one ``TradingEngine.evaluate`` call.

    ``action`` is ``"order"`` when ``order`` is set, else ``"skipped"``;
    ``reason`` names the check that stopped the trade path.
    """

    action: str
    reason: str
    context: MarketContext
    order: Optional[OrderIntent] = None
    trailing: tuple[TrailingStopIntent, ...] = ()
    insight: dict = field(default_factory=dict)


class TradingEngine:
    """Runs the decision pipeline for one symbol.

    Args:
        config: Application configuration (risk, gate, label).
        symbol: Instrument metadata from the host.
        classifier: Market context classifier.
        signal_filter: Optional confirmation filter (``None`` = confirm all).
        reaction_params: Enables the fractal reaction state machine when set.
    """

    def __init__(
        self,
        config: Config,
        symbol: SymbolMetadata,
        classifier: ContextClassifier,
        signal_filter: Optional[SignalFilter] = None,
        reaction_params: Optional[ReactionParams] = None,
    ) -> None:
        self._config = config
        self._symbol = symbol
        self._classifier = classifier
        self._signal_filter = signal_filter
        self._reaction_params = reaction_params
        self._risk = RiskParameters(
            risk_pct=config.risk_per_trade_pct,
            stop_loss_pips=config.stop_loss_pips,
            take_profit_pips=config.take_profit_pips,
        )

    @classmethod
    def from_config(cls, config: Config, symbol: SymbolMetadata) -> "TradingEngine":
        """Build an engine with the classifier and filter named in *config*."""
        reaction_params = None
        if config.use_reaction_filter:
            reaction_params = ReactionParams(
                fractal_window=config.fractal_window,
                reaction_pct=config.reaction_pct,
                timeout=config.reaction_timeout,
            )
        return cls(
            config=config,
            symbol=symbol,
            classifier=get_classifier(config, symbol.pip_size),
            signal_filter=get_signal_filter(config),
            reaction_params=reaction_params,
        )

    @property
    def label(self) -> str:
        return self._config.trade_label

    @property
    def symbol(self) -> SymbolMetadata:
        return self._symbol

    @property
    def strategy_name(self) -> str:
        parts = [self._classifier.name]
        if self._signal_filter is not None:
            parts.append(self._signal_filter.name)
        if self._reaction_params is not None:
            parts.append("reaction")
        return "+".join(parts)

    def new_session(self) -> SessionState:
        """Fresh session state with an empty history."""
        return SessionState(history=BoundedBarHistory(self._config.history_capacity))

    # ── Trailing stops ───────────────────────────────────────────────────

    def manage_trailing_stops(
        self,
        positions: Sequence[OpenPosition],
        quote: Quote,
    ) -> list[TrailingStopIntent]:
        """Stop modifications for this engine's positions (safe to call per tick)."""
        intents = evaluate_trailing_stops(
            positions,
            quote,
            self._symbol,
            self._config.trade_label,
            self._config.trailing_stop_pips,
        )
        for intent in intents:
            logger.info(
                "Trailing stop for position %s moved to %s",
                intent.position_id, intent.new_stop_loss,
            )
        return intents

    # ── Single evaluation ────────────────────────────────────────────────

    def evaluate(
        self,
        state: SessionState,
        bar: PriceBar,
        *,
        account: AccountSnapshot,
        positions: Sequence[OpenPosition],
        quote: Quote,
        utc_now: Optional[datetime] = None,
        higher_bars: Sequence[PriceBar] = (),
    ) -> Evaluation:
        """Ingest one closed *bar* and decide whether to open a position.

        Args:
            state: Session state; its history and reaction machine are
                updated in place.
            bar: The newly closed primary-timeframe bar.
            account: Current account balance.
            positions: Open positions reported by the host.
            quote: Current bid/ask for trailing stops.
            utc_now: Server time.  Defaults to ``bar.timestamp``; accepting it
                as a parameter keeps the engine deterministic under test.
            higher_bars: Closed higher-timeframe bars for fractal detection.

        Raises:
            InvalidInputError: If *bar* is older than the stored history.
        """
        if utc_now is None:
            utc_now = bar.timestamp

        trailing = tuple(self.manage_trailing_stops(positions, quote))

        checks = {
            "context_defined": False,
            "trending": False,
            "reaction_confirmed": self._reaction_params is None,
            "gate_open": False,
            "filter_confirmed": False,
            "volume_sized": False,
        }
        insight: dict = {
            "strategy": self.strategy_name,
            "symbol": self._symbol.name,
            "bar_time": bar.timestamp.isoformat(),
            "evaluated_at": utc_now.isoformat(),
            "checks": checks,
        }

        def _skip(reason: str, context: MarketContext, detail: str = "") -> Evaluation:
            insight["result"] = reason
            if detail:
                insight["detail"] = detail
            logger.debug("Bar %s: skipped (%s) %s", bar.timestamp, reason, detail)
            return Evaluation(
                action="skipped",
                reason=reason,
                context=context,
                trailing=trailing,
                insight=insight,
            )

        # 1 ── History
        if not state.history.append(bar):
            return _skip("duplicate_bar", MarketContext.UNDEFINED)
        bars = state.history.as_sequence()

        # 2 ── Context
        context = self._classifier.classify(bars)
        insight["context"] = context.value
        reading = getattr(self._classifier, "last_reading", None)
        if reading is not None:
            insight["reading"] = reading.as_dict()

        # 3 ── Reaction state machine observes every new bar so that context
        #      resets and timeouts apply even while the gate is closed.
        reaction_signal = None
        if self._reaction_params is not None:
            step = advance(state.reaction, context, bar, higher_bars, self._reaction_params)
            reaction_signal = step.signal
            # A confirmation is only consumed once an order intent is built
            if reaction_signal is None:
                state.reaction = step.machine
            elapsed = wait_elapsed(step.machine, bar.timestamp)
            insight["reaction"] = {
                **step.machine.as_dict(),
                "transition": step.transition,
                "elapsed_minutes": (
                    elapsed.total_seconds() / 60 if elapsed is not None else None
                ),
            }
            if step.transition != "none":
                logger.debug("Reaction machine: %s", step.transition)

        if context is MarketContext.UNDEFINED:
            return _skip("insufficient_data", context)
        checks["context_defined"] = True

        if context.direction is None:
            return _skip("ranging", context)
        checks["trending"] = True

        # 4 ── Admission gate
        gate = check_admission(
            utc_now,
            state.last_trade_date,
            positions,
            label=self._config.trade_label,
            symbol=self._symbol.name,
            session_start=self._config.session_start,
            session_end=self._config.session_end,
            utc_offset_hours=self._config.utc_offset_hours,
        )
        if not gate.allowed:
            return _skip(gate.reason, context)
        checks["gate_open"] = True

        # 5 ── Signal filter
        confirmed = filter_confirms(self._signal_filter, context, bars)
        if self._signal_filter is not None:
            insight["filter"] = dict(getattr(self._signal_filter, "last_reading", {}))
        if not confirmed:
            return _skip("filter_rejected", context)
        checks["filter_confirmed"] = True

        # 6 ── Reaction confirmation
        if self._reaction_params is not None:
            if reaction_signal != context.direction:
                return _skip("awaiting_reaction", context)
            checks["reaction_confirmed"] = True

        # 7 ── Position sizing
        try:
            sizing = calculate_volume(
                balance=account.balance,
                risk_pct=self._risk.risk_pct,
                stop_loss_pips=self._risk.stop_loss_pips,
                pip_value=self._symbol.pip_value,
                pip_size=self._symbol.pip_size,
                volume_step=self._symbol.volume_step,
                volume_min=self._symbol.volume_min,
                volume_max=self._symbol.volume_max,
            )
        except SizingError as exc:
            logger.warning("Sizing rejected on %s: %s", self._symbol.name, exc)
            return _skip("sizing_rejected", context, detail=str(exc))
        except InvalidConfigError as exc:
            logger.error("Invalid symbol settings for %s: %s", self._symbol.name, exc)
            return _skip("invalid_config", context, detail=str(exc))
        checks["volume_sized"] = True
        insight["sizing"] = {
            "volume": sizing.volume,
            "risk_amount": round(sizing.risk_amount, 2),
            "risk_per_unit": sizing.risk_per_unit,
            "raw_units": round(sizing.raw_units, 2),
            "clamped_to_min": sizing.clamped_to_min,
            "clamped_to_max": sizing.clamped_to_max,
            "currency": account.currency,
        }

        order = OrderIntent(
            side="buy" if context is MarketContext.TRENDING_UP else "sell",
            volume=sizing.volume,
            stop_loss_pips=self._risk.stop_loss_pips,
            take_profit_pips=self._risk.take_profit_pips,
            label=self._config.trade_label,
            symbol=self._symbol.name,
        )
        if self._reaction_params is not None:
            state.reaction = step.machine
        insight["result"] = "signal_found"
        insight["order"] = {"side": order.side, "volume": order.volume}
        logger.info(
            "%s %s %.0f units (SL %.1f pips, TP %.1f pips, risk %.2f %s), context %s",
            order.side.upper(), order.symbol, order.volume,
            order.stop_loss_pips, order.take_profit_pips,
            sizing.risk_amount, account.currency, context.value,
        )
        return Evaluation(
            action="order",
            reason="signal_found",
            context=context,
            order=order,
            trailing=trailing,
            insight=insight,
        )

    # ── Execution feedback ───────────────────────────────────────────────

    def record_execution(
        self,
        state: SessionState,
        result: ExecutionResult,
        utc_now: datetime,
    ) -> None:
        """Commit "traded today" only when the host reports a successful fill."""
        if result.success:
            state.last_trade_date = utc_now.date()
            logger.info(
                "Trade executed: position %s at %s", result.position_id, result.entry_price,
            )
        else:
            logger.warning("Failed to execute trade: %s", result.error)
