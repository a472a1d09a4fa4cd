"""Replay runner — feeds historical bars through the engine and a paper broker.

Plays the role of the trading platform: for every primary bar it settles
stops/targets, hands the engine the closed higher-timeframe bars, applies
trailing-stop intents and fills order intents.  Progress is pushed to the
diagnostics API state.
"""

import bisect
import logging
from collections import Counter
from datetime import datetime
from typing import Optional

import pandas as pd

from trendbot.api.routers import update_bot_status, update_pending_signal, update_strategy_insight
from trendbot.broker.paper import PaperBroker
from trendbot.data.bars import frame_to_bars, infer_bar_interval, resample_bars
from trendbot.engine import TradingEngine
from trendbot.errors import TrendBotError

logger = logging.getLogger("trendbot.replay")

# Fractal detection only looks at recent structure.
MAX_HIGHER_BARS = 200


class ReplayRunner:
    """Replays a bar DataFrame bar by bar.

    Args:
        engine: Configured ``TradingEngine``.
        broker: ``PaperBroker`` acting as the host.
        higher_timeframe: Resample rule for the fractal timeframe
            (e.g. ``"4h"``); ``None`` disables higher bars.
    """

    def __init__(
        self,
        engine: TradingEngine,
        broker: PaperBroker,
        higher_timeframe: Optional[str] = None,
    ) -> None:
        self._engine = engine
        self._broker = broker
        self._higher_timeframe = higher_timeframe

    def run(self, frame: pd.DataFrame, stream_name: str = "replay") -> dict:
        """Replay every row of *frame* (cleaned, oldest first).

        Returns:
            Dict with bar/order counts, skip reasons, trailing modifications,
            closed positions and the final balance.
        """
        bars = frame_to_bars(frame)
        interval = infer_bar_interval(frame).to_pytimedelta()

        higher_bars = []
        higher_close: list[datetime] = []
        if self._higher_timeframe and not frame.empty:
            higher = resample_bars(frame, self._higher_timeframe)
            higher_bars = frame_to_bars(higher)
            higher_close = [t.to_pydatetime() for t in higher["close_time"]]

        state = self._engine.new_session()
        reasons: Counter = Counter()
        orders = 0
        modifications = 0
        errors = 0

        update_bot_status(
            stream_name=stream_name,
            mode="replay",
            running=True,
            symbol=self._engine.symbol.name,
            strategy=self._engine.strategy_name,
        )

        for bar in bars:
            bar_close = bar.timestamp + interval
            self._broker.update(bar)

            count = bisect.bisect_right(higher_close, bar_close)
            visible = higher_bars[max(0, count - MAX_HIGHER_BARS):count]

            try:
                evaluation = self._engine.evaluate(
                    state,
                    bar,
                    account=self._broker.account,
                    positions=self._broker.positions,
                    quote=self._broker.quote_for(bar),
                    utc_now=bar_close,
                    higher_bars=visible,
                )
            except TrendBotError as exc:
                logger.error("Bar %s error: %s", bar.timestamp, exc)
                errors += 1
                reasons["error"] += 1
                continue

            for intent in evaluation.trailing:
                if self._broker.modify(intent):
                    modifications += 1

            reasons[evaluation.reason] += 1
            if evaluation.order is not None:
                result = self._broker.execute(evaluation.order, bar)
                self._engine.record_execution(state, result, bar_close)
                if result.success:
                    orders += 1

            update_strategy_insight(stream_name, evaluation.insight)
            update_pending_signal({
                "symbol": self._engine.symbol.name,
                "direction": evaluation.order.side if evaluation.order else None,
                "context": evaluation.context.value,
                "status": evaluation.action,
                "reason": evaluation.reason,
                "evaluated_at": bar_close.isoformat(),
                "stream_name": stream_name,
            })

        account = self._broker.account
        summary = {
            "symbol": self._engine.symbol.name,
            "strategy": self._engine.strategy_name,
            "bars": len(bars),
            "orders": orders,
            "trailing_modifications": modifications,
            "errors": errors,
            "reasons": dict(reasons),
            "closed_positions": len(self._broker.closed),
            "open_positions": len(self._broker.positions),
            "final_balance": round(account.balance, 2),
            "currency": account.currency,
        }
        update_bot_status(
            stream_name=stream_name,
            running=False,
            bars_processed=len(bars),
            orders=orders,
            balance=summary["final_balance"],
            open_positions=summary["open_positions"],
        )
        logger.info(
            "Replay complete: %d bars, %d orders, %d stop modifications",
            len(bars), orders, modifications,
        )
        return summary
