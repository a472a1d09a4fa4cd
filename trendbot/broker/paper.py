"""Paper broker — an in-memory host for replaying bar files.

Fills order intents at the bar close, applies trailing-stop intents, and
closes positions whose stop or target a later bar touches.  Keeps only the
balance the sizer needs; there is no performance reporting here.
"""

import dataclasses
import logging
from typing import Optional

from trendbot.broker.models import (
    AccountSnapshot,
    ExecutionResult,
    OpenPosition,
    OrderIntent,
    Quote,
    SymbolMetadata,
    TrailingStopIntent,
)
from trendbot.strategy.models import PriceBar

logger = logging.getLogger("trendbot.paper")


class PaperBroker:
    """Simulated account for one symbol.

    Args:
        symbol: Instrument metadata.
        balance: Starting balance in account currency.
        spread_pips: Fixed spread added to the bid to form the ask.
        currency: Account currency code.
    """

    def __init__(
        self,
        symbol: SymbolMetadata,
        balance: float = 10_000.0,
        spread_pips: float = 0.0,
        currency: str = "USD",
    ) -> None:
        self._symbol = symbol
        self._balance = balance
        self._spread = spread_pips * symbol.pip_size
        self._currency = currency
        self._positions: dict[str, OpenPosition] = {}
        self._next_id = 1
        self.closed: list[dict] = []

    # ── Host inputs for the engine ───────────────────────────────────────

    @property
    def account(self) -> AccountSnapshot:
        return AccountSnapshot(balance=self._balance, currency=self._currency)

    @property
    def positions(self) -> list[OpenPosition]:
        return list(self._positions.values())

    def quote_for(self, bar: PriceBar) -> Quote:
        """Quote at *bar*'s close, with the configured spread on the ask."""
        return Quote(bid=bar.close, ask=bar.close + self._spread)

    # ── Acting on intents ────────────────────────────────────────────────

    def execute(self, order: OrderIntent, bar: PriceBar) -> ExecutionResult:
        """Fill *order* at *bar*'s close and attach SL/TP prices."""
        if order.volume <= 0:
            return ExecutionResult(success=False, error="volume must be positive")

        quote = self.quote_for(bar)
        pip = self._symbol.pip_size
        digits = self._symbol.digits
        if order.side == "buy":
            entry = quote.ask
            sl = round(entry - order.stop_loss_pips * pip, digits)
            tp = round(entry + order.take_profit_pips * pip, digits)
        else:
            entry = quote.bid
            sl = round(entry + order.stop_loss_pips * pip, digits)
            tp = round(entry - order.take_profit_pips * pip, digits)

        position_id = str(self._next_id)
        self._next_id += 1
        self._positions[position_id] = OpenPosition(
            position_id=position_id,
            symbol=order.symbol,
            label=order.label,
            side=order.side,
            entry_price=entry,
            volume=order.volume,
            stop_loss=sl,
            take_profit=tp,
        )
        logger.info(
            "Paper fill #%s: %s %.0f %s @ %s (SL %s, TP %s)",
            position_id, order.side, order.volume, order.symbol, entry, sl, tp,
        )
        return ExecutionResult(success=True, position_id=position_id, entry_price=entry)

    def modify(self, intent: TrailingStopIntent) -> bool:
        """Apply a stop-loss modification; False if the position is gone."""
        position = self._positions.get(intent.position_id)
        if position is None:
            logger.warning("Cannot modify unknown position %s", intent.position_id)
            return False
        self._positions[intent.position_id] = dataclasses.replace(
            position, stop_loss=intent.new_stop_loss,
        )
        return True

    # ── Exits ────────────────────────────────────────────────────────────

    def update(self, bar: PriceBar) -> list[dict]:
        """Close positions whose stop or target *bar* touched.

        When both are hit in the same bar the stop is assumed first.
        """
        closed_now: list[dict] = []
        for position_id, position in list(self._positions.items()):
            hit = self._check_exit(position, bar)
            if hit is None:
                continue
            exit_price, reason = hit
            pnl = self._calc_pnl(position, exit_price)
            self._balance += pnl
            del self._positions[position_id]
            record = {
                "position_id": position_id,
                "side": position.side,
                "entry_price": position.entry_price,
                "exit_price": exit_price,
                "reason": reason,
                "pnl": round(pnl, 2),
                "closed_at": bar.timestamp.isoformat(),
            }
            self.closed.append(record)
            closed_now.append(record)
            logger.info("Paper close #%s: %s at %s", position_id, reason, exit_price)
        return closed_now

    @staticmethod
    def _check_exit(position: OpenPosition, bar: PriceBar) -> Optional[tuple[float, str]]:
        sl = position.stop_loss
        tp = position.take_profit

        if position.side == "buy":
            sl_hit = sl is not None and bar.low <= sl
            tp_hit = tp is not None and bar.high >= tp
        else:
            sl_hit = sl is not None and bar.high >= sl
            tp_hit = tp is not None and bar.low <= tp

        if sl_hit:
            return sl, "SL hit"
        if tp_hit:
            return tp, "TP hit"
        return None

    def _calc_pnl(self, position: OpenPosition, exit_price: float) -> float:
        """Account-currency P&L using the symbol's pip value per unit."""
        move = exit_price - position.entry_price
        if position.side == "sell":
            move = -move
        pips = move / self._symbol.pip_size
        return pips * self._symbol.pip_value * position.volume
