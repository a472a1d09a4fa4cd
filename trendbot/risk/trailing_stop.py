"""Trailing stop — ratchets the stop-loss of open positions.

Rules:
  - Buy: candidate = bid − distance, applied once it clears the entry price
    and only if it raises the current stop.
  - Sell: candidate = ask + distance, applied once it is below the entry
    price and only if it lowers the current stop.
  - A stop never moves against the position, so re-running without a price
    change emits nothing.
"""

from typing import Iterable, Optional

from trendbot.broker.models import OpenPosition, Quote, SymbolMetadata, TrailingStopIntent


def trailing_candidate(
    position: OpenPosition,
    quote: Quote,
    distance_pips: float,
    pip_size: float,
    digits: int,
) -> Optional[float]:
    """Return the improved stop for *position*, or ``None`` if no move applies."""
    if position.side == "buy":
        candidate = round(quote.bid - distance_pips * pip_size, digits)
        if candidate > position.entry_price and (
            position.stop_loss is None or candidate > position.stop_loss
        ):
            return candidate

    elif position.side == "sell":
        candidate = round(quote.ask + distance_pips * pip_size, digits)
        if candidate < position.entry_price and (
            position.stop_loss is None or candidate < position.stop_loss
        ):
            return candidate

    return None


def evaluate_trailing_stops(
    positions: Iterable[OpenPosition],
    quote: Quote,
    symbol: SymbolMetadata,
    label: str,
    distance_pips: float,
) -> list[TrailingStopIntent]:
    """One modification intent per matching position whose stop improves.

    Positions on other symbols or with another label are ignored.  A
    non-positive *distance_pips* disables trailing entirely.
    """
    if distance_pips <= 0:
        return []

    intents: list[TrailingStopIntent] = []
    for position in positions:
        if position.symbol != symbol.name or position.label != label:
            continue
        new_sl = trailing_candidate(
            position, quote, distance_pips, symbol.pip_size, symbol.digits,
        )
        if new_sl is not None:
            intents.append(
                TrailingStopIntent(position_id=position.position_id, new_stop_loss=new_sl)
            )
    return intents
