"""Trade admission gate — pure predicates checked before any entry.

1. Session window, evaluated on exchange time (server UTC + offset).
2. One trade per calendar day (server UTC date).
3. No open position with this engine's label on this symbol.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from trendbot.broker.models import OpenPosition


@dataclass(frozen=True)
class GateDecision:
    """Outcome of the admission checks; *reason* names the first failure."""

    allowed: bool
    reason: str = ""


def is_in_session(
    utc_now: datetime,
    session_start: time = time(9, 0),
    session_end: time = time(15, 0),
    utc_offset_hours: float = 3.0,
) -> bool:
    """Return True if exchange time falls inside the trading window.

    Exchange time is *utc_now* shifted by *utc_offset_hours*.  The window
    includes *session_start* and excludes *session_end*.
    """
    exchange_time = (utc_now + timedelta(hours=utc_offset_hours)).time()
    return session_start <= exchange_time < session_end


def traded_today(utc_now: datetime, last_trade_date: Optional[date]) -> bool:
    """True when a trade was already recorded on *utc_now*'s date."""
    return last_trade_date is not None and utc_now.date() == last_trade_date


def has_open_position(
    positions: Iterable[OpenPosition],
    label: str,
    symbol: str,
) -> bool:
    """True if any position carries *label* on *symbol*."""
    return any(p.label == label and p.symbol == symbol for p in positions)


def check_admission(
    utc_now: datetime,
    last_trade_date: Optional[date],
    positions: Iterable[OpenPosition],
    label: str,
    symbol: str,
    session_start: time = time(9, 0),
    session_end: time = time(15, 0),
    utc_offset_hours: float = 3.0,
) -> GateDecision:
    """Run the admission predicates in order; the first failure wins."""
    if not is_in_session(utc_now, session_start, session_end, utc_offset_hours):
        return GateDecision(False, "outside_session")
    if traded_today(utc_now, last_trade_date):
        return GateDecision(False, "daily_limit_reached")
    if has_open_position(positions, label, symbol):
        return GateDecision(False, "position_open")
    return GateDecision(True)
