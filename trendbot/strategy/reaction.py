"""Breakout-then-reaction state machine over higher-timeframe fractals.

Delays trend-following entries until a counter-trend fractal is broken and
price then reacts back in the trend direction.

Phases:
    IDLE               no level tracked
    LEVEL_TRACKED      a fractal level is known and not yet broken
    AWAITING_REACTION  the level broke; waiting for a reaction of
                       *reaction_pct* percent from the breakout close

The machine is an immutable value.  ``advance()`` is a pure transition
function: the caller stores the returned machine.  Only a confirmed
``AWAITING_REACTION → IDLE`` transition carries an entry direction.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from trendbot.errors import InvalidConfigError
from trendbot.strategy.fractals import find_latest_fractal
from trendbot.strategy.models import (
    Direction,
    FractalLevel,
    MarketContext,
    PriceBar,
    ReactionWaitState,
)


class ReactionPhase(str, Enum):
    IDLE = "idle"
    LEVEL_TRACKED = "level_tracked"
    AWAITING_REACTION = "awaiting_reaction"


@dataclass(frozen=True)
class ReactionParams:
    """Tuning for the state machine.

    Args:
        fractal_window: Bars on each side a fractal must beat.
        reaction_pct: Percentage move from the breakout close that confirms
            (in the trend direction) or negates (against it) the reaction.
        timeout: Longest wait for a reaction after the breakout.
    """

    fractal_window: int = 2
    reaction_pct: float = 0.1
    timeout: timedelta = timedelta(hours=4)

    def __post_init__(self) -> None:
        if self.fractal_window < 1:
            raise InvalidConfigError(
                f"fractal_window must be >= 1, got {self.fractal_window}"
            )
        if self.reaction_pct <= 0:
            raise InvalidConfigError(
                f"reaction_pct must be positive, got {self.reaction_pct}"
            )
        if self.timeout <= timedelta(0):
            raise InvalidConfigError(f"timeout must be positive, got {self.timeout}")


@dataclass(frozen=True)
class ReactionMachine:
    """Current phase plus the data that phase owns."""

    phase: ReactionPhase = ReactionPhase.IDLE
    direction: Optional[Direction] = None
    level: Optional[FractalLevel] = None
    wait: Optional[ReactionWaitState] = None

    def as_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "direction": self.direction,
            "level": self.level.price if self.level else None,
            "breakout_close": self.wait.breakout_close if self.wait else None,
            "target_price": self.wait.target_price if self.wait else None,
            "wait_start": self.wait.wait_start.isoformat() if self.wait else None,
        }


IDLE = ReactionMachine()


@dataclass(frozen=True)
class ReactionStep:
    """Result of one transition."""

    machine: ReactionMachine
    signal: Optional[Direction] = None
    transition: str = "none"


def _track_level(
    direction: Direction,
    higher_bars: Sequence[PriceBar],
    params: ReactionParams,
) -> ReactionStep:
    # An up trend waits for a pullback through the latest down-fractal low,
    # a down trend for a rally through the latest up-fractal high.
    fractal_kind: Direction = "down" if direction == "up" else "up"
    level = find_latest_fractal(higher_bars, fractal_kind, params.fractal_window)
    if level is None:
        return ReactionStep(IDLE, transition="no_fractal")
    return ReactionStep(
        ReactionMachine(
            phase=ReactionPhase.LEVEL_TRACKED,
            direction=direction,
            level=level,
        ),
        transition="level_tracked",
    )


def _check_breakout(
    machine: ReactionMachine,
    bar: PriceBar,
    params: ReactionParams,
) -> ReactionStep:
    level = machine.level
    pct = params.reaction_pct / 100.0

    if machine.direction == "up":
        if not bar.low < level.price:
            return ReactionStep(machine, transition="waiting_breakout")
        wait = ReactionWaitState(
            direction="up",
            breakout_close=bar.close,
            target_price=bar.close * (1 + pct),
            negation_price=bar.close * (1 - pct),
            wait_start=bar.timestamp,
        )
    else:
        if not bar.high > level.price:
            return ReactionStep(machine, transition="waiting_breakout")
        wait = ReactionWaitState(
            direction="down",
            breakout_close=bar.close,
            target_price=bar.close * (1 - pct),
            negation_price=bar.close * (1 + pct),
            wait_start=bar.timestamp,
        )

    return ReactionStep(
        ReactionMachine(
            phase=ReactionPhase.AWAITING_REACTION,
            direction=machine.direction,
            level=level,
            wait=wait,
        ),
        transition="level_broken",
    )


def _check_reaction(
    machine: ReactionMachine,
    bar: PriceBar,
    params: ReactionParams,
) -> ReactionStep:
    wait = machine.wait

    if bar.timestamp - wait.wait_start > params.timeout:
        return ReactionStep(IDLE, transition="timed_out")

    if wait.direction == "up":
        if bar.close > wait.target_price:
            return ReactionStep(IDLE, signal="up", transition="confirmed")
        if bar.low < wait.negation_price:
            return ReactionStep(IDLE, transition="negated")
    else:
        if bar.close < wait.target_price:
            return ReactionStep(IDLE, signal="down", transition="confirmed")
        if bar.high > wait.negation_price:
            return ReactionStep(IDLE, transition="negated")

    return ReactionStep(machine, transition="waiting_reaction")


def advance(
    machine: ReactionMachine,
    context: MarketContext,
    bar: PriceBar,
    higher_bars: Sequence[PriceBar],
    params: ReactionParams,
) -> ReactionStep:
    """Apply one closed *bar* to *machine*.

    A context that no longer matches the machine's direction drops the
    tracked level and any wait state before the new context is handled.
    """
    direction = context.direction
    reset = False
    if machine.phase is not ReactionPhase.IDLE and machine.direction != direction:
        machine = IDLE
        reset = True

    if direction is None:
        return ReactionStep(IDLE, transition="context_reset" if reset else "none")

    if machine.phase is ReactionPhase.IDLE:
        step = _track_level(direction, higher_bars, params)
    elif machine.phase is ReactionPhase.LEVEL_TRACKED:
        step = _check_breakout(machine, bar, params)
    else:
        step = _check_reaction(machine, bar, params)

    if reset:
        return ReactionStep(step.machine, step.signal, f"context_reset+{step.transition}")
    return step


def wait_elapsed(machine: ReactionMachine, now: datetime) -> Optional[timedelta]:
    """Time spent awaiting a reaction, or ``None`` outside that phase."""
    if machine.wait is None:
        return None
    return now - machine.wait.wait_start
