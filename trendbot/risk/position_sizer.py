"""Position sizing — pure math, no I/O.

Converts a fractional risk budget and a stop-loss distance into a volume
quantised to the broker's step and bounded by its min/max.
"""

import math
from dataclasses import dataclass
from decimal import Decimal

from trendbot.errors import InvalidConfigError, InvalidRiskError, UnaffordableError

# Absorbs float error in raw / step (e.g. 0.3 / 0.1 = 2.9999999999999996).
_STEP_EPSILON = 1e-9


def _step_decimals(volume_step: float) -> int:
    """Decimal places of *volume_step* (0.01 -> 2, 1000 -> 0)."""
    exponent = Decimal(str(volume_step)).normalize().as_tuple().exponent
    return max(0, -exponent)


@dataclass(frozen=True)
class SizingResult:
    """Computed volume plus the figures that produced it."""

    volume: float
    risk_amount: float
    risk_per_unit: float
    raw_units: float
    clamped_to_min: bool = False
    clamped_to_max: bool = False


def calculate_volume(
    balance: float,
    risk_pct: float,
    stop_loss_pips: float,
    pip_value: float,
    pip_size: float,
    volume_step: float,
    volume_min: float,
    volume_max: float,
) -> SizingResult:
    """Calculate an order volume in broker units.

    Formula::

        risk_amount   = balance × (risk_pct / 100)
        risk_per_unit = stop_loss_pips × pip_value
        raw_units     = risk_amount / risk_per_unit
        volume        = floor(raw_units / step) × step

    The quantised volume is rounded to the step's decimal places, so a
    step of 0.01 yields 0.07 rather than 0.07000000000000001.

    A volume below *volume_min* is raised to the minimum only if the
    minimum still fits inside the risk budget; a volume above
    *volume_max* is capped.

    Args:
        balance: Account balance in account currency (e.g. 10_000.0).
        risk_pct: Percentage of balance to risk (0 < risk_pct <= 100).
        stop_loss_pips: Stop-loss distance in pips.
        pip_value: Account-currency value of one pip per unit.
        pip_size: Price size of one pip.
        volume_step: Broker volume increment.
        volume_min: Smallest tradable volume.
        volume_max: Largest tradable volume.

    Raises:
        InvalidConfigError: Non-positive stop-loss, pip size, pip value or
            volume step.
        InvalidRiskError: Non-positive balance, risk outside (0, 100], or a
            non-positive risk per unit.
        UnaffordableError: The minimum volume would risk more than the
            budget, or no positive volume remains.
    """
    if stop_loss_pips <= 0:
        raise InvalidConfigError(f"stop_loss_pips must be positive, got {stop_loss_pips}")
    if pip_value <= 0:
        raise InvalidConfigError(f"pip_value must be positive, got {pip_value}")
    if pip_size <= 0:
        raise InvalidConfigError(f"pip_size must be positive, got {pip_size}")
    if balance <= 0:
        raise InvalidRiskError(f"balance must be positive, got {balance}")
    if not 0 < risk_pct <= 100:
        raise InvalidRiskError(f"risk_pct must be in (0, 100], got {risk_pct}")

    risk_amount = balance * (risk_pct / 100.0)
    risk_per_unit = stop_loss_pips * pip_value
    if risk_per_unit <= 0:
        raise InvalidRiskError(f"risk per unit must be positive, got {risk_per_unit}")

    raw_units = risk_amount / risk_per_unit

    if volume_step <= 0:
        raise InvalidConfigError(f"volume_step must be positive, got {volume_step}")
    units = math.floor(raw_units / volume_step + _STEP_EPSILON) * volume_step
    # 3 × 0.1 = 0.30000000000000004
    units = round(units, _step_decimals(volume_step))

    clamped_to_min = False
    clamped_to_max = False

    if units < volume_min:
        units = volume_min
        clamped_to_min = True
        min_cost = volume_min * risk_per_unit
        if min_cost > risk_amount and risk_amount > 0:
            raise UnaffordableError(
                f"minimum volume {volume_min} risks {min_cost:.2f}, "
                f"budget is {risk_amount:.2f}"
            )

    if units > volume_max:
        units = volume_max
        clamped_to_max = True

    if units <= 0:
        raise UnaffordableError(f"final volume is not positive ({units})")

    return SizingResult(
        volume=units,
        risk_amount=risk_amount,
        risk_per_unit=risk_per_unit,
        raw_units=raw_units,
        clamped_to_min=clamped_to_min,
        clamped_to_max=clamped_to_max,
    )
