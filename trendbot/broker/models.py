"""Broker-facing models — what the host supplies and what the engine emits."""

from dataclasses import dataclass
from typing import Literal, Optional

Side = Literal["buy", "sell"]


@dataclass(frozen=True)
class SymbolMetadata:
    """Instrument attributes read from the host.

    Volumes are in base units (e.g. 1000 = 0.01 lot on a 100k contract).
    """

    name: str
    pip_size: float
    pip_value: float  # account currency per pip per unit
    volume_min: float
    volume_max: float
    volume_step: float
    digits: int = 5


@dataclass(frozen=True)
class AccountSnapshot:
    """Balance of the trading account."""

    balance: float
    currency: str = "USD"


@dataclass(frozen=True)
class Quote:
    """Current bid/ask of the traded symbol."""

    bid: float
    ask: float


@dataclass(frozen=True)
class OpenPosition:
    """An open position as reported by the host."""

    position_id: str
    symbol: str
    label: str
    side: Side
    entry_price: float
    volume: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None


@dataclass(frozen=True)
class OrderIntent:
    """A market order the host should submit."""

    side: Side
    volume: float
    stop_loss_pips: float
    take_profit_pips: float
    label: str
    symbol: str


@dataclass(frozen=True)
class TrailingStopIntent:
    """A stop-loss modification for an open position."""

    position_id: str
    new_stop_loss: float


@dataclass(frozen=True)
class ExecutionResult:
    """The host's answer after acting on an ``OrderIntent``."""

    success: bool
    position_id: Optional[str] = None
    entry_price: Optional[float] = None
    error: str = ""
