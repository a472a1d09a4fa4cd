"""Tests for position sizing and trailing stops."""

import pytest

from trendbot.broker.models import OpenPosition, Quote, SymbolMetadata
from trendbot.errors import (
    InvalidConfigError,
    InvalidRiskError,
    SizingError,
    UnaffordableError,
)
from trendbot.risk.position_sizer import calculate_volume
from trendbot.risk.trailing_stop import evaluate_trailing_stops, trailing_candidate

LABEL = "MarketTrendBot_v2"
EURUSD = SymbolMetadata(
    name="EURUSD",
    pip_size=0.0001,
    pip_value=0.0001,
    volume_min=1_000,
    volume_max=10_000_000,
    volume_step=1_000,
    digits=5,
)


def _size(**overrides):
    params = dict(
        balance=10_000.0,
        risk_pct=1.0,
        stop_loss_pips=20.0,
        pip_value=0.0001,
        pip_size=0.0001,
        volume_step=1_000,
        volume_min=1_000,
        volume_max=10_000_000,
    )
    params.update(overrides)
    return calculate_volume(**params)


# ── Position sizer ───────────────────────────────────────────────────────


class TestPositionSizer:
    def test_standard_fx_lot(self):
        # 100 USD risk / (20 pips × 0.0001 USD) = 50 000 units
        result = _size()
        assert result.volume == pytest.approx(50_000)
        assert result.risk_amount == pytest.approx(100.0)
        assert result.risk_per_unit == pytest.approx(0.002)
        assert not result.clamped_to_min and not result.clamped_to_max

    def test_quantises_down_to_step(self):
        # raw 10 units, step 3 → 9
        result = _size(pip_value=1.0, stop_loss_pips=10, volume_step=3, volume_min=1, volume_max=100)
        assert result.raw_units == pytest.approx(10.0)
        assert result.volume == 9

    @pytest.mark.parametrize(
        "balance,step,expected",
        [(300.0, 0.1, 0.3), (700.0, 0.01, 0.7), (1_234.0, 0.01, 1.23)],
    )
    def test_fractional_step_has_no_float_residue(self, balance, step, expected):
        # 3 × 0.1 alone would give 0.30000000000000004
        result = _size(
            balance=balance, stop_loss_pips=10, pip_value=1.0,
            volume_step=step, volume_min=step, volume_max=100,
        )
        assert result.volume == expected

    def test_minimum_beyond_budget_is_unaffordable(self):
        # 100 risk / (20 × 1) = 5 units; minimum 1000 units would risk 20 000
        with pytest.raises(UnaffordableError):
            _size(pip_value=1.0)

    def test_affordable_minimum_is_used(self):
        # raw 5 units rounds to 0 with step 10; minimum 5 costs exactly the budget
        result = _size(pip_value=1.0, volume_step=10, volume_min=5, volume_max=1_000)
        assert result.volume == 5
        assert result.clamped_to_min is True

    def test_capped_at_maximum(self):
        result = _size(volume_max=20_000)
        assert result.volume == 20_000
        assert result.clamped_to_max is True

    @pytest.mark.parametrize("balance", [5_000.0, 10_000.0, 123_456.0, 1_000_000.0])
    def test_volume_within_bounds(self, balance):
        result = _size(balance=balance, volume_max=5_000_000)
        assert 1_000 <= result.volume <= 5_000_000
        steps = result.volume / 1_000
        assert steps == pytest.approx(round(steps))

    @pytest.mark.parametrize(
        "overrides",
        [{"stop_loss_pips": 0}, {"pip_value": 0}, {"pip_size": 0}, {"volume_step": 0}],
    )
    def test_invalid_config(self, overrides):
        with pytest.raises(InvalidConfigError):
            _size(**overrides)

    @pytest.mark.parametrize(
        "overrides",
        [{"balance": 0}, {"balance": -100}, {"risk_pct": 0}, {"risk_pct": 150}],
    )
    def test_invalid_risk(self, overrides):
        with pytest.raises(InvalidRiskError):
            _size(**overrides)

    def test_errors_share_a_base(self):
        assert issubclass(InvalidRiskError, SizingError)
        assert issubclass(UnaffordableError, SizingError)
        assert issubclass(SizingError, ValueError)


# ── Trailing stop ────────────────────────────────────────────────────────


def _position(side: str, stop_loss=None, label: str = LABEL, symbol: str = "EURUSD") -> OpenPosition:
    return OpenPosition(
        position_id="7",
        symbol=symbol,
        label=label,
        side=side,
        entry_price=1.1000,
        volume=10_000,
        stop_loss=stop_loss,
    )


class TestTrailingStop:
    def test_buy_trails_once_in_profit(self):
        intents = evaluate_trailing_stops(
            [_position("buy")], Quote(bid=1.1050, ask=1.1051), EURUSD, LABEL, 20,
        )
        assert len(intents) == 1
        assert intents[0].position_id == "7"
        assert intents[0].new_stop_loss == 1.1030

    def test_buy_not_beyond_entry(self):
        quote = Quote(bid=1.1015, ask=1.1016)
        assert trailing_candidate(_position("buy"), quote, 20, 0.0001, 5) is None

    def test_buy_never_loosens(self):
        quote = Quote(bid=1.1050, ask=1.1051)
        assert trailing_candidate(_position("buy", stop_loss=1.1035), quote, 20, 0.0001, 5) is None

    def test_reapplying_same_price_is_idempotent(self):
        quote = Quote(bid=1.1050, ask=1.1051)
        first = evaluate_trailing_stops([_position("buy")], quote, EURUSD, LABEL, 20)
        moved = _position("buy", stop_loss=first[0].new_stop_loss)
        assert evaluate_trailing_stops([moved], quote, EURUSD, LABEL, 20) == []

    def test_buy_ratchets_up(self):
        moved = _position("buy", stop_loss=1.1030)
        intents = evaluate_trailing_stops(
            [moved], Quote(bid=1.1060, ask=1.1061), EURUSD, LABEL, 20,
        )
        assert intents[0].new_stop_loss == 1.1040

    def test_sell_trails_with_ask(self):
        intents = evaluate_trailing_stops(
            [_position("sell")], Quote(bid=1.0949, ask=1.0950), EURUSD, LABEL, 20,
        )
        assert intents[0].new_stop_loss == 1.0970

    def test_sell_never_loosens(self):
        quote = Quote(bid=1.0949, ask=1.0950)
        assert trailing_candidate(_position("sell", stop_loss=1.0960), quote, 20, 0.0001, 5) is None

    def test_foreign_positions_ignored(self):
        positions = [_position("buy", label="manual"), _position("buy", symbol="GBPUSD")]
        quote = Quote(bid=1.1050, ask=1.1051)
        assert evaluate_trailing_stops(positions, quote, EURUSD, LABEL, 20) == []

    def test_zero_distance_disables(self):
        quote = Quote(bid=1.1050, ask=1.1051)
        assert evaluate_trailing_stops([_position("buy")], quote, EURUSD, LABEL, 0) == []
