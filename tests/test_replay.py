"""Tests for the paper broker, the replay runner and the CLI entry point."""

from dataclasses import replace
from datetime import datetime, time, timedelta, timezone

import pandas as pd
import pytest

from trendbot.api.routers import reset_state
from trendbot.broker.models import OrderIntent, SymbolMetadata, TrailingStopIntent
from trendbot.broker.paper import PaperBroker
from trendbot.cli.dashboard import print_summary
from trendbot.config import Config
from trendbot.engine import TradingEngine
from trendbot.main import _run_cli
from trendbot.replay import ReplayRunner
from trendbot.strategy.models import PriceBar

LABEL = "MarketTrendBot_v2"
_T0 = datetime(2025, 3, 3, tzinfo=timezone.utc)

EURUSD = SymbolMetadata(
    name="EURUSD",
    pip_size=0.0001,
    pip_value=0.0001,
    volume_min=1_000,
    volume_max=10_000_000,
    volume_step=1_000,
    digits=5,
)


@pytest.fixture(autouse=True)
def _reset_api_state():
    reset_state()
    yield
    reset_state()


def _make_config(**overrides) -> Config:
    base = Config(
        session_start=time(0, 0),
        session_end=time(23, 59),
        utc_offset_hours=0.0,
        context_strategy="momentum",
        momentum_lookback=3,
        momentum_threshold_pips=20.0,
    )
    return replace(base, **overrides)


def _make_bar(i: int, close: float, high: float = None, low: float = None) -> PriceBar:
    return PriceBar(
        timestamp=_T0 + timedelta(hours=i),
        open=close,
        high=high if high is not None else close + 0.0005,
        low=low if low is not None else close - 0.0005,
        close=close,
    )


def _order(side: str = "buy", volume: float = 50_000) -> OrderIntent:
    return OrderIntent(
        side=side,
        volume=volume,
        stop_loss_pips=20,
        take_profit_pips=40,
        label=LABEL,
        symbol="EURUSD",
    )


def _rising_frame(n: int = 8, step: float = 0.0020) -> pd.DataFrame:
    """Hourly bars rising *step* per bar from 1.1000."""
    closes = [1.1000 + i * step for i in range(n)]
    return pd.DataFrame({
        "time": pd.date_range("2025-03-03 00:00", periods=n, freq="1h", tz="UTC"),
        "open": closes,
        "high": [c + 0.0005 for c in closes],
        "low": [c - 0.0005 for c in closes],
        "close": closes,
        "volume": [100.0] * n,
    })


# ── Paper broker ─────────────────────────────────────────────────────────


class TestPaperBroker:
    def test_buy_fill_sets_rounded_stops(self):
        broker = PaperBroker(EURUSD)
        result = broker.execute(_order(), _make_bar(0, 1.1000))
        assert result.success is True
        assert result.position_id == "1"
        position = broker.positions[0]
        assert position.entry_price == pytest.approx(1.1000)
        assert position.stop_loss == 1.0980
        assert position.take_profit == 1.1040
        assert position.label == LABEL

    def test_sell_fill_uses_bid(self):
        broker = PaperBroker(EURUSD, spread_pips=2)
        broker.execute(_order("sell"), _make_bar(0, 1.1000))
        position = broker.positions[0]
        assert position.entry_price == pytest.approx(1.1000)
        assert position.stop_loss == 1.1020
        assert position.take_profit == 1.0960

    def test_spread_on_ask(self):
        broker = PaperBroker(EURUSD, spread_pips=2)
        quote = broker.quote_for(_make_bar(0, 1.1000))
        assert quote.ask - quote.bid == pytest.approx(0.0002)

    def test_zero_volume_rejected(self):
        broker = PaperBroker(EURUSD)
        result = broker.execute(_order(volume=0), _make_bar(0, 1.1000))
        assert result.success is False
        assert broker.positions == []

    def test_take_profit_credits_balance(self):
        broker = PaperBroker(EURUSD, balance=10_000)
        broker.execute(_order(), _make_bar(0, 1.1000))
        closed = broker.update(_make_bar(1, 1.1040, high=1.1045))
        assert closed[0]["reason"] == "TP hit"
        assert closed[0]["pnl"] == pytest.approx(200.0)  # 40 pips × 0.0001 × 50 000
        assert broker.account.balance == pytest.approx(10_200.0)
        assert broker.positions == []

    def test_stop_wins_when_both_touched(self):
        broker = PaperBroker(EURUSD, balance=10_000)
        broker.execute(_order(), _make_bar(0, 1.1000))
        closed = broker.update(_make_bar(1, 1.1000, high=1.1050, low=1.0970))
        assert closed[0]["reason"] == "SL hit"
        assert broker.account.balance == pytest.approx(9_900.0)

    def test_modify(self):
        broker = PaperBroker(EURUSD)
        broker.execute(_order(), _make_bar(0, 1.1000))
        assert broker.modify(TrailingStopIntent("1", 1.1010)) is True
        assert broker.positions[0].stop_loss == 1.1010
        assert broker.modify(TrailingStopIntent("99", 1.1010)) is False


# ── Replay ───────────────────────────────────────────────────────────────


class TestReplayRunner:
    def test_one_trade_per_day_and_take_profit(self):
        engine = TradingEngine.from_config(_make_config(), EURUSD)
        broker = PaperBroker(EURUSD, balance=10_000)
        summary = ReplayRunner(engine, broker).run(_rising_frame())

        assert summary["bars"] == 8
        assert summary["orders"] == 1
        assert summary["errors"] == 0
        assert summary["reasons"] == {
            "insufficient_data": 3,
            "signal_found": 1,
            "daily_limit_reached": 4,
        }
        # Filled at 1.1060, target 1.1100 touched two bars later
        assert summary["closed_positions"] == 1
        assert summary["open_positions"] == 0
        assert summary["final_balance"] == pytest.approx(10_200.0)
        assert broker.closed[0]["reason"] == "TP hit"

    def test_trailing_stop_applied(self):
        engine = TradingEngine.from_config(_make_config(trailing_stop_pips=10), EURUSD)
        broker = PaperBroker(EURUSD, balance=10_000)
        summary = ReplayRunner(engine, broker).run(_rising_frame())
        assert summary["trailing_modifications"] == 1
        assert broker.closed[0]["reason"] == "TP hit"

    def test_reaction_strategy_with_higher_timeframe(self):
        config = _make_config(use_reaction_filter=True, fractal_window=1)
        engine = TradingEngine.from_config(config, EURUSD)
        broker = PaperBroker(EURUSD)
        summary = ReplayRunner(engine, broker, higher_timeframe="4h").run(_rising_frame(24))
        assert summary["strategy"] == "momentum+reaction"
        assert summary["bars"] == 24
        assert summary["errors"] == 0
        assert sum(summary["reasons"].values()) == 24

    def test_pushes_status(self):
        from trendbot.api.routers import _stream_statuses, _strategy_insight

        engine = TradingEngine.from_config(_make_config(), EURUSD)
        ReplayRunner(engine, PaperBroker(EURUSD)).run(_rising_frame(), stream_name="eurusd")
        status = _stream_statuses["eurusd"]
        assert status["running"] is False
        assert status["bars_processed"] == 8
        assert status["orders"] == 1
        assert status["strategy"] == "momentum"
        assert _strategy_insight["eurusd"]["result"] == "daily_limit_reached"


# ── Dashboard & CLI ──────────────────────────────────────────────────────


class TestDashboard:
    def test_print_summary(self, capsys):
        output = print_summary({
            "symbol": "EURUSD",
            "strategy": "momentum",
            "bars": 8,
            "orders": 1,
            "final_balance": 10_200.0,
            "currency": "USD",
            "reasons": {"daily_limit_reached": 4, "signal_found": 1},
        })
        assert "TrendBot Replay" in output
        assert "10,200.00 USD" in output
        assert output.index("daily_limit_reached") < output.index("signal_found")
        assert capsys.readouterr().out.strip() == output.strip()


class TestCli:
    def test_replay_command(self, tmp_path, monkeypatch, capsys):
        csv_path = tmp_path / "eurusd.csv"
        _rising_frame().to_csv(csv_path, index=False)

        monkeypatch.setenv("TRADE_SYMBOL", "EURUSD")
        monkeypatch.setenv("CONTEXT_STRATEGY", "momentum")
        monkeypatch.setenv("MOMENTUM_LOOKBACK", "3")
        monkeypatch.setenv("SESSION_START", "00:00")
        monkeypatch.setenv("SESSION_END", "23:59")
        monkeypatch.setenv("UTC_OFFSET_HOURS", "0")

        _run_cli([
            "--env", str(tmp_path / "nonexistent.env"),
            "replay", "--bars", str(csv_path), "--symbol", "EURUSD",
        ])
        out = capsys.readouterr().out
        assert "TrendBot Replay" in out
        assert "Orders:          1" in out
