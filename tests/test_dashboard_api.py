"""Tests for the diagnostics API endpoints."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from trendbot.api.routers import (
    SIGNAL_HISTORY_LIMIT,
    configure_routers,
    reset_state,
    update_bot_status,
    update_pending_signal,
    update_strategy_insight,
)
from trendbot.broker.models import OrderIntent, SymbolMetadata
from trendbot.broker.paper import PaperBroker
from trendbot.config import Config
from trendbot.main import app
from trendbot.strategy.models import PriceBar

client = TestClient(app)

EURUSD = SymbolMetadata("EURUSD", 0.0001, 0.0001, 1_000, 10_000_000, 1_000, 5)


@pytest.fixture(autouse=True)
def _reset_api_state():
    reset_state()
    yield
    reset_state()


# ── Helpers ──────────────────────────────────────────────────────────────


def _signal(i: int, reason: str = "ranging", direction=None) -> dict:
    return {
        "symbol": "EURUSD",
        "direction": direction,
        "context": "ranging",
        "status": "skipped",
        "reason": reason,
        "evaluated_at": f"2025-03-03T{i:02d}:00:00+00:00",
        "stream_name": "replay",
    }


# ── Tests ────────────────────────────────────────────────────────────────


class TestHealth:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestStatusEndpoint:
    def test_empty(self):
        assert client.get("/status").json() == {"streams": {}}

    def test_stream_status_merges_defaults(self):
        update_bot_status("replay", running=True, symbol="EURUSD")
        data = client.get("/status").json()["streams"]["replay"]
        assert data["running"] is True
        assert data["symbol"] == "EURUSD"
        assert data["stream_name"] == "replay"
        assert data["orders"] == 0

    def test_single_stream(self):
        update_bot_status("replay", bars_processed=42)
        assert client.get("/status/replay").json()["bars_processed"] == 42

    def test_unknown_stream(self):
        assert "error" in client.get("/status/nope").json()


class TestSignalsEndpoint:
    def test_pending_signal(self):
        assert client.get("/signals/pending").json() == {"signal": None}
        update_pending_signal(_signal(1, reason="signal_found", direction="buy"))
        data = client.get("/signals/pending").json()["signal"]
        assert data["reason"] == "signal_found"

    def test_history_newest_first(self):
        for i in range(3):
            update_pending_signal(_signal(i, reason=f"r{i}"))
        data = client.get("/signals/history", params={"limit": 2}).json()["signals"]
        assert [s["reason"] for s in data] == ["r2", "r1"]
        assert data[0]["direction"] == "—"

    def test_history_is_capped(self):
        for i in range(SIGNAL_HISTORY_LIMIT + 5):
            update_pending_signal(_signal(i % 24, reason=f"r{i}"))
        data = client.get("/signals/history", params={"limit": SIGNAL_HISTORY_LIMIT}).json()
        assert len(data["signals"]) == SIGNAL_HISTORY_LIMIT
        assert data["signals"][-1]["reason"] == "r5"

    def test_history_limit_validated(self):
        resp = client.get("/signals/history", params={"limit": 0})
        assert resp.status_code == 422


class TestInsightEndpoint:
    def test_insight(self):
        update_strategy_insight("replay", {"result": "ranging", "checks": {"trending": False}})
        data = client.get("/strategy/insight").json()["insights"]
        assert data["replay"]["result"] == "ranging"


class TestPositionsEndpoint:
    def test_no_broker(self):
        assert client.get("/positions").json() == {"positions": []}

    def test_paper_positions(self):
        broker = PaperBroker(EURUSD)
        bar = PriceBar(datetime(2025, 3, 3, tzinfo=timezone.utc), 1.1, 1.1005, 1.0995, 1.1)
        broker.execute(
            OrderIntent("buy", 50_000, 20, 40, "MarketTrendBot_v2", "EURUSD"), bar,
        )
        configure_routers(broker=broker)
        positions = client.get("/positions").json()["positions"]
        assert len(positions) == 1
        assert positions[0]["position_id"] == "1"
        assert positions[0]["side"] == "buy"
        assert positions[0]["stop_loss"] == pytest.approx(1.0980)


class TestConfigEndpoint:
    def test_no_config(self):
        assert client.get("/config").json() == {"config": None}

    def test_config_serialised(self):
        configure_routers(config=Config())
        data = client.get("/config").json()["config"]
        assert data["session_start"] == "09:00"
        assert data["session_end"] == "15:00"
        assert data["trade_label"] == "MarketTrendBot_v2"
        assert data["context_strategy"] == "channel_slope"
