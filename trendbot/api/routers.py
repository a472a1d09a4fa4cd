"""Internal API routers — /status, /signals, /strategy/insight, /positions, /config.

No business logic.  Serves the snapshots the host pushes after each
evaluation, plus read-only views of the paper broker and configuration.
"""

import dataclasses
import logging
from typing import Optional

from fastapi import APIRouter, Query

logger = logging.getLogger("trendbot")
router = APIRouter()

# ── Shared state (pushed by the host after each evaluation) ──────────────

_DEFAULT_STREAM_STATUS: dict = {
    "mode": "idle",
    "running": False,
    "symbol": None,
    "strategy": None,
    "balance": None,
    "open_positions": 0,
    "bars_processed": 0,
    "orders": 0,
}

SIGNAL_HISTORY_LIMIT = 50

# Keyed by stream name → status dict
_stream_statuses: dict[str, dict] = {}

_broker = None          # Set via configure_routers()
_config = None          # Set via configure_routers()
_pending_signal: Optional[dict] = None
_strategy_insight: dict = {}
_signal_history: list = []


def configure_routers(broker=None, config=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        broker: A ``PaperBroker`` (or duck-type exposing ``positions``).
        config: The active ``Config``.
    """
    global _broker, _config  # noqa: PLW0603
    _broker = broker
    _config = config


def reset_state() -> None:
    """Forget all pushed snapshots and injected dependencies."""
    global _pending_signal, _broker, _config  # noqa: PLW0603
    _stream_statuses.clear()
    _strategy_insight.clear()
    _signal_history.clear()
    _pending_signal = None
    _broker = None
    _config = None


def update_bot_status(stream_name: str = "default", **fields) -> None:
    """Update individual fields of a stream's status dict."""
    if stream_name not in _stream_statuses:
        _stream_statuses[stream_name] = {
            **_DEFAULT_STREAM_STATUS,
            "stream_name": stream_name,
        }
    _stream_statuses[stream_name].update(fields)


def update_pending_signal(signal_data: Optional[dict]) -> None:
    """Store the last evaluation and append it to the signal history.

    Every evaluation is logged (orders and skips alike) so the history is a
    complete decision timeline.
    """
    global _pending_signal  # noqa: PLW0603
    _pending_signal = signal_data
    if signal_data:
        _signal_history.append({
            "symbol": signal_data.get("symbol", ""),
            "direction": signal_data.get("direction") or "—",
            "context": signal_data.get("context", ""),
            "status": signal_data.get("status", ""),
            "reason": signal_data.get("reason", ""),
            "evaluated_at": signal_data.get("evaluated_at", ""),
            "stream_name": signal_data.get("stream_name", ""),
        })
        if len(_signal_history) > SIGNAL_HISTORY_LIMIT:
            del _signal_history[0]


def update_strategy_insight(stream_name: str, insight: dict) -> None:
    """Store per-bar strategy analysis."""
    _strategy_insight[stream_name] = insight


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return status for all streams."""
    return {"streams": dict(_stream_statuses)}


@router.get("/status/{stream_name}")
async def get_stream_status(stream_name: str):
    """Return status for a single stream."""
    status = _stream_statuses.get(stream_name)
    if status is None:
        return {"error": f"Unknown stream: {stream_name}"}
    return status


@router.get("/signals/pending")
async def get_pending_signal():
    """Return the last evaluation."""
    return {"signal": _pending_signal}


@router.get("/signals/history")
async def get_signal_history(
    limit: int = Query(default=20, ge=1, le=SIGNAL_HISTORY_LIMIT),
):
    """Return recent evaluations, newest first."""
    recent = _signal_history[-limit:]
    recent.reverse()
    return {"signals": recent}


@router.get("/strategy/insight")
async def get_strategy_insight():
    """Return the latest per-check analysis for every stream."""
    return {"insights": _strategy_insight}


@router.get("/positions")
async def get_positions():
    """Return open positions held by the paper broker."""
    if _broker is None:
        return {"positions": []}
    return {"positions": [dataclasses.asdict(p) for p in _broker.positions]}


@router.get("/config")
async def get_config():
    """Return the active configuration."""
    if _config is None:
        return {"config": None}
    data = dataclasses.asdict(_config)
    for key in ("session_start", "session_end"):
        data[key] = data[key].strftime("%H:%M")
    return {"config": data}
