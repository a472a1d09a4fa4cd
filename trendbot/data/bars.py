"""Historical bar loading and resampling for replay.

Reads ``time,open,high,low,close,volume`` CSV files into DataFrames, cleans
them (UTC timestamps, chronological order, no duplicate timestamps), builds
higher-timeframe bars by resampling, and converts rows to ``PriceBar``.

Usage (CLI):
    python -m trendbot.main replay --bars data/EURUSD_H1.csv --higher-tf 4h
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from trendbot.strategy.models import PriceBar

logger = logging.getLogger("trendbot.data")

BAR_COLUMNS = ["time", "open", "high", "low", "close", "volume"]


def clean_bars(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise raw bar data.

    1. Parse ``time`` as UTC.
    2. Sort chronologically.
    3. Drop duplicate timestamps (first occurrence wins).
    4. Drop rows with missing prices.
    """
    if df.empty:
        return df

    df = df.copy()

    if not pd.api.types.is_datetime64_any_dtype(df["time"]):
        df["time"] = pd.to_datetime(df["time"], utc=True)
    elif df["time"].dt.tz is None:
        df["time"] = df["time"].dt.tz_localize("UTC")

    if "volume" not in df.columns:
        df["volume"] = 0.0

    before = len(df)
    df = (
        df.dropna(subset=["open", "high", "low", "close"])
        .sort_values("time", kind="stable")
        .drop_duplicates(subset="time", keep="first")
        .reset_index(drop=True)
    )
    if len(df) != before:
        logger.info("Dropped %d duplicate/incomplete bars", before - len(df))
    return df


def load_bars_csv(path: Path | str) -> pd.DataFrame:
    """Load a bar CSV and return a cleaned DataFrame."""
    df = pd.read_csv(path)
    missing = [c for c in BAR_COLUMNS[:5] if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing column(s) {', '.join(missing)}")
    df = clean_bars(df)
    logger.info("Loaded %d bars from %s", len(df), path)
    return df


def resample_bars(df: pd.DataFrame, rule: str) -> pd.DataFrame:
    """Aggregate bars into a higher timeframe (e.g. ``"4h"``).

    Adds a ``close_time`` column (bucket start + *rule*) so callers can tell
    which higher bars had closed at a given moment.  Empty buckets (weekends,
    gaps) are dropped.
    """
    if df.empty:
        return pd.DataFrame(columns=BAR_COLUMNS + ["close_time"])

    agg = (
        df.set_index("time")
        .resample(rule, label="left", closed="left")
        .agg({
            "open": "first",
            "high": "max",
            "low": "min",
            "close": "last",
            "volume": "sum",
        })
        .dropna(subset=["open", "close"])
        .reset_index()
    )
    agg["close_time"] = agg["time"] + pd.Timedelta(rule)
    return agg


def frame_to_bars(df: pd.DataFrame) -> list[PriceBar]:
    """Convert DataFrame rows to ``PriceBar`` objects."""
    return [
        PriceBar(
            timestamp=row.time.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def infer_bar_interval(df: pd.DataFrame) -> pd.Timedelta:
    """Most common spacing between consecutive bars."""
    if len(df) < 2:
        return pd.Timedelta(0)
    return df["time"].diff().dropna().mode().iloc[0]
