# data/bars.py
"""
Bar loading + validation.

A bar frame is a pandas DataFrame with columns Open/High/Low/Close/Volume and a
DatetimeIndex that is strictly ascending with no duplicates. Everything
downstream (indicators, rules, engine) assumes that shape.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

OHLCV = ("Open", "High", "Low", "Close", "Volume")


def normalize_bars(df: pd.DataFrame) -> pd.DataFrame:
    """Return a validated copy of `df` with canonical OHLCV columns.

    Accepts lowercase / spaced column names and a 'Date' column in place of a
    DatetimeIndex. Raises ValueError on missing columns, non-numeric prices,
    unsorted or duplicated dates.
    """
    if df is None or df.empty:
        raise ValueError("Empty DataFrame")

    df = df.copy()
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)
    df.columns = [str(c).strip().title() for c in df.columns]
    if "Close" not in df.columns and "Adj Close" in df.columns:
        df = df.rename(columns={"Adj Close": "Close"})

    if "Date" in df.columns:
        df = df.set_index("Date")
    if not isinstance(df.index, pd.DatetimeIndex):
        try:
            df.index = pd.to_datetime(df.index)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Bar index is not date-like: {e}") from e
    df.index.name = "Date"

    for col in OHLCV:
        if col not in df.columns:
            raise ValueError(f"Missing column: {col}")
        df[col] = pd.to_numeric(df[col], errors="coerce").astype("float64")
        if df[col].isna().any():
            raise ValueError(f"Non-numeric or missing values in column: {col}")

    if df.index.has_duplicates:
        dupes = df.index[df.index.duplicated()].unique()
        raise ValueError(f"Duplicate bar dates: {[str(d.date()) for d in dupes[:5]]}")
    if not df.index.is_monotonic_increasing:
        raise ValueError("Bars must be in strictly ascending date order")

    return df[list(OHLCV)]


def bars_from_records(records: Iterable[dict]) -> pd.DataFrame:
    """Build a bar frame from dicts like {date, open, high, low, close, volume}."""
    rows = list(records)
    if not rows:
        raise ValueError("No bar records")
    return normalize_bars(pd.DataFrame(rows))


def load_bars_csv(path: str | Path) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Bars file not found: {p.resolve()}")
    return normalize_bars(pd.read_csv(p))


def window(bars: pd.DataFrame, i: int) -> pd.DataFrame:
    """Read-only view of bars[0..i]; rows after i are not reachable from it."""
    if i < 0 or i >= len(bars):
        raise IndexError(f"bar index {i} out of range for {len(bars)} bars")
    return bars.iloc[: i + 1]


def synthetic_bars(closes, start: str = "2023-01-02", spread: float = 0.01, volume: float = 1e6) -> pd.DataFrame:
    """Business-day bar frame from a close path; open = prior close, high/low pad by `spread`."""
    close = np.asarray(closes, dtype="float64")
    if close.size == 0:
        raise ValueError("Empty close path")
    opens = np.concatenate([[close[0]], close[:-1]])
    high = np.maximum(opens, close) * (1 + spread)
    low = np.minimum(opens, close) * (1 - spread)
    idx = pd.bdate_range(start=start, periods=len(close), name="Date")
    return pd.DataFrame(
        {"Open": opens, "High": high, "Low": low, "Close": close, "Volume": np.full(len(close), volume)},
        index=idx,
    )
