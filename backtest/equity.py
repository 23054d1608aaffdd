# backtest/equity.py
from __future__ import annotations

from typing import List

import pandas as pd

from models.trade import EquityPoint


class EquityTracker:
    """Per-run mark-to-market curve with a running peak (starts at initial capital)."""

    def __init__(self, initial_capital: float):
        self.peak = float(initial_capital)
        self._prev_peak = self.peak
        self.points: List[EquityPoint] = []

    def _point(self, date: pd.Timestamp, equity: float) -> EquityPoint:
        dd = self.peak - equity
        dd_pct = (dd / self.peak * 100.0) if self.peak > 0 else 0.0
        return EquityPoint(date=date, equity=float(equity), drawdown=float(dd), drawdown_pct=float(dd_pct))

    def mark(self, date: pd.Timestamp, equity: float) -> EquityPoint:
        if self.points and date <= self.points[-1].date:
            raise ValueError(f"Equity points must be date-ordered: {date} after {self.points[-1].date}")
        self._prev_peak = self.peak
        self.peak = max(self.peak, equity)
        pt = self._point(date, equity)
        self.points.append(pt)
        return pt

    def restate_last(self, equity: float) -> EquityPoint:
        """Replace the last point's equity (end-of-run close books the exit cost on the final bar)."""
        if not self.points:
            raise ValueError("No equity point to restate")
        self.peak = max(self._prev_peak, equity)
        pt = self._point(self.points[-1].date, equity)
        self.points[-1] = pt
        return pt


def benchmark_curve(bench: pd.DataFrame, initial_capital: float, start_index: int) -> List[EquityPoint]:
    """Buy-and-hold curve of `bench` closes from start_index, scaled to initial capital."""
    if bench is None or bench.empty:
        return []
    start = min(start_index, len(bench) - 1)
    closes = bench["Close"].iloc[start:]
    start_px = float(closes.iloc[0])
    if start_px <= 0:
        return []
    tracker = EquityTracker(initial_capital)
    for dt, px in closes.items():
        tracker.mark(dt, initial_capital * float(px) / start_px)
    return tracker.points
