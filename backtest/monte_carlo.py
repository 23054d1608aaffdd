# backtest/monte_carlo.py
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from models.report import MonteCarloResult


def run_monte_carlo(
    pnls: Sequence[float],
    initial_capital: float,
    simulations: int = 1000,
    ruin_threshold_pct: float = 50.0,
    rng: Optional[np.random.Generator] = None,
) -> MonteCarloResult:
    """
    Bootstrap the trade P&L sequence (draws with replacement) `simulations` times,
    replay each draw from initial capital and record its max drawdown %.

    Each row of the (simulations, n_trades) matrix is an independent trial;
    only the percentile / ruin reduction looks across rows.
    Ruin = equity touching initial * (1 - ruin_threshold_pct/100) at any step.
    """
    p = np.asarray(pnls, dtype="float64")
    if p.size == 0 or simulations <= 0:
        return MonteCarloResult()

    rng = rng or np.random.default_rng()
    draws = rng.choice(p, size=(simulations, p.size), replace=True)

    start = np.full((simulations, 1), float(initial_capital))
    paths = np.hstack([start, initial_capital + np.cumsum(draws, axis=1)])
    peaks = np.maximum.accumulate(paths, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd_pct = np.where(peaks > 0, (peaks - paths) / peaks * 100.0, 0.0)
    max_dd = np.sort(dd_pct.max(axis=1))

    ruin_level = initial_capital * (1.0 - ruin_threshold_pct / 100.0)
    ruined = (paths.min(axis=1) <= ruin_level).sum()

    return MonteCarloResult(
        simulations=int(simulations),
        drawdown_distribution=[round(float(x), 4) for x in max_dd],
        median_drawdown=round(float(np.percentile(max_dd, 50)), 2),
        percentile95_drawdown=round(float(np.percentile(max_dd, 95)), 2),
        worst_case_drawdown=round(float(max_dd[-1]), 2),
        risk_of_ruin=round(float(ruined) / simulations * 100.0, 2),
        band_p5=[round(float(x), 2) for x in np.percentile(paths, 5, axis=0)],
        band_p50=[round(float(x), 2) for x in np.percentile(paths, 50, axis=0)],
        band_p95=[round(float(x), 2) for x in np.percentile(paths, 95, axis=0)],
    )
