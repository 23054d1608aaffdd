# backtest/metrics.py
"""
Summary statistics over a finished run: trade list + equity curve.

Every ratio goes through `_safe_div`, so a zero denominator yields 0 (or
RATIO_CAP when the numerator is positive) instead of NaN/inf.
"""
from __future__ import annotations

import math
from collections import defaultdict
from typing import List, Sequence

import numpy as np
import pandas as pd

from models.report import PerformanceMetrics
from models.trade import Trade, EquityPoint, MonthlyReturn

RATIO_CAP = 999.99
TRADING_DAYS = 252
DD_EPS = 1e-9
MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


# ---------- Helpers ----------

def _safe_div(num: float, den: float) -> float:
    if den == 0 or not math.isfinite(den):
        return RATIO_CAP if num > 0 else 0.0
    out = num / den
    if not math.isfinite(out):
        return RATIO_CAP if out > 0 else 0.0
    return max(-RATIO_CAP, min(RATIO_CAP, out))


def _r2(x: float) -> float:
    return round(float(x), 2) if math.isfinite(x) else 0.0


def _daily_returns(equity: pd.Series) -> pd.Series:
    """Bar-over-bar equity change in %."""
    if len(equity) < 2:
        return pd.Series(dtype="float64")
    return equity.pct_change().dropna() * 100.0


def _annualized_sharpe(daily_pct: pd.Series, rf_daily_pct: float = 0.0) -> float:
    if len(daily_pct) < 2 or daily_pct.std(ddof=1) == 0:
        return 0.0
    excess = daily_pct - rf_daily_pct
    return float(_safe_div(excess.mean(), daily_pct.std(ddof=1)) * math.sqrt(TRADING_DAYS))


def _annualized_sortino(daily_pct: pd.Series, rf_daily_pct: float = 0.0) -> float:
    if len(daily_pct) < 2:
        return 0.0
    excess = daily_pct - rf_daily_pct
    downside = np.minimum(excess.to_numpy(), 0.0)
    dd_dev = float(np.sqrt(np.mean(downside ** 2)))
    return float(_safe_div(float(excess.mean()), dd_dev) * (math.sqrt(TRADING_DAYS) if dd_dev > 0 else 1.0))


def _drawdown_stats(curve: Sequence[EquityPoint]) -> tuple[float, float, int]:
    """(max drawdown amount, max drawdown %, longest drawdown run in bars)."""
    if not curve:
        return 0.0, 0.0, 0
    dd_amt = max(p.drawdown for p in curve)
    dd_pct = max(p.drawdown_pct for p in curve)
    longest = run = 0
    for p in curve:
        run = run + 1 if p.drawdown_pct > DD_EPS else 0
        longest = max(longest, run)
    return float(dd_amt), float(dd_pct), longest


def _streaks(trades: Sequence[Trade]) -> tuple[int, int]:
    best_w = best_l = w = l = 0
    for t in trades:
        if t.pnl > 0:
            w, l = w + 1, 0
        else:
            w, l = 0, l + 1
        best_w, best_l = max(best_w, w), max(best_l, l)
    return best_w, best_l


def _time_in_market_pct(trades: Sequence[Trade], curve: Sequence[EquityPoint]) -> float:
    if not curve or not trades:
        return 0.0
    dates = pd.DatetimeIndex([p.date for p in curve])
    held = np.zeros(len(dates), dtype=bool)
    for t in trades:
        held |= (dates >= t.entry_date) & (dates <= t.exit_date)
    return float(held.sum()) / len(dates) * 100.0


# ---------- Monthly returns ----------

def monthly_returns(trades: Sequence[Trade]) -> List[MonthlyReturn]:
    """Sum of trade pnl % bucketed by exit month, chronological."""
    buckets: dict[tuple[int, int], list[float]] = defaultdict(list)
    for t in trades:
        d = pd.Timestamp(t.exit_date)
        buckets[(d.year, d.month)].append(t.pnl_pct)
    out = []
    for (y, m), pcts in sorted(buckets.items()):
        out.append(MonthlyReturn(year=y, month=m, label=f"{MONTHS[m - 1]} {y}",
                                 return_pct=_r2(sum(pcts)), trades=len(pcts)))
    return out


# ---------- Metrics ----------

def calculate_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
    risk_free_rate: float = 6.5,
) -> PerformanceMetrics:
    """Performance summary; all-zero metrics when there are no trades."""
    if not trades:
        return PerformanceMetrics()

    pnls = np.array([t.pnl for t in trades], dtype="float64")
    pcts = np.array([t.pnl_pct for t in trades], dtype="float64")
    wins = pnls[pnls > 0]
    losses = pnls[pnls <= 0]
    win_pcts = pcts[pnls > 0]
    loss_pcts = pcts[pnls <= 0]

    final_equity = equity_curve[-1].equity if equity_curve else initial_capital + float(pnls.sum())
    net_profit = final_equity - initial_capital
    total_return_pct = net_profit / initial_capital * 100.0

    # CAGR over the simulated span (floored at ~5 weeks to keep it finite)
    if equity_curve:
        span_days = (pd.Timestamp(equity_curve[-1].date) - pd.Timestamp(equity_curve[0].date)).days
    else:
        span_days = 0
    years = max(0.1, span_days / 365.25)
    growth = final_equity / initial_capital
    cagr = (growth ** (1.0 / years) - 1.0) * 100.0 if growth > 0 else -100.0

    dd_amt, dd_pct, dd_bars = _drawdown_stats(equity_curve)

    # Sharpe / Sortino from daily equity changes
    eq = pd.Series([p.equity for p in equity_curve], dtype="float64")
    daily = _daily_returns(eq)
    rf_daily = risk_free_rate / TRADING_DAYS
    sharpe = _annualized_sharpe(daily, rf_daily)
    sortino = _annualized_sortino(daily, rf_daily)

    # historical VaR / CVaR on trade % returns
    sorted_pcts = np.sort(pcts)
    k = int(math.floor(len(sorted_pcts) * 0.05))
    var_95 = float(sorted_pcts[k])
    cvar_95 = float(sorted_pcts[: k + 1].mean())

    gross_profit = float(wins.sum())
    gross_loss = float(-losses.sum())
    avg_win = float(wins.mean()) if wins.size else 0.0
    avg_loss = float(-losses.mean()) if losses.size else 0.0
    max_w, max_l = _streaks(trades)

    months = monthly_returns(trades)
    best = max(months, key=lambda m: m.return_pct)
    worst = min(months, key=lambda m: m.return_pct)

    return PerformanceMetrics(
        total_return_pct=_r2(total_return_pct),
        cagr=_r2(cagr),
        avg_trade_pct=_r2(pcts.mean()),
        best_trade_pct=_r2(pcts.max()),
        worst_trade_pct=_r2(pcts.min()),
        max_drawdown=_r2(dd_amt),
        max_drawdown_pct=_r2(dd_pct),
        max_drawdown_duration=dd_bars,
        var_95=_r2(var_95),
        cvar_95=_r2(cvar_95),
        sharpe_ratio=_r2(sharpe),
        sortino_ratio=_r2(sortino),
        calmar_ratio=_r2(_safe_div(cagr, dd_pct)),
        recovery_factor=_r2(_safe_div(net_profit, dd_amt)),
        total_trades=len(trades),
        win_rate=_r2(wins.size / len(trades) * 100.0),
        profit_factor=_r2(_safe_div(gross_profit, gross_loss)),
        expectancy=_r2(pnls.mean()),
        avg_win_loss_ratio=_r2(_safe_div(avg_win, avg_loss)),
        avg_win=_r2(avg_win),
        avg_loss=_r2(avg_loss),
        avg_win_pct=_r2(win_pcts.mean()) if win_pcts.size else 0.0,
        avg_loss_pct=_r2(-loss_pcts.mean()) if loss_pcts.size else 0.0,
        max_consecutive_wins=max_w,
        max_consecutive_losses=max_l,
        avg_holding_days=_r2(np.mean([t.holding_days for t in trades])),
        time_in_market_pct=_r2(_time_in_market_pct(trades, equity_curve)),
        best_month=best.label if best.return_pct > 0 else "-",
        best_month_pct=best.return_pct if best.return_pct > 0 else 0.0,
        worst_month=worst.label if worst.return_pct < 0 else "-",
        worst_month_pct=worst.return_pct if worst.return_pct < 0 else 0.0,
    )
