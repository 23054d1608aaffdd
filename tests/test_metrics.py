import os
import sys

import numpy as np
import pandas as pd
import pytest

# Ensure project root is on sys.path for module resolution
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from backtest.equity import EquityTracker
from backtest.metrics import RATIO_CAP, _safe_div, calculate_metrics, monthly_returns
from backtest.monte_carlo import run_monte_carlo
from models.trade import Trade


def _trade(i, entry, exit_, pnl, pct, days=5):
    return Trade(
        id=i,
        entry_date=pd.Timestamp(entry),
        exit_date=pd.Timestamp(exit_),
        entry_price=100.0,
        exit_price=100.0 + pct,
        quantity=10,
        side="LONG",
        pnl=pnl,
        pnl_pct=pct,
        holding_days=days,
    )


def _curve(values, start="2024-01-01"):
    tr = EquityTracker(values[0])
    for d, v in zip(pd.bdate_range(start, periods=len(values)), values):
        tr.mark(d, v)
    return tr.points


def test_safe_div_sentinels():
    assert _safe_div(1.0, 0.0) == RATIO_CAP
    assert _safe_div(-1.0, 0.0) == 0.0
    assert _safe_div(0.0, 0.0) == 0.0
    assert _safe_div(1e9, 1.0) == RATIO_CAP
    assert _safe_div(3.0, 2.0) == 1.5


def test_no_trades_gives_zero_metrics():
    m = calculate_metrics([], _curve([1000.0] * 10), 1000.0)
    assert m.total_trades == 0
    assert m.sharpe_ratio == 0.0
    assert m.total_return_pct == 0.0


def test_trade_statistics():
    trades = [
        _trade(1, "2024-01-02", "2024-01-10", 100.0, 10.0),
        _trade(2, "2024-01-11", "2024-01-20", -50.0, -5.0),
        _trade(3, "2024-02-01", "2024-02-10", 50.0, 5.0),
        _trade(4, "2024-02-12", "2024-02-20", -50.0, -5.0),
    ]
    curve = _curve([1000, 1100, 1050, 1100, 1050])
    m = calculate_metrics(trades, curve, 1000.0, risk_free_rate=0.0)
    assert m.total_trades == 4
    assert m.win_rate == 50.0
    assert m.profit_factor == 1.5
    assert m.avg_win == 75.0
    assert m.avg_loss == 50.0
    assert m.avg_win_loss_ratio == 1.5
    assert m.expectancy == 12.5
    assert m.total_return_pct == 5.0
    assert m.max_consecutive_wins == 1
    assert m.max_consecutive_losses == 1
    # n = 4 -> VaR at index floor(0.2) = 0, the worst trade
    assert m.var_95 == -5.0
    assert m.cvar_95 == -5.0
    assert m.best_month == "Jan 2024"
    assert m.best_month_pct == 5.0
    assert m.worst_month == "-"
    assert m.max_drawdown == pytest.approx(50.0)
    assert m.max_drawdown_pct == pytest.approx(4.55, abs=0.01)


def test_all_wins_caps_profit_factor():
    trades = [_trade(1, "2024-01-02", "2024-01-05", 10.0, 1.0), _trade(2, "2024-01-08", "2024-01-12", 20.0, 2.0)]
    m = calculate_metrics(trades, _curve([1000, 1010, 1030]), 1000.0)
    assert m.profit_factor == RATIO_CAP
    assert np.isfinite(m.sharpe_ratio)


def test_monthly_returns_bucket_by_exit():
    trades = [
        _trade(1, "2024-01-02", "2024-01-30", 10.0, 1.0),
        _trade(2, "2024-01-31", "2024-02-02", 10.0, 2.5),
        _trade(3, "2024-02-05", "2024-02-09", -5.0, -0.5),
    ]
    out = monthly_returns(trades)
    assert [m.label for m in out] == ["Jan 2024", "Feb 2024"]
    assert out[1].return_pct == 2.0
    assert out[1].trades == 2


def test_equity_tracker_rejects_out_of_order():
    tr = EquityTracker(100.0)
    tr.mark(pd.Timestamp("2024-01-03"), 100.0)
    with pytest.raises(ValueError):
        tr.mark(pd.Timestamp("2024-01-03"), 101.0)


def test_monte_carlo_seeded_and_ordered():
    pnls = [120.0, -80.0, 45.0, -150.0, 300.0, -60.0, 10.0]
    a = run_monte_carlo(pnls, 10_000, simulations=500, rng=np.random.default_rng(42))
    b = run_monte_carlo(pnls, 10_000, simulations=500, rng=np.random.default_rng(42))
    assert a.drawdown_distribution == b.drawdown_distribution
    assert a.median_drawdown <= a.percentile95_drawdown <= a.worst_case_drawdown
    assert len(a.band_p50) == len(pnls) + 1
    assert a.band_p50[0] == 10_000
    assert all(lo <= hi for lo, hi in zip(a.band_p5, a.band_p95))


def test_monte_carlo_edge_cases():
    assert run_monte_carlo([], 10_000).simulations == 0
    safe = run_monte_carlo([5.0, 10.0], 1000, simulations=100, rng=np.random.default_rng(1))
    assert safe.worst_case_drawdown == 0.0
    assert safe.risk_of_ruin == 0.0
    ruin = run_monte_carlo([-600.0], 1000, simulations=50, ruin_threshold_pct=50, rng=np.random.default_rng(1))
    assert ruin.risk_of_ruin == 100.0
