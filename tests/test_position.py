import os
import sys

import pandas as pd
import pytest

# Ensure project root is on sys.path for module resolution
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from risk.position import Position
from risk.costs import cost_breakdown, transaction_cost


def _pos(**kw):
    base = dict(side="LONG", entry_date=pd.Timestamp("2024-01-02"), entry_price=100.0, qty=10)
    base.update(kw)
    return Position(**base)


def test_trailing_stop_never_loosens():
    p = _pos(trail=90.0, trail_pct=10.0)
    seen = []
    for high, low in [(105, 101), (112, 104), (108, 102), (103, 101.5), (120, 109)]:
        px, _ = p.check_exit(high, low)
        assert px is None
        seen.append(p.trail)
    assert seen == sorted(seen)
    assert p.trail == pytest.approx(108.0)


def test_trailing_hit_fills_at_trail():
    p = _pos(trail=90.0, trail_pct=10.0)
    p.check_exit(110, 100)
    px, reason = p.check_exit(100, 95)
    assert px == pytest.approx(99.0)
    assert reason == "Trailing SL hit (10%)"


def test_stop_has_priority_over_target():
    p = _pos(stop=95.0, target=105.0)
    px, reason = p.check_exit(106, 94)
    assert px == 95.0
    assert reason.startswith("Stop-loss hit")


def test_target_hit_and_no_exit():
    p = _pos(stop=95.0, target=105.0)
    assert p.check_exit(104, 96) == (None, "")
    px, reason = p.check_exit(105, 99)
    assert px == 105.0
    assert reason == "Take-profit hit (105.00)"


def test_excursions():
    p = _pos()
    p.update_excursion(112, 97)
    p.update_excursion(108, 93)
    assert p.mfe_pct == pytest.approx(12.0)
    assert p.mae_pct == pytest.approx(7.0)
    assert p.unrealized_pnl(103) == pytest.approx(30.0)


def test_cost_breakdown_caps_brokerage():
    small = cost_breakdown(100.0, 10, commission_pct=0.03, brokerage_cap=20)
    assert small["brokerage"] == pytest.approx(0.3)
    big = cost_breakdown(1000.0, 1000, commission_pct=0.03, brokerage_cap=20)
    assert big["brokerage"] == 20
    parts = sum(v for k, v in big.items() if k not in ("total", "turnover"))
    assert big["total"] == pytest.approx(parts)
    assert big["gst"] == pytest.approx((20 + 1_000_000 * 0.0000345) * 0.18)


def test_transaction_cost_zero_quantity():
    assert transaction_cost(100.0, 0, 0.03) == 0.0
    assert transaction_cost(100.0, 10, 0.03) > 0
