import os
import sys

import pytest

# Ensure project root is on sys.path for module resolution
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.strategy import RiskManagement
from risk.manager import compute_levels, kelly_fraction, size_position


def test_fixed_pct_stop_and_target():
    risk = RiskManagement("fixed_pct", 5, "fixed_pct", 10)
    stop, trail, target = compute_levels(risk, 100.0)
    assert stop == pytest.approx(95.0)
    assert trail is None
    assert target == pytest.approx(110.0)


def test_atr_stop_needs_atr():
    risk = RiskManagement("atr_based", 2)
    assert compute_levels(risk, 100.0, atr=1.5)[0] == pytest.approx(97.0)
    assert compute_levels(risk, 100.0, atr=None) == (None, None, None)


def test_r_multiple_uses_initial_stop_distance():
    risk = RiskManagement("atr_based", 1.5, "r_multiple", 2)
    stop, _, target = compute_levels(risk, 100.0, atr=2.0)
    assert stop == pytest.approx(97.0)
    assert target == pytest.approx(106.0)


def test_r_multiple_from_trailing_stop():
    risk = RiskManagement("trailing", 8, "r_multiple", 1)
    stop, trail, target = compute_levels(risk, 50.0)
    assert stop is None
    assert trail == pytest.approx(46.0)
    assert target == pytest.approx(54.0)


def test_r_multiple_without_stop_has_no_target():
    risk = RiskManagement("none", 0, "r_multiple", 2)
    assert compute_levels(risk, 100.0) == (None, None, None)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"stop_loss_type": "percent"},                          # unknown type
        {"take_profit_type": "trailing"},                       # not a take-profit type
        {"stop_loss_type": "fixed_pct", "stop_loss_value": 0},  # zero value
        {"take_profit_type": "fixed_pct", "take_profit_value": -1},
    ],
)
def test_risk_management_rejects_invalid(kwargs):
    with pytest.raises(ValueError):
        RiskManagement(**kwargs)


def test_kelly_fraction():
    assert kelly_fraction([10, -5, 10]) is None
    assert kelly_fraction([-1, -2, -3, -4, -5]) == 0.0
    assert kelly_fraction([1, 2, 3, 4, 5]) == 1.0
    # W = 0.6, R = 20 / 10 = 2 -> 0.6 - 0.4 / 2 = 0.4
    assert kelly_fraction([20, 20, 20, -10, -10]) == pytest.approx(0.4)


def test_size_position_modes():
    assert size_position("fixed_pct", 50, 100_000, 100.0) == 500
    assert size_position("fixed_amount", 10_000, 100_000, 99.0) == 101
    # fixed amount capped at 95% of equity
    assert size_position("fixed_amount", 50_000, 10_000, 9.0) == 1055
    # kelly falls back to 25% of equity with too few closed trades
    assert size_position("kelly", 50, 100_000, 100.0, [1, 2]) == 250
    # full kelly 0.4 at 50% -> 20% of equity
    assert size_position("kelly", 50, 100_000, 99.0, [20, 20, 20, -10, -10]) == 202


def test_size_position_infeasible():
    assert size_position("fixed_pct", 1, 100.0, 500.0) == 0
    assert size_position("fixed_pct", 50, 0.0, 10.0) == 0
    with pytest.raises(ValueError):
        size_position("martingale", 1, 1000.0, 10.0)
