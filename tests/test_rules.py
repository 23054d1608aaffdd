import os
import sys

import numpy as np
import pytest

# Ensure project root is on sys.path for module resolution
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from data.bars import synthetic_bars
from models.strategy import StrategyRule
from strategies.rules import describe_rule, evaluate_rule, evaluate_rules
from utils.indicators import compute_indicator


def _bars(closes):
    return synthetic_bars(np.asarray(closes, dtype="float64"))


def test_crosses_above_uses_previous_and_current_bar():
    rule = StrategyRule("price", "crosses_above", 100.0)
    assert evaluate_rule(rule, _bars([95, 98, 99, 101]))
    assert not evaluate_rule(rule, _bars([95, 98, 101, 102]))
    assert not evaluate_rule(rule, _bars([101]))


def test_crosses_below():
    rule = StrategyRule("price", "crosses_below", 100.0)
    assert evaluate_rule(rule, _bars([105, 100, 99]))
    assert not evaluate_rule(rule, _bars([105, 101, 100]))


def test_above_below_equals():
    w = _bars([10, 20, 30])
    assert evaluate_rule(StrategyRule("price", "above", 29.5), w)
    assert evaluate_rule(StrategyRule("price", "below", 30.5), w)
    assert evaluate_rule(StrategyRule("price", "equals", 30.005), w)
    assert not evaluate_rule(StrategyRule("price", "equals", 30.5), w)


def test_between_needs_upper_bound():
    w = _bars([10, 20, 30])
    assert evaluate_rule(StrategyRule("price", "between", 25.0, upper=35.0), w)
    assert not evaluate_rule(StrategyRule("price", "between", 31.0, upper=35.0), w)
    assert not evaluate_rule(StrategyRule("price", "between", 25.0), w)


def test_compare_to_indicator():
    closes = list(np.full(30, 100.0)) + [110.0]
    rule = StrategyRule("price", "crosses_above", compare_to="sma", compare_params={"period": 20})
    assert evaluate_rule(rule, _bars(closes))


def test_undefined_indicator_is_false():
    rule = StrategyRule("rsi", "below", 30.0, params={"period": 14})
    assert not evaluate_rule(rule, _bars([100, 99, 98]))


def test_rules_are_anded_with_reasons():
    w = _bars([10, 20, 30])
    ok = StrategyRule("price", "above", 25.0)
    bad = StrategyRule("price", "below", 25.0)
    res = evaluate_rules([ok], w)
    assert res.triggered and res.reasons == ["Price above 25"]
    res = evaluate_rules([ok, bad], w)
    assert not res.triggered
    assert res.reasons == ["Price above 25"]
    assert not evaluate_rules([], w).triggered


def test_describe_rule_labels():
    r = StrategyRule("rsi", "crosses_below", 30.0, params={"period": 14})
    assert describe_rule(r) == "RSI(14) crosses below 30"
    r = StrategyRule("price", "below", compare_to="bollinger_lower", compare_params={"period": 20})
    assert describe_rule(r) == "Price below BB Lower(20)"


def test_indicator_only_sees_window():
    closes = np.linspace(100, 200, 60)
    bars = _bars(closes)
    full = compute_indicator("sma", bars, {"period": 10})
    part = compute_indicator("sma", bars.iloc[:40], {"period": 10})
    assert part.iloc[-1] == pytest.approx(full.iloc[39])


def test_unknown_indicator_rejected():
    with pytest.raises(ValueError):
        StrategyRule.from_dict({"indicator": "hurst", "operator": "above", "value": 1})
    with pytest.raises(ValueError):
        StrategyRule.from_dict({"indicator": "rsi", "operator": "near", "value": 1})
