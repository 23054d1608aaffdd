# strategies/rules.py
"""
Rule evaluation over a bar window.

`evaluate_rules(rules, window)` looks only at the rows it is handed; the engine
passes `bars.iloc[: i + 1]`, so no row after i can influence a decision.
Rules are AND-ed; every rule that held is reported as a reason.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from models.strategy import StrategyRule
from utils.indicators import compute_indicator, describe_indicator

EQUALS_TOL = 0.01


@dataclass(frozen=True)
class RuleResult:
    triggered: bool
    reasons: List[str] = field(default_factory=list)


def _last_two(series: pd.Series) -> Tuple[Optional[float], Optional[float]]:
    """(previous, current) values, None where undefined."""
    vals = series.to_numpy(dtype="float64")
    cur = float(vals[-1]) if len(vals) >= 1 and np.isfinite(vals[-1]) else None
    prev = float(vals[-2]) if len(vals) >= 2 and np.isfinite(vals[-2]) else None
    return prev, cur


def describe_rule(rule: StrategyRule) -> str:
    left = describe_indicator(rule.indicator, rule.params)
    op = rule.operator.replace("_", " ")
    if rule.compare_to:
        return f"{left} {op} {describe_indicator(rule.compare_to, rule.compare_params)}"
    if rule.operator == "between" and rule.upper is not None:
        return f"{left} between {rule.value:g} and {float(rule.upper):g}"
    return f"{left} {op} {rule.value:g}"


def evaluate_rule(rule: StrategyRule, window: pd.DataFrame) -> bool:
    if window.empty:
        return False
    prev, cur = _last_two(compute_indicator(rule.indicator, window, rule.params))
    if cur is None:
        return False

    if rule.compare_to:
        prev_cmp, cur_cmp = _last_two(compute_indicator(rule.compare_to, window, rule.compare_params))
    else:
        prev_cmp = cur_cmp = float(rule.value)
    if cur_cmp is None:
        return False

    op = rule.operator
    if op in ("crosses_above", "crosses_below"):
        if prev is None or prev_cmp is None:
            return False
        if op == "crosses_above":
            return prev <= prev_cmp and cur > cur_cmp
        return prev >= prev_cmp and cur < cur_cmp
    if op == "above":
        return cur > cur_cmp
    if op == "below":
        return cur < cur_cmp
    if op == "equals":
        return abs(cur - cur_cmp) < EQUALS_TOL
    if op == "between" and rule.upper is not None:
        return float(rule.value) <= cur <= float(rule.upper)
    # "between" without an upper bound never fires
    return False


def evaluate_rules(rules: Iterable[StrategyRule], window: pd.DataFrame) -> RuleResult:
    rules = list(rules)
    if not rules:
        return RuleResult(False, [])
    reasons: List[str] = []
    all_true = True
    for rule in rules:
        if evaluate_rule(rule, window):
            reasons.append(describe_rule(rule))
        else:
            all_true = False
    return RuleResult(all_true, reasons)
