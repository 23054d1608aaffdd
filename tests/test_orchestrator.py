import os
import sys
import time
from types import SimpleNamespace
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

# Ensure project root is on sys.path for module resolution
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import agentic.orchestrator as orch
from agentic.reconcile import (
    composite_score,
    direction_and_confidence,
    median_candidate,
    price_target_range,
    rank_results,
    unified_action,
)
from data.bars import synthetic_bars
from models.report import PerformanceMetrics
from models.signal import FibLevel, PriceLevel, Signal, SignalSummary
from models.strategy import Strategy, StrategyRule
from models.verdict import BacktestTarget

CFG = {"agentic": {"progress": False}, "logging": {"explain": False}, "monte_carlo": {"simulations": 50, "seed": 1}}

ALWAYS = StrategyRule("price", "above", 0.0)
NEVER = StrategyRule("price", "below", 0.0)


def _bars(n=160):
    return synthetic_bars(np.linspace(100, 120, n))


def _strategy(sid, name, entry, exit_=()):
    return Strategy(id=sid, name=name, entry_rules=list(entry), exit_rules=list(exit_))


def _result(signal, ret=0.0, recent=0.0, target=110.0, stop=95.0):
    return SimpleNamespace(
        current_signal=signal,
        recent_performance=recent,
        report=SimpleNamespace(metrics=PerformanceMetrics(total_return_pct=ret)),
        backtest_target=BacktestTarget(target, stop, 10, 3.0, 2.0, signal),
        rank=0,
    )


def test_opposite_signals_cancel():
    buyer = _strategy("buyer", "Always Buy", [ALWAYS], [NEVER])
    seller = _strategy("seller", "Always Sell", [NEVER], [ALWAYS])
    res = orch.run_all_strategies(_bars(), [buyer, seller], symbol="TEST", cfg=CFG)

    signals = {r.strategy.id: r.current_signal for r in res.strategies}
    assert signals == {"buyer": "BUY", "seller": "SELL"}
    v = res.verdict
    assert v.aggregate.agreement_pct == 50.0
    assert v.score_components["direction"] == pytest.approx(0.0)
    assert "candlestick" not in v.score_components
    assert -100 <= v.composite_score <= 100
    assert 0 <= v.confidence <= 100
    assert v.signal_breakdown == {"buy": 1, "sell": 1, "wait": 0}
    assert [r.rank for r in res.strategies] == [1, 2]
    assert res.excluded == []


def test_failed_run_is_excluded(monkeypatch):
    real = orch.run_backtest

    def flaky(bars, strategy, config, **kw):
        if strategy.id == "boom":
            raise RuntimeError("indicator blew up")
        return real(bars, strategy, config, **kw)

    monkeypatch.setattr(orch, "run_backtest", flaky)
    ok = _strategy("ok", "Always Buy", [ALWAYS])
    bad = _strategy("boom", "Broken", [ALWAYS])
    res = orch.run_all_strategies(_bars(), [ok, bad], symbol="TEST", cfg=CFG)
    assert res.excluded == ["boom"]
    assert [r.strategy.id for r in res.strategies] == ["ok"]
    assert res.verdict.total_strategies == 2


def test_all_runs_failing_gives_neutral_hold(monkeypatch):
    def broken(*a, **kw):
        raise RuntimeError("no")

    monkeypatch.setattr(orch, "run_backtest", broken)
    res = orch.run_all_strategies(_bars(), [_strategy("a", "A", [ALWAYS])], symbol="TEST", cfg=CFG)
    assert res.strategies == []
    assert res.verdict.direction == "NEUTRAL"
    assert res.verdict.unified_action.action == "HOLD"


def test_timeout_raises(monkeypatch):
    def slow(*a, **kw):
        time.sleep(1.0)
        raise RuntimeError("too late")

    monkeypatch.setattr(orch, "run_backtest", slow)
    with pytest.raises(TimeoutError):
        orch.run_all_strategies(_bars(), [_strategy("a", "A", [ALWAYS])], symbol="TEST", cfg=CFG, timeout=0.1)


def test_short_history_waits():
    sig, reasons = orch.detect_current_signal(_strategy("a", "A", [ALWAYS]), _bars(50))
    assert sig == "WAIT"
    assert reasons == ["Insufficient data"]


def test_recent_entry_counts_as_buy():
    closes = np.full(150, 100.0)
    closes[-2] = 130.0
    bars = synthetic_bars(closes)
    strat = _strategy("a", "A", [StrategyRule("price", "above", 120.0)])
    sig, reasons = orch.detect_current_signal(strat, bars)
    assert sig == "BUY"
    assert reasons[0].startswith("Recent: ")


@pytest.mark.parametrize("score", [-100, -40, -15, -14, 0, 10, 15, 60, 100])
def test_confidence_bounds(score):
    direction, conf = direction_and_confidence(score)
    assert 0 <= conf <= 100
    if score >= 15:
        assert direction == "BULLISH"
    elif score <= -15:
        assert direction == "BEARISH"
    else:
        assert direction == "NEUTRAL"


def test_composite_is_clipped_with_summary():
    results = rank_results([_result("BUY", ret=500.0, recent=200.0) for _ in range(6)])
    summary = SignalSummary(candlestick_score=100.0, overall_score=100.0)
    score, comps = composite_score(results, summary)
    assert score == 100
    assert comps == {"direction": 40.0, "performance": 30.0, "recent": 30.0,
                     "candlestick": 15.0, "signal_layer": 15.0}
    score, _ = composite_score(rank_results([_result("SELL", ret=-500.0, recent=-200.0)]), summary)
    assert -100 <= score <= 100


def test_median_candidate():
    assert median_candidate([]) is None
    assert median_candidate([3.0, 1.0, 2.0]) == 2.0
    assert median_candidate([1.0, 2.0, 3.0, 4.0]) == 3.0
    assert median_candidate([1.0, 2.0, 3.0, 4.0], descending=True) == 2.0


def test_unified_buy_uses_median_of_candidates():
    results = rank_results([_result("BUY", ret=10.0, target=112.0, stop=96.0),
                            _result("BUY", ret=5.0, target=108.0, stop=94.0)])
    summary = SignalSummary(
        signals=[Signal("Golden Cross", "momentum", "bullish", 5)],
        support_resistance=[PriceLevel(97.0, "support", 3, "Pivot"), PriceLevel(106.0, "resistance", 2, "SMA 50")],
        fib_levels=[FibLevel("38.2%", 104.0, "resistance"), FibLevel("61.8%", 95.0, "support")],
    )
    ua = unified_action("BULLISH", 40, results, summary, 100.0)
    assert ua.action == "BUY"
    # targets: weighted 110.67, resistance 106, fib 104 -> ascending middle = 106
    assert ua.target == 106.0
    # stops: weighted 95.33, support 97, fib 95 -> descending middle = 95.33
    assert ua.stop_loss == pytest.approx(95.33)
    assert ua.reasoning[0].startswith("2 strategies signal BUY")
    assert 20 <= ua.confidence <= 95


def test_hold_when_neutral():
    ua = unified_action("NEUTRAL", 5, [], None, 50.0)
    assert ua.action == "HOLD"
    assert ua.target == ua.stop_loss == 50.0
    assert ua.reasoning[0] == "Mixed signals - no clear directional bias"


def test_worker_pool_shut_down_when_join_raises(monkeypatch):
    calls = []

    class RecordingPool(ThreadPoolExecutor):
        def shutdown(self, wait=True, **kw):
            calls.append((wait, kw.get("cancel_futures", False)))
            super().shutdown(wait=wait, **kw)

    def broken(*a, **kw):
        raise RuntimeError("no")

    def failing_log(msg):
        raise RuntimeError("log sink closed")

    monkeypatch.setattr(orch, "ThreadPoolExecutor", RecordingPool)
    monkeypatch.setattr(orch, "run_backtest", broken)
    monkeypatch.setattr(orch, "logline", failing_log)
    with pytest.raises(RuntimeError, match="log sink closed"):
        orch.run_all_strategies(_bars(), [_strategy("a", "A", [ALWAYS])], symbol="TEST", cfg=CFG)
    assert calls == [(True, False)]


@pytest.mark.parametrize("n, expected", [(1, 4.0), (3, 12.0), (5, 20.0), (7, 20.0)])
def test_recent_component_uses_fixed_divisor(n, expected):
    _, comps = composite_score(rank_results([_result("BUY", recent=20.0) for _ in range(n)]))
    assert comps["recent"] == pytest.approx(expected)


@pytest.mark.parametrize("targets", [None, {"target1": 0.0, "stopLoss": 94.0}, {"target1": 108.0, "stopLoss": 0.0}])
def test_price_range_ignores_empty_summary_targets(targets):
    raw = {"overallScore": 80}
    if targets is not None:
        raw["priceTargets"] = targets
    rng = price_target_range("BULLISH", [], SignalSummary.from_dict(raw), 100.0)
    assert rng == {"upside": 100.0, "downside": 100.0, "current_price": 100.0}


def test_price_range_uses_summary_targets_when_set():
    summary = SignalSummary.from_dict({"priceTargets": {"target1": 108.0, "stopLoss": 94.0}})
    rng = price_target_range("NEUTRAL", [], summary, 100.0)
    assert rng["upside"] == 108.0
    assert rng["downside"] == 94.0
