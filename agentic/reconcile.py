# agentic/reconcile.py
"""
Cross-strategy reconciliation: composite score, direction, price-target range,
unified BUY/SELL/HOLD action and display insights.

Pure functions over ranked StrategyResults and an optional SignalSummary.
When no summary is supplied the signal-derived score components are omitted
and only strategy evidence is used.
"""
from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from models.report import BacktestReport
from models.signal import SignalSummary
from models.verdict import BacktestTarget, StrategyResult, UnifiedAction
from strategies.catalog import strategy_category

BULLISH_AT = 15
ACTION_AT = 10
TOP_N_RECENT = 5
MAX_REASONS = 6
MAX_INSIGHTS = 5
DEFAULT_WIN_PCT = 3.0
DEFAULT_LOSS_PCT = 2.0


def _clip(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _r2(x: float) -> float:
    return round(float(x), 2)


# ---------- Per-strategy target ----------

def compute_backtest_target(report: BacktestReport, current_price: float, signal: str) -> BacktestTarget:
    """Target/stop from the strategy's own avg win/loss %; SELL mirrors BUY."""
    wins = [t.pnl_pct for t in report.trades if t.pnl > 0]
    losses = [t.pnl_pct for t in report.trades if t.pnl < 0]
    win_pct = sum(wins) / len(wins) if wins else DEFAULT_WIN_PCT
    loss_pct = abs(sum(losses) / len(losses)) if losses else DEFAULT_LOSS_PCT
    hold = round(sum(t.holding_days for t in report.trades) / len(report.trades)) if report.trades else 10

    if signal == "SELL":
        target = current_price * (1 - win_pct / 100.0)
        stop = current_price * (1 + loss_pct / 100.0)
    else:
        target = current_price * (1 + win_pct / 100.0)
        stop = current_price * (1 - loss_pct / 100.0)
    return BacktestTarget(
        target=_r2(target),
        stop_loss=_r2(stop),
        avg_holding_days=int(hold),
        avg_win_pct=_r2(win_pct),
        avg_loss_pct=_r2(loss_pct),
        direction=signal,
    )


def recent_performance(report: BacktestReport, as_of: pd.Timestamp, months: int = 6) -> float:
    """Sum of trade pnl % for trades exiting within `months` before `as_of`."""
    cutoff = pd.Timestamp(as_of) - pd.DateOffset(months=months)
    return _r2(sum(t.pnl_pct for t in report.trades if pd.Timestamp(t.exit_date) >= cutoff))


# ---------- Ranking + aggregates ----------

def rank_results(results: List[StrategyResult]) -> List[StrategyResult]:
    """Sort by total return descending (stable) and assign rank 1..N."""
    ordered = sorted(results, key=lambda r: r.report.metrics.total_return_pct, reverse=True)
    for i, r in enumerate(ordered, start=1):
        r.rank = i
    return ordered


def signal_counts(results: Sequence[StrategyResult]) -> Dict[str, int]:
    out = {"buy": 0, "sell": 0, "wait": 0}
    for r in results:
        out[r.current_signal.lower()] = out.get(r.current_signal.lower(), 0) + 1
    return out


def agreement_pct(results: Sequence[StrategyResult]) -> float:
    if not results:
        return 0.0
    c = signal_counts(results)
    return float(round(max(c.values()) / len(results) * 100))


# ---------- Composite score ----------

def composite_score(
    results: Sequence[StrategyResult],
    summary: Optional[SignalSummary] = None,
) -> Tuple[int, Dict[str, float]]:
    """
    Bounded [-100, 100] blend of:
      direction  (#BUY - #SELL) / N * 40
      performance clip(mean total return / 2, +-30)
      recent      clip(sum of trailing perf of top-5 ranked / 5, +-30)
      candlestick clip(candlestick_score * 0.15, +-15)   (summary only)
      signal      clip(overall_score * 0.15, +-15)       (summary only)
    `results` must already be ranked.
    """
    n = len(results)
    if n == 0:
        return 0, {}
    c = signal_counts(results)
    avg_return = sum(r.report.metrics.total_return_pct for r in results) / n
    top = list(results[:TOP_N_RECENT])
    comps = {
        "direction": (c["buy"] - c["sell"]) / n * 40.0,
        "performance": _clip(avg_return / 2.0, -30, 30),
        "recent": _clip(sum(r.recent_performance for r in top) / TOP_N_RECENT, -30, 30),
    }
    if summary is not None:
        comps["candlestick"] = _clip(summary.candlestick_score * 0.15, -15, 15)
        comps["signal_layer"] = _clip(summary.overall_score * 0.15, -15, 15)
    total = _clip(sum(comps.values()), -100, 100)
    return int(_clip(round(total), -100, 100)), {k: _r2(v) for k, v in comps.items()}


def direction_and_confidence(score: float) -> Tuple[str, int]:
    if score >= BULLISH_AT:
        return "BULLISH", int(min(95, 50 + round(score * 0.45)))
    if score <= -BULLISH_AT:
        return "BEARISH", int(min(95, 50 + round(abs(score) * 0.45)))
    return "NEUTRAL", int(max(30, 50 - abs(score)))


# ---------- Targets ----------

def _weighted_levels(agreeing: Sequence[StrategyResult], n_total: int) -> Optional[Tuple[float, float]]:
    """Rank-weighted (N - rank + 1) average of (target, stop) across agreeing strategies."""
    if not agreeing:
        return None
    weights = [n_total - r.rank + 1 for r in agreeing]
    wsum = float(sum(weights))
    if wsum <= 0:
        return None
    tgt = sum(r.backtest_target.target * w for r, w in zip(agreeing, weights)) / wsum
    stop = sum(r.backtest_target.stop_loss * w for r, w in zip(agreeing, weights)) / wsum
    return tgt, stop


def price_target_range(
    direction: str,
    results: Sequence[StrategyResult],
    summary: Optional[SignalSummary],
    current_price: float,
) -> Dict[str, float]:
    n = len(results)
    upside = downside = None
    if direction == "BULLISH":
        lv = _weighted_levels([r for r in results if r.current_signal == "BUY"], n)
        if lv:
            upside, downside = lv
    elif direction == "BEARISH":
        lv = _weighted_levels([r for r in results if r.current_signal == "SELL"], n)
        if lv:
            downside, upside = lv
    if upside is None:
        pt = summary.price_targets if summary is not None else None
        if pt is not None and pt.target1 > 0 and pt.stop_loss > 0:
            upside, downside = pt.target1, pt.stop_loss
        else:
            upside = downside = current_price
    return {"upside": _r2(upside), "downside": _r2(downside), "current_price": _r2(current_price)}


def median_candidate(values: Sequence[float], descending: bool = False) -> Optional[float]:
    """Sort candidates and take the middle element (upper middle for even counts)."""
    vals = sorted((float(v) for v in values if v is not None and math.isfinite(v)), reverse=descending)
    if not vals:
        return None
    return vals[len(vals) // 2]


def unified_action(
    direction: str,
    score: float,
    results: Sequence[StrategyResult],
    summary: Optional[SignalSummary],
    current_price: float,
) -> UnifiedAction:
    action = "HOLD"
    if direction == "BULLISH" and score > ACTION_AT:
        action = "BUY"
    elif direction == "BEARISH" and score < -ACTION_AT:
        action = "SELL"

    s = summary or SignalSummary()
    supports = sorted((l for l in s.support_resistance if l.type == "support" and l.price < current_price),
                      key=lambda l: -l.price)
    resistances = sorted((l for l in s.support_resistance if l.type == "resistance" and l.price > current_price),
                         key=lambda l: l.price)
    fib_sup = sorted((f for f in s.fib_levels if f.type == "support" and f.price < current_price), key=lambda f: -f.price)
    fib_res = sorted((f for f in s.fib_levels if f.type == "resistance" and f.price > current_price), key=lambda f: f.price)

    reasoning: List[str] = []
    targets: List[float] = []
    stops: List[float] = []

    if action in ("BUY", "SELL"):
        side = action
        lv = _weighted_levels([r for r in results if r.current_signal == side], len(results))
        if lv:
            targets.append(lv[0])
            stops.append(lv[1])
            count = sum(1 for r in results if r.current_signal == side)
            reasoning.append(f"{count} strategies signal {side}, avg target {lv[0]:.2f}")
        near_t, fib_t = (resistances, fib_res) if side == "BUY" else (supports, fib_sup)
        near_s, fib_s = (supports, fib_sup) if side == "BUY" else (resistances, fib_res)
        if near_t:
            targets.append(near_t[0].price)
            kind = "resistance" if side == "BUY" else "support"
            reasoning.append(f"Nearest {kind}: {near_t[0].price:.2f} ({near_t[0].source})")
        if fib_t:
            targets.append(fib_t[0].price)
            kind = "resistance" if side == "BUY" else "support"
            reasoning.append(f"Fibonacci {kind}: {fib_t[0].price:.2f} ({fib_t[0].level})")
        if near_s:
            stops.append(near_s[0].price)
        if fib_s:
            stops.append(fib_s[0].price)

    bulls = sorted((x for x in s.signals if x.direction == "bullish"), key=lambda x: -x.strength)
    bears = sorted((x for x in s.signals if x.direction == "bearish"), key=lambda x: -x.strength)
    if action == "BUY" and bulls:
        reasoning.append(f"{len(bulls)} bullish signals: {', '.join(x.name for x in bulls[:3])}")
    if action == "SELL" and bears:
        reasoning.append(f"{len(bears)} bearish signals: {', '.join(x.name for x in bears[:3])}")

    if action in ("BUY", "SELL"):
        want = "bullish" if action == "BUY" else "bearish"
        zones = [f for f in s.fvgs if not f.filled and f.type == want
                 and (f.mid_price < current_price if action == "BUY" else f.mid_price > current_price)]
        if zones:
            reasoning.append(f"{len(zones)} unfilled {want} FVG(s) confirming direction")

    # BUY: targets ascending, stops descending; SELL mirrors
    target = median_candidate(targets, descending=(action == "SELL"))
    stop = median_candidate(stops, descending=(action == "BUY"))
    if target is None:
        target = current_price * 1.05 if action == "BUY" else current_price * 0.95 if action == "SELL" else current_price
    if stop is None:
        stop = current_price * 0.97 if action == "BUY" else current_price * 1.03 if action == "SELL" else current_price

    risk = abs(current_price - stop)
    reward = abs(target - current_price)
    rr = _r2(reward / risk) if risk > 0 else 0.0
    conf = _clip(abs(score) * 0.6 + len(reasoning) * 8, 20, 95)

    if action == "HOLD":
        reasoning = ["Mixed signals - no clear directional bias"]
        if bulls:
            reasoning.append(f"{len(bulls)} bullish vs {len(bears)} bearish signals")
        reasoning.append("Wait for clearer setup before entering")
        target = stop = current_price

    return UnifiedAction(
        action=action,
        target=_r2(target),
        stop_loss=_r2(stop),
        current_price=_r2(current_price),
        risk_reward=rr,
        confidence=int(round(conf)),
        reasoning=reasoning[:MAX_REASONS],
    )


# ---------- Display helpers ----------

def best_category(results: Sequence[StrategyResult]) -> str:
    buckets: Dict[str, List[float]] = defaultdict(list)
    for r in results:
        buckets[strategy_category(r.strategy.name)].append(r.report.metrics.total_return_pct)
    if not buckets:
        return "Mixed"
    return max(buckets.items(), key=lambda kv: sum(kv[1]) / len(kv[1]))[0]


def _annualized_vol_pct(bars: pd.DataFrame, lookback: int = 20) -> Optional[float]:
    closes = bars["Close"].iloc[-lookback:].to_numpy(dtype="float64")
    if len(closes) < 3:
        return None
    rets = np.diff(closes) / closes[:-1]
    return float(np.sqrt(np.mean(rets ** 2)) * np.sqrt(252) * 100.0)


def generate_insights(
    results: Sequence[StrategyResult],
    avg_return: float,
    profitable: int,
    bars: pd.DataFrame,
    summary: Optional[SignalSummary],
) -> List[str]:
    """Up to five human-readable observations; no computational weight."""
    if not results:
        return []
    out: List[str] = []
    n = len(results)
    top = results[0]
    m = top.report.metrics

    if profitable >= math.ceil(n * 0.75):
        out.append("Strong historical edge - most strategies are profitable on this stock")
    elif profitable <= math.floor(n * 0.25):
        out.append("Weak backtest performance - only a few strategies generated positive returns")

    out.append(f"{top.strategy.name} led with {m.total_return_pct:+.2f}% return and {m.win_rate:.2f}% win rate")

    strong = sum(1 for r in results if r.recent_performance > 5)
    weak = sum(1 for r in results if r.recent_performance < -5)
    if strong >= 3:
        out.append(f"Recent momentum is strong - {strong} strategies positive in the last 6 months")
    elif weak >= 3:
        out.append(f"Recent momentum fading - {weak} strategies negative in the last 6 months")

    vol = _annualized_vol_pct(bars)
    if vol is not None and vol > 40:
        out.append(f"High volatility ({vol:.0f}% annualized) - wider stops recommended")
    elif vol is not None and vol < 15:
        out.append(f"Low volatility ({vol:.0f}% annualized) - tight range-bound action")

    if avg_return > 0 and m.max_drawdown_pct > 25:
        out.append(f"Despite positive returns, max drawdown was {m.max_drawdown_pct:.2f}% - significant risk")

    if summary is not None:
        for want in ("bullish", "bearish"):
            pats = sorted((p for p in summary.candlestick_patterns if p.direction == want), key=lambda p: -p.strength)
            if pats:
                out.append(f"Candlestick: {pats[0].name} detected - {pats[0].description}")
        if summary.price_vs_levels:
            out.append(f"Price action: {summary.price_vs_levels}")

    return out[:MAX_INSIGHTS]


def summary_line(counts: Dict[str, int], profitable: int, n: int) -> str:
    parts = []
    if counts["buy"]:
        parts.append(f"{counts['buy']}/{n} strategies signaling BUY")
    if counts["sell"]:
        parts.append(f"{counts['sell']}/{n} signaling SELL")
    if not counts["buy"] and not counts["sell"]:
        parts.append("No active signals - consolidation likely")
    parts.append(f"{profitable}/{n} strategies profitable over test period")
    return " | ".join(parts)
