# agentic/orchestrator.py
"""
Run every strategy in the catalog over the same bars, rank them and reconcile
their live signals into one verdict.

Strategy runs are independent: each is submitted to a thread pool and writes
its own result slot; ranking and reconciliation start only after all runs have
been joined. A run that raises is logged and excluded.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import List, Optional, Sequence, Tuple

import pandas as pd
from tqdm import tqdm

from agentic.reconcile import (
    agreement_pct,
    best_category,
    composite_score,
    compute_backtest_target,
    direction_and_confidence,
    generate_insights,
    price_target_range,
    rank_results,
    recent_performance,
    signal_counts,
    summary_line,
    unified_action,
)
from backtest.engine import run_backtest
from data.bars import normalize_bars, window
from models.signal import SignalSummary
from models.strategy import Strategy
from models.verdict import AgenticResult, AgenticVerdict, AggregateMetrics, StrategyResult, UnifiedAction
from strategies.rules import evaluate_rules
from utils.config import RunConfig, cfg_section, cfg_bool
from utils.logger import logline, explain

LIVE_SIGNAL_MIN_BARS = 100
RECENT_LOOKBACK_BARS = 2


def detect_current_signal(strategy: Strategy, bars: pd.DataFrame) -> Tuple[str, List[str]]:
    """
    BUY if entry rules hold on the last bar, SELL if exit rules do; otherwise BUY
    with 'Recent: ' reasons if entry held on one of the two prior bars; else WAIT.
    """
    if len(bars) < LIVE_SIGNAL_MIN_BARS:
        return "WAIT", ["Insufficient data"]
    last = len(bars) - 1
    res = evaluate_rules(strategy.entry_rules, window(bars, last))
    if res.triggered:
        return "BUY", res.reasons
    res = evaluate_rules(strategy.exit_rules, window(bars, last))
    if res.triggered:
        return "SELL", res.reasons
    for i in range(last - RECENT_LOOKBACK_BARS, last):
        if i < 0:
            continue
        res = evaluate_rules(strategy.entry_rules, window(bars, i))
        if res.triggered:
            return "BUY", [f"Recent: {r}" for r in res.reasons]
    return "WAIT", ["No active signal"]


def _run_one(
    strategy: Strategy,
    bars: pd.DataFrame,
    config: RunConfig,
    benchmark_bars: Optional[pd.DataFrame],
    cfg: dict | None,
    recent_months: int,
) -> StrategyResult:
    report = run_backtest(bars, strategy, config, benchmark_bars=benchmark_bars, cfg=cfg)
    signal, reasons = detect_current_signal(strategy, bars)
    current_price = float(bars["Close"].iloc[-1])
    return StrategyResult(
        strategy=strategy,
        report=report,
        current_signal=signal,
        signal_reasons=list(reasons),
        backtest_target=compute_backtest_target(report, current_price, signal),
        recent_performance=recent_performance(report, bars.index[-1], months=recent_months),
    )


def _empty_verdict(current_price: float, n_strategies: int) -> AgenticVerdict:
    return AgenticVerdict(
        direction="NEUTRAL",
        confidence=50,
        composite_score=0,
        score_components={},
        summary="No strategy produced a result",
        active_signals=0,
        total_strategies=n_strategies,
        top_strategy="",
        top_return=0.0,
        price_target={"upside": current_price, "downside": current_price, "current_price": current_price},
        unified_action=UnifiedAction("HOLD", current_price, current_price, current_price, 0.0, 20,
                                     ["No strategy results available"]),
        key_insights=[],
        aggregate=AggregateMetrics(),
        signal_breakdown={"buy": 0, "sell": 0, "wait": 0},
        best_category="Mixed",
    )


def run_all_strategies(
    bars: pd.DataFrame,
    strategies: Sequence[Strategy],
    symbol: str,
    stock_name: str = "",
    signal_summary: Optional[SignalSummary] = None,
    benchmark_bars: Optional[pd.DataFrame] = None,
    config: Optional[RunConfig] = None,
    cfg: dict | None = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> AgenticResult:
    """
    Backtest each strategy concurrently, rank by total return and reconcile into
    an AgenticVerdict. `timeout` bounds the whole join (TimeoutError).
    """
    bars = normalize_bars(bars)
    config = config or RunConfig.from_cfg(cfg, symbol=symbol, stock_name=stock_name)
    ag = cfg_section(cfg, "agentic")
    workers = max_workers or int(ag.get("max_workers", 0) or 0) or None
    recent_months = int(ag.get("recent_months", 6))
    show_progress = cfg_bool(ag, "progress", True)
    current_price = float(bars["Close"].iloc[-1])

    slots: List[Optional[StrategyResult]] = [None] * len(strategies)
    excluded: List[str] = []
    pool = ThreadPoolExecutor(max_workers=workers)
    futures = {
        pool.submit(_run_one, s, bars, config, benchmark_bars, cfg, recent_months): k
        for k, s in enumerate(strategies)
    }
    timed_out = False
    try:
        for fut in tqdm(as_completed(futures, timeout=timeout), total=len(futures),
                        desc="Strategies", leave=False, disable=not show_progress):
            k = futures[fut]
            exc = fut.exception()
            if exc is not None:
                sid = strategies[k].id
                excluded.append(sid)
                logline(f"[{symbol}] {sid}: run failed, excluded from ranking ({type(exc).__name__}: {exc})")
                continue
            slots[k] = fut.result()
    except FuturesTimeout as e:
        timed_out = True
        unfinished = sum(1 for f in futures if not f.done())
        raise TimeoutError(f"{unfinished} of {len(futures)} strategy runs did not finish within {timeout}s") from e
    finally:
        # a timed-out join drops queued runs and does not wait on running ones
        pool.shutdown(wait=not timed_out, cancel_futures=timed_out)

    results = rank_results([r for r in slots if r is not None])
    if not results:
        return AgenticResult(_empty_verdict(current_price, len(strategies)), [], signal_summary,
                             symbol, stock_name, excluded)

    n = len(results)
    counts = signal_counts(results)
    m = [r.report.metrics for r in results]
    avg_return = round(sum(x.total_return_pct for x in m) / n, 2)
    profitable = sum(1 for x in m if x.total_return_pct > 0)
    agg = AggregateMetrics(
        avg_return=avg_return,
        avg_sharpe=round(sum(x.sharpe_ratio for x in m) / n, 2),
        avg_win_rate=round(sum(x.win_rate for x in m) / n, 2),
        avg_max_dd=round(sum(x.max_drawdown_pct for x in m) / n, 2),
        agreement_pct=agreement_pct(results),
        profitable_strategies=profitable,
    )

    score, components = composite_score(results, signal_summary)
    direction, confidence = direction_and_confidence(score)
    action = unified_action(direction, score, results, signal_summary, current_price)

    verdict = AgenticVerdict(
        direction=direction,
        confidence=confidence,
        composite_score=score,
        score_components=components,
        summary=summary_line(counts, profitable, n),
        active_signals=counts["buy"] + counts["sell"],
        total_strategies=len(strategies),
        top_strategy=results[0].strategy.name,
        top_return=results[0].report.metrics.total_return_pct,
        price_target=price_target_range(direction, results, signal_summary, current_price),
        unified_action=action,
        key_insights=generate_insights(results, avg_return, profitable, bars, signal_summary),
        aggregate=agg,
        signal_breakdown=counts,
        best_category=best_category(results),
    )
    explain(f"[{symbol}] verdict {direction} ({score:+d}, conf {confidence}) -> {action.action}", cfg)
    return AgenticResult(verdict, results, signal_summary, symbol, stock_name, excluded)
