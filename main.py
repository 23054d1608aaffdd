# main.py
from __future__ import annotations

import argparse
import json
from pathlib import Path

import pandas as pd

from utils.config import load_config, cfg_section, cfg_bool, RunConfig
from utils.logger import log_dataframe, today_filename
from data.bars import load_bars_csv
from strategies.catalog import load_strategies, PRESETS_PATH
from models.signal import SignalSummary
from signals.detector import analyze_signals
from agentic.orchestrator import run_all_strategies


def _load_summary(args, bars: pd.DataFrame, cfg: dict) -> SignalSummary | None:
    """--summary JSON wins; otherwise the built-in detector if enabled."""
    if args.summary:
        p = Path(args.summary)
        if not p.exists():
            raise SystemExit(f"Signal summary not found: {p}")
        return SignalSummary.from_dict(json.loads(p.read_text(encoding="utf-8")))
    if args.detect_signals or cfg_bool(cfg_section(cfg, "signals"), "auto_detect", False):
        return analyze_signals(bars)
    return None


def _print_summary(result) -> None:
    v = result.verdict
    a = v.unified_action
    print(f"\n== Verdict: {result.symbol} {result.stock_name} ==".rstrip())
    print(f"{'direction':<15}: {v.direction} (confidence {v.confidence})")
    print(f"{'composite':<15}: {v.composite_score:+d}  {v.score_components}")
    print(f"{'action':<15}: {a.action} @ {a.current_price:.2f}  target {a.target:.2f}  stop {a.stop_loss:.2f}  R:R {a.risk_reward}")
    print(f"{'summary':<15}: {v.summary}")
    print(f"{'best category':<15}: {v.best_category}")
    for r in a.reasoning:
        print(f"  - {r}")
    if v.key_insights:
        print("\nInsights:")
        for s in v.key_insights:
            print(f"  * {s}")
    ranking = result.ranking_frame()
    if not ranking.empty:
        cols = ["rank", "strategy", "signal", "total_return_pct", "win_rate", "sharpe", "max_dd_pct", "trades"]
        print("\nStrategy ranking:")
        print(ranking[cols].to_string(index=False))
    if result.excluded:
        print(f"\nExcluded (run failed): {', '.join(result.excluded)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backtest every catalog strategy on one symbol and reconcile a verdict.")
    parser.add_argument("bars", help="Daily bars CSV (Date,Open,High,Low,Close,Volume)")
    parser.add_argument("--symbol", required=True, help="Ticker symbol")
    parser.add_argument("--name", dest="stock_name", default="", help="Display name")
    parser.add_argument("--config", default="config.yaml", help="Path to config file (default: config.yaml)")
    parser.add_argument("--strategies", default=str(PRESETS_PATH), help="Strategy catalog YAML")
    parser.add_argument("--benchmark", help="Benchmark bars CSV for buy-and-hold comparison")
    parser.add_argument("--summary", help="Signal summary JSON from an external detector")
    parser.add_argument("--detect-signals", dest="detect_signals", action="store_true",
                        help="Run the built-in signal detector")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for all strategy runs")
    args = parser.parse_args()

    cfg = load_config(args.config)
    bars = load_bars_csv(args.bars)
    bench = load_bars_csv(args.benchmark) if args.benchmark else None
    strategies = load_strategies(args.strategies)
    summary = _load_summary(args, bars, cfg)
    run_cfg = RunConfig.from_cfg(cfg, symbol=args.symbol, stock_name=args.stock_name)

    print(f"[Verdict] {args.symbol}: {len(bars)} bars, {len(strategies)} strategies "
          f"({bars.index[0].date()} -> {bars.index[-1].date()})")
    result = run_all_strategies(
        bars, strategies, symbol=args.symbol, stock_name=args.stock_name,
        signal_summary=summary, benchmark_bars=bench, config=run_cfg, cfg=cfg,
        timeout=args.timeout,
    )

    log_cfg = cfg_section(cfg, "logging")
    if cfg_bool(log_cfg, "print_summary", True):
        _print_summary(result)

    if cfg_bool(log_cfg, "write_csv", True):
        files = []
        ranking = result.ranking_frame()
        if not ranking.empty:
            out = today_filename(f"ranking_{args.symbol}", unique=True)
            log_dataframe(ranking, out)
            files.append(out)
        trades = [r.report.trades_frame() for r in result.strategies]
        trades = [t for t in trades if not t.empty]
        if trades:
            out = today_filename(f"trades_{args.symbol}", unique=True)
            log_dataframe(pd.concat(trades, ignore_index=True), out)
            files.append(out)
        out = today_filename(f"verdict_{args.symbol}", unique=True).with_suffix(".json")
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(result.verdict.to_dict(), indent=2, default=str), encoding="utf-8")
        files.append(out)
        print("\nFiles written:")
        for f in files:
            print(f"  - {f}")
