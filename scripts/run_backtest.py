# scripts/run_backtest.py
from __future__ import annotations

import sys
from pathlib import Path

# --- repo root on sys.path (keep) ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
from datetime import datetime

import pandas as pd

from utils.config import load_config, cfg_section, cfg_bool, RunConfig
from utils.logger import log_dataframe, today_filename
from data.bars import load_bars_csv
from strategies.catalog import get_strategy, PRESETS_PATH
from backtest.engine import run_backtest


def _parse_date(s: str) -> pd.Timestamp:
    """Parse a user-provided date string into a normalized Timestamp.

    Accepts formats:
      - YYYY-MM-DD (ISO)
      - M/D/YYYY or M/D/YY
    Raises ValueError if unparseable.
    """
    s = s.strip()
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"):
        try:
            return pd.Timestamp(datetime.strptime(s, fmt).date())
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date format: '{s}'. Use YYYY-MM-DD or M/D/YYYY.")


def _slice(bars: pd.DataFrame, start: str | None, end: str | None) -> pd.DataFrame:
    if start:
        bars = bars.loc[bars.index >= _parse_date(start)]
    if end:
        bars = bars.loc[bars.index <= _parse_date(end)]
    return bars


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one catalog strategy over a bars CSV.")
    parser.add_argument("bars", help="Daily bars CSV (Date,Open,High,Low,Close,Volume)")
    parser.add_argument("--strategy", required=True, help="Strategy id from the catalog")
    parser.add_argument("--symbol", default="", help="Ticker symbol (for logs)")
    parser.add_argument("--config", default="config.yaml", help="Path to config file (default: config.yaml)")
    parser.add_argument("--strategies", default=str(PRESETS_PATH), help="Strategy catalog YAML")
    parser.add_argument("--benchmark", help="Benchmark bars CSV")
    parser.add_argument("--start-date", dest="start_date", help="Explicit start date (YYYY-MM-DD or M/D/YYYY)")
    parser.add_argument("--end-date", dest="end_date", help="Explicit end date (YYYY-MM-DD or M/D/YYYY)")
    args = parser.parse_args()

    cfg = load_config(args.config)
    bars = _slice(load_bars_csv(args.bars), args.start_date, args.end_date)
    bench = load_bars_csv(args.benchmark) if args.benchmark else None
    strategy = get_strategy(args.strategy, args.strategies)
    run_cfg = RunConfig.from_cfg(cfg, symbol=args.symbol)

    print(f"[Backtest] {strategy.name} on {args.symbol or args.bars}: {len(bars)} bars")
    report = run_backtest(bars, strategy, run_cfg, benchmark_bars=bench, cfg=cfg, progress=True)
    if report.is_empty:
        print(f"Not enough bars to simulate ({len(bars)}).")
        raise SystemExit(0)

    m = report.metrics
    print("\n== Backtest Summary ==")
    for k in ("total_return_pct", "cagr", "max_drawdown_pct", "sharpe_ratio", "sortino_ratio",
              "total_trades", "win_rate", "profit_factor", "expectancy", "avg_holding_days",
              "time_in_market_pct", "risk_of_ruin"):
        print(f"{k:<20}: {getattr(m, k)}")
    mc = report.monte_carlo
    print(f"{'mc median dd %':<20}: {mc.median_drawdown}")
    print(f"{'mc p95 dd %':<20}: {mc.percentile95_drawdown}")
    print(f"{'final_equity':<20}: {report.final_equity:.2f}")

    if cfg_bool(cfg_section(cfg, "logging"), "write_csv", True):
        files = []
        tf = report.trades_frame()
        if not tf.empty:
            out = today_filename(f"bt_trades_{strategy.id}", unique=True)
            log_dataframe(tf, out)
            files.append(out)
        out = today_filename(f"bt_equity_{strategy.id}", unique=True)
        log_dataframe(report.equity_frame(), out)
        files.append(out)
        print("\nFiles written:")
        for f in files:
            print(f"  - {f}")
