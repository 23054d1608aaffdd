# backtest/engine.py
"""
Walk-forward, single-position backtest of one strategy over one bar frame.

Bar i is decided from rows 0..i only. Entries signalled on bar i fill at bar
i+1's open (plus slippage); the position's first live evaluation is bar i+2.
Exits are checked in priority order: trailing stop -> fixed/ATR stop ->
take-profit -> strategy exit rules. Resting stop/target orders fill at their
level; rule exits fill at the bar's open (minus slippage), decided from the
window ending on the prior bar.
"""
from __future__ import annotations

from typing import List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from backtest.equity import EquityTracker, benchmark_curve
from backtest.metrics import calculate_metrics, monthly_returns
from backtest.monte_carlo import run_monte_carlo
from data.bars import normalize_bars, window
from models.report import BacktestReport, PerformanceMetrics, MonteCarloResult
from models.strategy import Strategy
from models.trade import Trade
from risk.costs import transaction_cost
from risk.manager import compute_levels, size_position
from risk.position import Position
from strategies.rules import evaluate_rules
from utils.config import RunConfig
from utils.indicators import atr_at
from utils.logger import explain

MIN_WARMUP_BARS = 100
END_OF_PERIOD = "End of period"


# ---------- Helpers ----------

def warmup_index(n_bars: int) -> int:
    """First simulated bar: max(100, 5% of the series)."""
    return max(MIN_WARMUP_BARS, int(n_bars * 0.05))


def _holding_days(entry: pd.Timestamp, exit_: pd.Timestamp) -> int:
    return max(1, int(abs((pd.Timestamp(exit_) - pd.Timestamp(entry)).days)))


def _close_position(
    pos: Position,
    trade_id: int,
    exit_date: pd.Timestamp,
    exit_px: float,
    reason: str,
    config: RunConfig,
) -> tuple[Trade, float]:
    """Build the Trade and return it with the cash credited to equity (gross - exit cost)."""
    exit_cost = transaction_cost(exit_px, pos.qty, config.commission_pct, config.brokerage_cap)
    gross = (exit_px - pos.entry_price) * pos.qty
    pnl = gross - pos.entry_commission - exit_cost
    basis = pos.entry_price * pos.qty
    trade = Trade(
        id=trade_id,
        entry_date=pos.entry_date,
        exit_date=exit_date,
        entry_price=float(pos.entry_price),
        exit_price=float(exit_px),
        quantity=int(pos.qty),
        side=pos.side,
        pnl=float(pnl),
        pnl_pct=float(pnl / basis * 100.0) if basis > 0 else 0.0,
        holding_days=_holding_days(pos.entry_date, exit_date),
        entry_reasons=list(pos.entry_reasons),
        exit_reason=reason,
        mfe_pct=float(pos.mfe_pct),
        mae_pct=float(pos.mae_pct),
        commission=float(pos.entry_commission + exit_cost),
    )
    return trade, gross - exit_cost


def _empty_report(strategy: Strategy, config: RunConfig) -> BacktestReport:
    return BacktestReport(
        trades=[],
        equity_curve=[],
        metrics=PerformanceMetrics(),
        monthly_returns=[],
        monte_carlo=MonteCarloResult(),
        config=config,
        strategy=strategy,
        benchmark_equity=None,
        total_bars=0,
        final_equity=float(config.initial_capital),
    )


# ---------- Core engine ----------

def run_backtest(
    bars: pd.DataFrame,
    strategy: Strategy,
    config: RunConfig,
    benchmark_bars: Optional[pd.DataFrame] = None,
    cfg: dict | None = None,
    progress: bool = False,
) -> BacktestReport:
    """Simulate `strategy` over `bars`; an empty report when bars <= warmup."""
    bars = normalize_bars(bars)
    n = len(bars)
    start = warmup_index(n)
    tag = f"[{config.symbol or '-'}] {strategy.id}"
    if n <= start:
        explain(f"{tag}: insufficient data ({n} bars, need > {start}); empty report", cfg)
        return _empty_report(strategy, config)

    dates = bars.index
    opens = bars["Open"].to_numpy(dtype="float64")
    highs = bars["High"].to_numpy(dtype="float64")
    lows = bars["Low"].to_numpy(dtype="float64")
    closes = bars["Close"].to_numpy(dtype="float64")
    slip = config.slippage_pct / 100.0
    risk = strategy.risk

    equity = float(config.initial_capital)
    tracker = EquityTracker(equity)
    trades: List[Trade] = []
    pos: Optional[Position] = None

    pbar = tqdm(total=n - start, desc=f"Backtest {strategy.id}", leave=False, disable=not progress)
    i = start
    while i < n:
        # 1) exits for an open position
        if pos is not None:
            pos.update_excursion(highs[i], lows[i])
            exit_px, reason = pos.check_exit(highs[i], lows[i])
            if exit_px is None and strategy.exit_rules:
                res = evaluate_rules(strategy.exit_rules, window(bars, i - 1))
                if res.triggered:
                    exit_px = opens[i] * (1 - slip)
                    reason = " + ".join(res.reasons)
            if exit_px is not None:
                trade, credit = _close_position(pos, len(trades) + 1, dates[i], exit_px, reason, config)
                trades.append(trade)
                equity += credit
                pos = None

        # 2) entries while flat (including a position closed on this bar)
        if pos is None and i + 1 < n:
            res = evaluate_rules(strategy.entry_rules, window(bars, i))
            if res.triggered:
                entry_px = opens[i + 1] * (1 + slip)
                qty = size_position(strategy.position_sizing, strategy.position_value, equity, entry_px,
                                    [t.pnl for t in trades])
                if qty > 0:
                    tracker.mark(dates[i], equity)
                    cost = transaction_cost(entry_px, qty, config.commission_pct, config.brokerage_cap)
                    equity -= cost
                    atr = atr_at(window(bars, i)) if risk.stop_loss_type == "atr_based" else None
                    stop, trail, target = compute_levels(risk, entry_px, atr)
                    pos = Position(
                        side=strategy.trade_direction,
                        entry_date=dates[i + 1],
                        entry_price=float(entry_px),
                        qty=qty,
                        entry_reasons=list(res.reasons),
                        entry_commission=cost,
                        stop=stop,
                        trail=trail,
                        trail_pct=risk.stop_loss_value if trail is not None else 0.0,
                        target=target,
                    )
                    pos.update_excursion(highs[i + 1], lows[i + 1])
                    tracker.mark(dates[i + 1], equity + pos.unrealized_pnl(closes[i + 1]))
                    pbar.update(2)
                    i += 2
                    continue

        # 3) mark-to-market
        mtm = equity + (pos.unrealized_pnl(closes[i]) if pos is not None else 0.0)
        tracker.mark(dates[i], mtm)
        pbar.update(1)
        i += 1
    pbar.close()

    # force-close at the final close
    if pos is not None:
        trade, credit = _close_position(pos, len(trades) + 1, dates[-1], closes[-1], END_OF_PERIOD, config)
        trades.append(trade)
        equity += credit
        tracker.restate_last(equity)
        pos = None

    curve = tracker.points
    metrics = calculate_metrics(trades, curve, config.initial_capital, config.risk_free_rate)
    mc = run_monte_carlo(
        [t.pnl for t in trades],
        config.initial_capital,
        simulations=config.monte_carlo_sims,
        ruin_threshold_pct=config.ruin_threshold_pct,
        rng=np.random.default_rng(config.seed),
    )
    metrics.risk_of_ruin = mc.risk_of_ruin

    bench = None
    if benchmark_bars is not None and not benchmark_bars.empty:
        bench = benchmark_curve(normalize_bars(benchmark_bars), config.initial_capital, start) or None

    explain(f"{tag}: {len(trades)} trades, return {metrics.total_return_pct:+.2f}%, "
            f"max DD {metrics.max_drawdown_pct:.2f}%", cfg)

    return BacktestReport(
        trades=trades,
        equity_curve=curve,
        metrics=metrics,
        monthly_returns=monthly_returns(trades),
        monte_carlo=mc,
        config=config,
        strategy=strategy,
        benchmark_equity=bench,
        start_date=curve[0].date,
        end_date=curve[-1].date,
        total_bars=len(curve),
        final_equity=float(equity),
    )
