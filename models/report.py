from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import List, Optional, TYPE_CHECKING

import pandas as pd

from models.strategy import Strategy
from models.trade import Trade, EquityPoint, MonthlyReturn

if TYPE_CHECKING:
    from utils.config import RunConfig


@dataclass
class PerformanceMetrics:
    # returns
    total_return_pct: float = 0.0
    cagr: float = 0.0
    avg_trade_pct: float = 0.0
    best_trade_pct: float = 0.0
    worst_trade_pct: float = 0.0
    # risk
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    max_drawdown_duration: int = 0    # bars
    var_95: float = 0.0
    cvar_95: float = 0.0
    # risk-adjusted
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    recovery_factor: float = 0.0
    # trade stats
    total_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0           # avg currency P&L per trade
    avg_win_loss_ratio: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    avg_holding_days: float = 0.0
    time_in_market_pct: float = 0.0
    best_month: str = ""
    best_month_pct: float = 0.0
    worst_month: str = ""
    worst_month_pct: float = 0.0
    risk_of_ruin: float = 0.0         # filled from Monte Carlo

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MonteCarloResult:
    simulations: int = 0
    drawdown_distribution: List[float] = field(default_factory=list)   # sorted ascending
    median_drawdown: float = 0.0
    percentile95_drawdown: float = 0.0
    worst_case_drawdown: float = 0.0
    risk_of_ruin: float = 0.0
    band_p5: List[float] = field(default_factory=list)
    band_p50: List[float] = field(default_factory=list)
    band_p95: List[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("drawdown_distribution")
        return d


@dataclass
class BacktestReport:
    trades: List[Trade]
    equity_curve: List[EquityPoint]
    metrics: PerformanceMetrics
    monthly_returns: List[MonthlyReturn]
    monte_carlo: MonteCarloResult
    config: "RunConfig"
    strategy: Strategy
    benchmark_equity: Optional[List[EquityPoint]] = None
    start_date: Optional[pd.Timestamp] = None
    end_date: Optional[pd.Timestamp] = None
    total_bars: int = 0                # bars simulated (equity points)
    final_equity: float = 0.0

    @property
    def is_empty(self) -> bool:
        """No simulated bars: callers treat this as 'no signal', not a failure."""
        return not self.equity_curve

    def trades_frame(self) -> pd.DataFrame:
        rows = [t.to_dict() for t in self.trades]
        df = pd.DataFrame(rows)
        if not df.empty:
            df.insert(0, "strategy", self.strategy.id)
            df.insert(1, "symbol", self.config.symbol)
        return df

    def equity_frame(self) -> pd.DataFrame:
        df = pd.DataFrame([p.to_dict() for p in self.equity_curve])
        if self.benchmark_equity and not df.empty:
            bench = {p.to_dict()["date"]: p.equity for p in self.benchmark_equity}
            df["benchmark_equity"] = df["date"].map(bench)
        return df

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy.to_dict(),
            "config": self.config.to_dict(),
            "metrics": self.metrics.to_dict(),
            "monte_carlo": self.monte_carlo.to_dict(),
            "monthly_returns": [asdict(m) for m in self.monthly_returns],
            "trades": [t.to_dict() for t in self.trades],
            "equity_curve": [p.to_dict() for p in self.equity_curve],
            "benchmark_equity": [p.to_dict() for p in self.benchmark_equity] if self.benchmark_equity else None,
            "data_range": {
                "start_date": str(self.start_date.date()) if self.start_date is not None else None,
                "end_date": str(self.end_date.date()) if self.end_date is not None else None,
                "total_bars": self.total_bars,
            },
            "final_equity": self.final_equity,
        }
