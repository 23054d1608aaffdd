from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

import pandas as pd

from models.report import BacktestReport
from models.signal import SignalSummary
from models.strategy import Strategy


@dataclass
class BacktestTarget:
    target: float              # upside for BUY/WAIT, downside for SELL
    stop_loss: float           # downside for BUY/WAIT, upside for SELL
    avg_holding_days: int
    avg_win_pct: float
    avg_loss_pct: float
    direction: str             # BUY | SELL | WAIT


@dataclass
class StrategyResult:
    strategy: Strategy
    report: BacktestReport
    current_signal: str        # BUY | SELL | WAIT
    signal_reasons: List[str]
    backtest_target: BacktestTarget
    recent_performance: float = 0.0   # sum of trade pnl % exiting in the trailing window
    rank: int = 0                     # 1 = best total return

    def to_row(self) -> dict:
        m = self.report.metrics
        return {
            "rank": self.rank,
            "strategy": self.strategy.name,
            "signal": self.current_signal,
            "total_return_pct": m.total_return_pct,
            "win_rate": m.win_rate,
            "sharpe": m.sharpe_ratio,
            "max_dd_pct": m.max_drawdown_pct,
            "trades": m.total_trades,
            "recent_pct": self.recent_performance,
            "target": self.backtest_target.target,
            "stop_loss": self.backtest_target.stop_loss,
            "reasons": " + ".join(self.signal_reasons),
        }


@dataclass
class UnifiedAction:
    action: str                # BUY | SELL | HOLD
    target: float
    stop_loss: float
    current_price: float
    risk_reward: float
    confidence: int            # 0..100
    reasoning: List[str] = field(default_factory=list)


@dataclass
class AggregateMetrics:
    avg_return: float = 0.0
    avg_sharpe: float = 0.0
    avg_win_rate: float = 0.0
    avg_max_dd: float = 0.0
    agreement_pct: float = 0.0
    profitable_strategies: int = 0


@dataclass
class AgenticVerdict:
    direction: str             # BULLISH | BEARISH | NEUTRAL
    confidence: int
    composite_score: int       # -100..100
    score_components: Dict[str, float]
    summary: str
    active_signals: int
    total_strategies: int
    top_strategy: str
    top_return: float
    price_target: Dict[str, float]     # upside / downside / current_price
    unified_action: UnifiedAction
    key_insights: List[str]
    aggregate: AggregateMetrics
    signal_breakdown: Dict[str, int]   # buy / sell / wait
    best_category: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AgenticResult:
    verdict: AgenticVerdict
    strategies: List[StrategyResult]
    signals: Optional[SignalSummary]
    symbol: str
    stock_name: str = ""
    excluded: List[str] = field(default_factory=list)   # strategy ids whose run failed

    def ranking_frame(self) -> pd.DataFrame:
        return pd.DataFrame([r.to_row() for r in self.strategies])
