from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import List

import pandas as pd


@dataclass(frozen=True)
class Trade:
    id: int
    entry_date: pd.Timestamp
    exit_date: pd.Timestamp
    entry_price: float
    exit_price: float
    quantity: int
    side: str                 # "LONG"
    pnl: float                # net of both-side costs
    pnl_pct: float            # pnl / (entry_price * quantity) * 100
    holding_days: int         # calendar days, >= 1
    entry_reasons: List[str] = field(default_factory=list)
    exit_reason: str = ""
    mfe_pct: float = 0.0      # max favorable excursion, % of entry
    mae_pct: float = 0.0      # max adverse excursion, % of entry
    commission: float = 0.0   # entry + exit costs

    def to_dict(self) -> dict:
        d = asdict(self)
        d["entry_date"] = str(pd.Timestamp(self.entry_date).date())
        d["exit_date"] = str(pd.Timestamp(self.exit_date).date())
        d["entry_reasons"] = " + ".join(self.entry_reasons)
        return d


@dataclass(frozen=True)
class EquityPoint:
    date: pd.Timestamp
    equity: float
    drawdown: float
    drawdown_pct: float

    def to_dict(self) -> dict:
        return {
            "date": str(pd.Timestamp(self.date).date()),
            "equity": self.equity,
            "drawdown": self.drawdown,
            "drawdown_pct": self.drawdown_pct,
        }


@dataclass(frozen=True)
class MonthlyReturn:
    year: int
    month: int                # 1..12
    label: str                # "Jan 2024"
    return_pct: float         # sum of trade pnl % for trades exiting in the month
    trades: int
