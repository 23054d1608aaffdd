from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import pandas as pd


@dataclass
class Position:
    """The single open long position of a backtest run."""
    side: str                       # "LONG"
    entry_date: pd.Timestamp
    entry_price: float
    qty: int
    entry_reasons: List[str] = field(default_factory=list)
    entry_commission: float = 0.0
    stop: Optional[float] = None    # fixed_pct / atr_based stop
    trail: Optional[float] = None   # trailing stop, only ratchets up
    trail_pct: float = 0.0
    target: Optional[float] = None
    max_price: float = 0.0          # highest high since entry
    min_price: float = 0.0          # lowest low since entry

    def __post_init__(self):
        if not self.max_price:
            self.max_price = self.entry_price
        if not self.min_price:
            self.min_price = self.entry_price

    def unrealized_pnl(self, close_px: float) -> float:
        return self.qty * (close_px - self.entry_price)

    def update_excursion(self, high: float, low: float) -> None:
        self.max_price = max(self.max_price, high)
        self.min_price = min(self.min_price, low)

    def ratchet_trailing(self, high: float) -> None:
        if self.trail is None:
            return
        self.trail = max(self.trail, high * (1 - self.trail_pct / 100.0))

    @property
    def mfe_pct(self) -> float:
        return (self.max_price - self.entry_price) / self.entry_price * 100.0

    @property
    def mae_pct(self) -> float:
        return (self.entry_price - self.min_price) / self.entry_price * 100.0

    def check_exit(self, high: float, low: float) -> Tuple[Optional[float], str]:
        """
        Resting-order exits for one bar, in priority order:
        trailing stop (after ratchet) -> fixed/ATR stop -> take-profit.
        Returns (fill price, reason) or (None, "").
        """
        if self.trail is not None:
            self.ratchet_trailing(high)
            if low <= self.trail:
                return self.trail, f"Trailing SL hit ({self.trail_pct:g}%)"
        if self.stop is not None and low <= self.stop:
            return self.stop, f"Stop-loss hit ({self.stop:.2f})"
        if self.target is not None and high >= self.target:
            return self.target, f"Take-profit hit ({self.target:.2f})"
        return None, ""
