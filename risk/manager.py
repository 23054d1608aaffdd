"""
risk.manager
------------
Position sizing and level calculation helpers for long entries.
- compute_levels: stop / trailing stop / take-profit fixed at entry
- size_position : whole shares from the strategy's sizing mode
- kelly_fraction: Kelly f* from the trades closed so far
"""

from math import floor
from typing import Optional, Sequence, Tuple

from models.strategy import RiskManagement

KELLY_MIN_TRADES = 5
KELLY_DEFAULT_PCT = 25.0        # % of equity until enough trades exist
FIXED_AMOUNT_EQUITY_CAP = 0.95


def compute_levels(
    risk: RiskManagement,
    entry: float,
    atr: Optional[float] = None,
) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """
    Levels for a long entry. Returns (stop, trailing_stop, target); None when inactive.
      fixed_pct : stop  = entry * (1 - v%)
      atr_based : stop  = entry - ATR * v        (no stop when ATR undefined)
      trailing  : trail = entry * (1 - v%)       (ratcheted per bar by the position)
      take-profit fixed_pct : entry * (1 + v%)
      take-profit r_multiple: entry + v * |entry - initial stop|  (needs a stop)
    """
    if entry is None or entry <= 0:
        return None, None, None

    stop = trail = target = None
    sl, v = risk.stop_loss_type, risk.stop_loss_value
    if sl == "fixed_pct":
        stop = entry * (1 - v / 100.0)
    elif sl == "atr_based":
        if atr is not None and atr > 0:
            stop = entry - atr * v
    elif sl == "trailing":
        trail = entry * (1 - v / 100.0)

    tp, tv = risk.take_profit_type, risk.take_profit_value
    if tp == "fixed_pct":
        target = entry * (1 + tv / 100.0)
    elif tp == "r_multiple":
        initial = stop if stop is not None else trail
        if initial is not None:
            target = entry + tv * abs(entry - initial)

    return stop, trail, target


def kelly_fraction(pnls: Sequence[float]) -> Optional[float]:
    """
    f* = W - (1 - W) / R with W = win rate, R = avg win / avg loss.
    None when fewer than KELLY_MIN_TRADES trades; result clamped to [0, 1].
    """
    if len(pnls) < KELLY_MIN_TRADES:
        return None
    wins = [p for p in pnls if p > 0]
    losses = [-p for p in pnls if p <= 0]
    w = len(wins) / len(pnls)
    if not wins:
        return 0.0
    if not losses or sum(losses) == 0:
        return min(1.0, w)
    r = (sum(wins) / len(wins)) / (sum(losses) / len(losses))
    f = w - (1 - w) / r
    return max(0.0, min(1.0, f))


def size_position(
    mode: str,
    value: float,
    equity: float,
    entry: float,
    closed_pnls: Sequence[float] = (),
) -> int:
    """
    Shares = floor(investment / entry).
      fixed_amount: investment = min(value, 95% of equity)
      fixed_pct   : investment = equity * value%
      kelly       : investment = equity * f* * value%  (value = % of full Kelly);
                    25% of equity until KELLY_MIN_TRADES trades have closed
    Returns 0 if not feasible.
    """
    if entry is None or entry <= 0 or equity <= 0:
        return 0

    if mode == "fixed_amount":
        invest = min(value, FIXED_AMOUNT_EQUITY_CAP * equity)
    elif mode == "fixed_pct":
        invest = equity * value / 100.0
    elif mode == "kelly":
        f = kelly_fraction(closed_pnls)
        if f is None:
            invest = equity * KELLY_DEFAULT_PCT / 100.0
        else:
            invest = equity * min(1.0, f * value / 100.0)
    else:
        raise ValueError(f"Unknown position sizing mode: {mode!r}")

    if invest <= 0:
        return 0
    return max(int(floor(invest / entry)), 0)
