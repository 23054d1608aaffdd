"""
risk.costs
----------
Per-order transaction cost model (equity delivery, exchange-style fee schedule).
Same schedule on entry and exit:
  brokerage   = min(turnover * commission%, cap)
  txn tax     = 0.1%      of turnover
  exchange    = 0.00345%  of turnover
  gst         = 18%       of (brokerage + exchange)
  stamp duty  = 0.015%    of turnover
"""
from __future__ import annotations

TXN_TAX_RATE = 0.001
EXCHANGE_FEE_RATE = 0.0000345
GST_RATE = 0.18
STAMP_DUTY_RATE = 0.00015
DEFAULT_BROKERAGE_CAP = 20.0


def cost_breakdown(price: float, quantity: int, commission_pct: float,
                   brokerage_cap: float = DEFAULT_BROKERAGE_CAP) -> dict:
    turnover = abs(float(price) * float(quantity))
    brokerage = min(turnover * commission_pct / 100.0, brokerage_cap)
    txn_tax = turnover * TXN_TAX_RATE
    exchange = turnover * EXCHANGE_FEE_RATE
    gst = (brokerage + exchange) * GST_RATE
    stamp = turnover * STAMP_DUTY_RATE
    return {
        "turnover": turnover,
        "brokerage": brokerage,
        "txn_tax": txn_tax,
        "exchange_fee": exchange,
        "gst": gst,
        "stamp_duty": stamp,
        "total": brokerage + txn_tax + exchange + gst + stamp,
    }


def transaction_cost(price: float, quantity: int, commission_pct: float,
                     brokerage_cap: float = DEFAULT_BROKERAGE_CAP) -> float:
    """Total cost of one order; 0 for a zero-quantity order."""
    if quantity <= 0 or price <= 0:
        return 0.0
    return cost_breakdown(price, quantity, commission_pct, brokerage_cap)["total"]
