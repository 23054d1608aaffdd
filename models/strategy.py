from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

RULE_OPERATORS = {"above", "below", "crosses_above", "crosses_below", "equals", "between"}
STOP_TYPES = {"none", "fixed_pct", "atr_based", "trailing"}
TAKE_PROFIT_TYPES = {"none", "fixed_pct", "r_multiple"}
SIZING_MODES = {"fixed_amount", "fixed_pct", "kelly"}


@dataclass(frozen=True)
class StrategyRule:
    indicator: str
    operator: str                      # one of RULE_OPERATORS
    value: float = 0.0
    compare_to: Optional[str] = None   # compare against another indicator instead of `value`
    params: dict = field(default_factory=dict)
    compare_params: dict = field(default_factory=dict)
    upper: Optional[float] = None      # upper bound for "between"

    @classmethod
    def from_dict(cls, d: dict) -> "StrategyRule":
        from utils.indicators import INDICATORS

        ind = str(d.get("indicator", "")).strip()
        op = str(d.get("operator", "")).strip()
        if ind not in INDICATORS:
            raise ValueError(f"Unknown indicator: {ind!r}")
        if op not in RULE_OPERATORS:
            raise ValueError(f"Unknown rule operator: {op!r}")
        cmp = d.get("compare_to", d.get("compareTo"))
        if cmp is not None and cmp not in INDICATORS:
            raise ValueError(f"Unknown compare indicator: {cmp!r}")
        return cls(
            indicator=ind,
            operator=op,
            value=float(d.get("value", 0) or 0),
            compare_to=cmp,
            params=dict(d.get("params") or {}),
            compare_params=dict(d.get("compare_params", d.get("compareParams")) or {}),
            upper=d.get("upper"),
        )


@dataclass(frozen=True)
class RiskManagement:
    stop_loss_type: str = "none"
    stop_loss_value: float = 0.0
    take_profit_type: str = "none"
    take_profit_value: float = 0.0

    def __post_init__(self):
        if self.stop_loss_type not in STOP_TYPES:
            raise ValueError(f"Unknown stop_loss_type: {self.stop_loss_type!r}")
        if self.take_profit_type not in TAKE_PROFIT_TYPES:
            raise ValueError(f"Unknown take_profit_type: {self.take_profit_type!r}")
        if self.stop_loss_type != "none" and self.stop_loss_value <= 0:
            raise ValueError(f"stop_loss_value must be > 0 for {self.stop_loss_type}")
        if self.take_profit_type != "none" and self.take_profit_value <= 0:
            raise ValueError(f"take_profit_value must be > 0 for {self.take_profit_type}")

    @classmethod
    def from_dict(cls, d: dict | None) -> "RiskManagement":
        d = d or {}
        return cls(
            stop_loss_type=str(d.get("stop_loss_type", d.get("stopLossType", "none"))),
            stop_loss_value=float(d.get("stop_loss_value", d.get("stopLossValue", 0)) or 0),
            take_profit_type=str(d.get("take_profit_type", d.get("takeProfitType", "none"))),
            take_profit_value=float(d.get("take_profit_value", d.get("takeProfitValue", 0)) or 0),
        )


@dataclass(frozen=True)
class Strategy:
    id: str
    name: str
    entry_rules: List[StrategyRule]
    exit_rules: List[StrategyRule]
    risk: RiskManagement = field(default_factory=RiskManagement)
    position_sizing: str = "fixed_pct"   # fixed_amount | fixed_pct | kelly
    position_value: float = 100.0        # currency for fixed_amount, % for fixed_pct, Kelly fraction for kelly
    trade_direction: str = "LONG"
    description: str = ""

    def __post_init__(self):
        if self.trade_direction != "LONG":
            # trailing-stop semantics are only defined for longs
            raise ValueError(f"Strategy {self.id}: only LONG strategies are supported, got {self.trade_direction!r}")
        if self.position_sizing not in SIZING_MODES:
            raise ValueError(f"Strategy {self.id}: unknown position_sizing {self.position_sizing!r}")
        if self.position_value <= 0:
            raise ValueError(f"Strategy {self.id}: position_value must be > 0")

    @classmethod
    def from_dict(cls, d: dict) -> "Strategy":
        sid = str(d.get("id") or "").strip()
        if not sid:
            raise ValueError("Strategy is missing an id")
        return cls(
            id=sid,
            name=str(d.get("name") or sid),
            description=str(d.get("description") or ""),
            entry_rules=[StrategyRule.from_dict(r) for r in (d.get("entry_rules") or [])],
            exit_rules=[StrategyRule.from_dict(r) for r in (d.get("exit_rules") or [])],
            risk=RiskManagement.from_dict(d.get("risk")),
            position_sizing=str(d.get("position_sizing", "fixed_pct")),
            position_value=float(d.get("position_value", 100.0)),
            trade_direction=str(d.get("trade_direction", "LONG")).upper(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "position_sizing": self.position_sizing,
            "position_value": self.position_value,
            "trade_direction": self.trade_direction,
            "stop_loss": f"{self.risk.stop_loss_type}:{self.risk.stop_loss_value:g}",
            "take_profit": f"{self.risk.take_profit_type}:{self.risk.take_profit_value:g}",
        }
