from dataclasses import dataclass, field, asdict
from typing import List, Optional


def _pick(d: dict, *keys, default=None):
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


@dataclass
class Signal:
    name: str
    category: str              # smart-money | candlestick | technical | momentum | structure
    direction: str             # bullish | bearish | neutral
    strength: int              # 1..5
    description: str = ""
    price_level: Optional[float] = None

    @classmethod
    def from_dict(cls, d: dict) -> "Signal":
        return cls(
            name=str(d.get("name", "")),
            category=str(d.get("category", "technical")),
            direction=str(d.get("direction", "neutral")).lower(),
            strength=max(1, min(5, int(d.get("strength", 1)))),
            description=str(d.get("description", "")),
            price_level=_pick(d, "price_level", "priceLevel"),
        )


@dataclass
class PriceLevel:
    price: float
    type: str                  # support | resistance
    strength: int = 1
    source: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "PriceLevel":
        return cls(price=float(d["price"]), type=str(d.get("type", "support")),
                   strength=int(d.get("strength", 1)), source=str(d.get("source", "")))


@dataclass
class FibLevel:
    level: str                 # "38.2%"
    price: float
    type: str                  # support | resistance

    @classmethod
    def from_dict(cls, d: dict) -> "FibLevel":
        return cls(level=str(d.get("level", "")), price=float(d["price"]), type=str(d.get("type", "support")))


@dataclass
class FairValueGap:
    mid_price: float
    type: str                  # bullish | bearish
    filled: bool = False
    high_price: Optional[float] = None
    low_price: Optional[float] = None
    date: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "FairValueGap":
        return cls(
            mid_price=float(_pick(d, "mid_price", "midPrice")),
            type=str(d.get("type", "bullish")),
            filled=bool(d.get("filled", False)),
            high_price=_pick(d, "high_price", "highPrice"),
            low_price=_pick(d, "low_price", "lowPrice"),
            date=str(d.get("date", "")),
        )


@dataclass
class PriceTargets:
    current_price: float = 0.0
    immediate_support: float = 0.0
    immediate_resistance: float = 0.0
    target1: float = 0.0
    target2: float = 0.0
    stop_loss: float = 0.0
    risk_reward_ratio: float = 0.0

    @classmethod
    def from_dict(cls, d: dict | None) -> "PriceTargets":
        d = d or {}
        return cls(
            current_price=float(_pick(d, "current_price", "currentPrice", "current", default=0.0)),
            immediate_support=float(_pick(d, "immediate_support", "immediateSupport", "support", default=0.0)),
            immediate_resistance=float(_pick(d, "immediate_resistance", "immediateResistance", "resistance", default=0.0)),
            target1=float(_pick(d, "target1", default=0.0)),
            target2=float(_pick(d, "target2", default=0.0)),
            stop_loss=float(_pick(d, "stop_loss", "stopLoss", default=0.0)),
            risk_reward_ratio=float(_pick(d, "risk_reward_ratio", "riskRewardRatio", default=0.0)),
        )


@dataclass
class SignalSummary:
    """Structured output of a signal detector (built-in or external)."""
    signals: List[Signal] = field(default_factory=list)
    candlestick_patterns: List[Signal] = field(default_factory=list)
    support_resistance: List[PriceLevel] = field(default_factory=list)
    fib_levels: List[FibLevel] = field(default_factory=list)
    fvgs: List[FairValueGap] = field(default_factory=list)
    price_targets: PriceTargets = field(default_factory=PriceTargets)
    candlestick_bias: str = "neutral"
    candlestick_score: float = 0.0     # -100..100
    overall_bias: str = "neutral"
    overall_score: float = 0.0         # -100..100
    price_vs_levels: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "SignalSummary":
        """Accepts camelCase (external detector JSON) or snake_case keys."""
        return cls(
            signals=[Signal.from_dict(x) for x in _pick(d, "signals", default=[])],
            candlestick_patterns=[Signal.from_dict(x) for x in _pick(d, "candlestick_patterns", "candlestickPatterns", default=[])],
            support_resistance=[PriceLevel.from_dict(x) for x in _pick(d, "support_resistance", "supportResistance", default=[])],
            fib_levels=[FibLevel.from_dict(x) for x in _pick(d, "fib_levels", "fibLevels", default=[])],
            fvgs=[FairValueGap.from_dict(x) for x in _pick(d, "fvgs", default=[])],
            price_targets=PriceTargets.from_dict(_pick(d, "price_targets", "priceTargets")),
            candlestick_bias=str(_pick(d, "candlestick_bias", "candlestickBias", default="neutral")),
            candlestick_score=float(_pick(d, "candlestick_score", "candlestickScore", default=0.0)),
            overall_bias=str(_pick(d, "overall_bias", "overallBias", default="neutral")),
            overall_score=float(_pick(d, "overall_score", "overallScore", default=0.0)),
            price_vs_levels=str(_pick(d, "price_vs_levels", "priceVsLevels", default="")),
        )

    def to_dict(self) -> dict:
        return asdict(self)
