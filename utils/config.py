from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

import yaml


def load_config(path: str = "config.yaml") -> dict:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p.resolve()}")
    with p.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def cfg_section(cfg: dict | None, name: str) -> dict:
    return (cfg or {}).get(name, {}) or {}


def cfg_bool(d: dict, key: str, default: bool) -> bool:
    v = d.get(key, default)
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "y"}
    return bool(v)


@dataclass(frozen=True)
class RunConfig:
    """Per-run backtest settings; immutable for the life of a run."""
    symbol: str = ""
    stock_name: str = ""
    date_range: str = "3Y"
    initial_capital: float = 100_000.0
    commission_pct: float = 0.03      # % of turnover
    slippage_pct: float = 0.05        # % of price on market fills
    brokerage_cap: float = 20.0       # per-order brokerage ceiling
    risk_free_rate: float = 6.5       # annual %
    monte_carlo_sims: int = 1000
    ruin_threshold_pct: float = 50.0
    seed: Optional[int] = None

    def __post_init__(self):
        if self.initial_capital <= 0:
            raise ValueError("initial_capital must be > 0")
        if self.commission_pct < 0 or self.slippage_pct < 0:
            raise ValueError("commission_pct and slippage_pct must be >= 0")
        if not 0 < self.ruin_threshold_pct <= 100:
            raise ValueError("ruin_threshold_pct must be in (0, 100]")

    @classmethod
    def from_cfg(cls, cfg: dict | None, symbol: str = "", stock_name: str = "") -> "RunConfig":
        """Build from the `backtest` and `monte_carlo` sections of config.yaml."""
        bt = cfg_section(cfg, "backtest")
        mc = cfg_section(cfg, "monte_carlo")
        seed = mc.get("seed")
        return cls(
            symbol=symbol or str(bt.get("symbol", "")),
            stock_name=stock_name or str(bt.get("stock_name", "")),
            date_range=str(bt.get("date_range", "3Y")),
            initial_capital=float(bt.get("initial_capital", 100_000)),
            commission_pct=float(bt.get("commission_pct", 0.03)),
            slippage_pct=float(bt.get("slippage_pct", 0.05)),
            brokerage_cap=float(bt.get("brokerage_cap", 20)),
            risk_free_rate=float(bt.get("risk_free_rate", 6.5)),
            monte_carlo_sims=int(mc.get("simulations", 1000)),
            ruin_threshold_pct=float(mc.get("ruin_threshold_pct", 50)),
            seed=None if seed in (None, "", "null") else int(seed),
        )

    def to_dict(self) -> dict:
        return asdict(self)
