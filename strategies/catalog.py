# strategies/catalog.py
from __future__ import annotations

from pathlib import Path
from typing import List

import yaml

from models.strategy import Strategy

PRESETS_PATH = Path(__file__).resolve().parent / "presets.yaml"


def load_strategies(path: str | Path = PRESETS_PATH) -> List[Strategy]:
    """Parse a YAML strategy catalog (top-level `strategies:` list)."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Strategy catalog not found: {p.resolve()}")
    with p.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}
    raw = doc.get("strategies", []) if isinstance(doc, dict) else doc
    if not isinstance(raw, list):
        raise ValueError(f"{p.name}: 'strategies' must be a list")
    out = [Strategy.from_dict(d) for d in raw]
    ids = [s.id for s in out]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValueError(f"{p.name}: duplicate strategy ids {dupes}")
    return out


def get_strategy(strategy_id: str, path: str | Path = PRESETS_PATH) -> Strategy:
    for s in load_strategies(path):
        if s.id == strategy_id:
            return s
    raise KeyError(f"Unknown strategy id: {strategy_id}")


def strategy_category(name: str) -> str:
    """Bucket a strategy by its name: Trend-Following / Mean-Reversion / Momentum / Multi-Factor / Other."""
    n = name.lower()
    if any(k in n for k in ("cross", "supertrend", "ichimoku")):
        return "Trend-Following"
    if any(k in n for k in ("rsi", "bollinger", "reversion")):
        return "Mean-Reversion"
    if any(k in n for k in ("macd", "momentum", "breakout")):
        return "Momentum"
    if any(k in n for k in ("multi", "confluence")):
        return "Multi-Factor"
    return "Other"
