import os
import sys

import pytest

# Ensure project root is on sys.path for module resolution
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.strategy import Strategy
from strategies.catalog import get_strategy, load_strategies, strategy_category
from utils.config import RunConfig, load_config


def test_presets_load():
    strategies = load_strategies()
    assert len(strategies) == 8
    assert len({s.id for s in strategies}) == 8
    assert all(s.entry_rules for s in strategies)
    assert all(s.trade_direction == "LONG" for s in strategies)


def test_get_strategy():
    s = get_strategy("preset-golden-cross")
    assert s.name == "Golden Cross"
    assert s.risk.stop_loss_type == "trailing"
    assert s.risk.stop_loss_value == 8
    assert s.position_value == 60
    with pytest.raises(KeyError):
        get_strategy("preset-nope")


@pytest.mark.parametrize(
    "name,category",
    [
        ("Golden Cross", "Trend-Following"),
        ("Supertrend Follower", "Trend-Following"),
        ("RSI Mean Reversion", "Mean-Reversion"),
        ("Bollinger Bounce", "Mean-Reversion"),
        ("MACD Momentum", "Momentum"),
        ("Volume Breakout", "Momentum"),
        ("Multi-Indicator Confluence", "Multi-Factor"),
        ("Pairs", "Other"),
    ],
)
def test_strategy_category(name, category):
    assert strategy_category(name) == category


def test_duplicate_ids_rejected(tmp_path):
    p = tmp_path / "dup.yaml"
    p.write_text(
        "strategies:\n"
        "  - {id: a, name: A, entry_rules: [{indicator: price, operator: above, value: 1}]}\n"
        "  - {id: a, name: B, entry_rules: [{indicator: price, operator: above, value: 2}]}\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError):
        load_strategies(p)


def test_missing_catalog(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_strategies(tmp_path / "missing.yaml")


def test_camel_case_risk_keys():
    s = Strategy.from_dict({
        "id": "x",
        "entry_rules": [{"indicator": "price", "operator": "above", "value": 1}],
        "risk": {"stopLossType": "fixed_pct", "stopLossValue": 3, "takeProfitType": "r_multiple", "takeProfitValue": 2},
    })
    assert s.risk.stop_loss_type == "fixed_pct"
    assert s.risk.take_profit_value == 2
    assert s.name == "x"


def test_short_strategies_rejected():
    with pytest.raises(ValueError):
        Strategy.from_dict({"id": "s", "trade_direction": "short",
                            "entry_rules": [{"indicator": "price", "operator": "above", "value": 1}]})


def test_run_config_from_yaml(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("backtest:\n  initial_capital: 50000\n  slippage_pct: 0\nmonte_carlo:\n  seed: 11\n",
                 encoding="utf-8")
    rc = RunConfig.from_cfg(load_config(str(p)), symbol="ABC")
    assert rc.initial_capital == 50000
    assert rc.slippage_pct == 0
    assert rc.commission_pct == 0.03
    assert rc.seed == 11
    assert rc.symbol == "ABC"
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))
    with pytest.raises(ValueError):
        RunConfig(initial_capital=0)
