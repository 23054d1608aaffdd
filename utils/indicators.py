"""
utils.indicators
----------------
Indicator series for rule evaluation, computed with TA-Lib over a bar window.

Every function takes the bar window (rows 0..i) and returns a float Series
aligned to it; values that are not yet defined (not enough history) are NaN.
`compute_indicator` is the single dispatch point used by strategies.rules.
"""
from __future__ import annotations

import numpy as np
import pandas as pd
import talib

INDICATORS = (
    "rsi", "macd", "macd_signal", "macd_histogram",
    "bollinger_upper", "bollinger_lower", "bollinger_middle",
    "sma", "ema", "supertrend", "adx", "stoch_rsi_k", "stoch_rsi_d", "atr",
    "obv_trend", "vwap", "ichimoku_tenkan", "ichimoku_kijun", "ichimoku_cloud",
    "price", "volume", "volume_sma",
)


def _arr(df: pd.DataFrame, col: str) -> np.ndarray:
    return np.asarray(df[col], dtype="float64").ravel()


def _series(values, index) -> pd.Series:
    return pd.Series(np.asarray(values, dtype="float64"), index=index)


def _midline(high: pd.Series, low: pd.Series, period: int) -> pd.Series:
    return (high.rolling(period).max() + low.rolling(period).min()) / 2.0


def supertrend_direction(high: np.ndarray, low: np.ndarray, close: np.ndarray,
                         period: int = 10, multiplier: float = 3.0) -> np.ndarray:
    """Supertrend direction per bar: 1 (up) / -1 (down), NaN before ATR is defined."""
    atr = talib.ATR(high, low, close, timeperiod=period)
    out = np.full(len(close), np.nan)
    direction = 1
    prev_close = close[0] if len(close) else np.nan
    prev_upper, prev_lower = np.inf, -np.inf
    for i in range(len(close)):
        if not np.isfinite(atr[i]):
            continue
        hl2 = (high[i] + low[i]) / 2.0
        upper = hl2 + multiplier * atr[i]
        lower = hl2 - multiplier * atr[i]
        # bands only tighten unless price closed through them
        if not (lower > prev_lower or prev_close < prev_lower):
            lower = prev_lower
        if not (upper < prev_upper or prev_close > prev_upper):
            upper = prev_upper
        if direction == 1 and close[i] < lower:
            direction = -1
        elif direction == -1 and close[i] > upper:
            direction = 1
        out[i] = direction
        prev_close, prev_upper, prev_lower = close[i], upper, lower
    return out


def compute_indicator(name: str, df: pd.DataFrame, params: dict | None = None) -> pd.Series:
    """Return the `name` indicator series over `df` (a bar window)."""
    p = params or {}
    idx = df.index
    close = _arr(df, "Close")
    high = _arr(df, "High")
    low = _arr(df, "Low")
    vol = _arr(df, "Volume")
    n = len(close)

    if name == "rsi":
        period = int(p.get("period", 14))
        if n < period + 1:
            return _series(np.full(n, np.nan), idx)
        return _series(talib.RSI(close, timeperiod=period), idx)

    if name in ("macd", "macd_signal", "macd_histogram"):
        fast, slow, sig = int(p.get("fast", 12)), int(p.get("slow", 26)), int(p.get("signal", 9))
        if n < slow + sig:
            return _series(np.full(n, np.nan), idx)
        macd, macds, macdh = talib.MACD(close, fastperiod=fast, slowperiod=slow, signalperiod=sig)
        return _series({"macd": macd, "macd_signal": macds, "macd_histogram": macdh}[name], idx)

    if name in ("bollinger_upper", "bollinger_lower", "bollinger_middle"):
        period = int(p.get("period", 20))
        dev = float(p.get("stdDev", p.get("std_dev", 2)))
        if n < period:
            return _series(np.full(n, np.nan), idx)
        upper, middle, lower = talib.BBANDS(close, timeperiod=period, nbdevup=dev, nbdevdn=dev, matype=0)
        return _series({"bollinger_upper": upper, "bollinger_middle": middle, "bollinger_lower": lower}[name], idx)

    if name == "sma":
        period = int(p.get("period", 20))
        return _series(talib.SMA(close, timeperiod=period) if n >= period else np.full(n, np.nan), idx)

    if name == "ema":
        period = int(p.get("period", 21))
        return _series(talib.EMA(close, timeperiod=period) if n >= period else np.full(n, np.nan), idx)

    if name == "supertrend":
        period = int(p.get("period", 10))
        mult = float(p.get("multiplier", 3))
        if n < period + 1:
            return _series(np.full(n, np.nan), idx)
        return _series(supertrend_direction(high, low, close, period, mult), idx)

    if name == "adx":
        period = int(p.get("period", 14))
        if n < period * 2:
            return _series(np.full(n, np.nan), idx)
        return _series(talib.ADX(high, low, close, timeperiod=period), idx)

    if name in ("stoch_rsi_k", "stoch_rsi_d"):
        period = int(p.get("period", 14))
        if n < period * 2:
            return _series(np.full(n, np.nan), idx)
        k, d = talib.STOCHRSI(close, timeperiod=period, fastk_period=period, fastd_period=3, fastd_matype=0)
        return _series(k if name == "stoch_rsi_k" else d, idx)

    if name == "atr":
        period = int(p.get("period", 14))
        if n < period + 1:
            return _series(np.full(n, np.nan), idx)
        return _series(talib.ATR(high, low, close, timeperiod=period), idx)

    if name == "obv_trend":
        if n < 20:
            return _series(np.full(n, np.nan), idx)
        obv = talib.OBV(close, vol)
        obv_sma = talib.SMA(obv, timeperiod=10)
        trend = np.where(obv > obv_sma * 1.02, 1.0, np.where(obv < obv_sma * 0.98, -1.0, 0.0))
        trend[~np.isfinite(obv_sma)] = np.nan
        return _series(trend, idx)

    if name == "vwap":
        lookback = int(p.get("lookback", 20))
        if n < lookback:
            return _series(np.full(n, np.nan), idx)
        tp = (df["High"] + df["Low"] + df["Close"]) / 3.0
        tpv = (tp * df["Volume"]).rolling(lookback).sum()
        vsum = df["Volume"].rolling(lookback).sum()
        return (tpv / vsum.where(vsum > 0)).fillna(df["Close"]).where(vsum.notna()).astype("float64")

    if name == "ichimoku_tenkan":
        return _midline(df["High"], df["Low"], 9).astype("float64")

    if name == "ichimoku_kijun":
        return _midline(df["High"], df["Low"], 26).astype("float64")

    if name == "ichimoku_cloud":
        tenkan = _midline(df["High"], df["Low"], 9)
        kijun = _midline(df["High"], df["Low"], 26)
        span_a = (tenkan + kijun) / 2.0
        span_b = _midline(df["High"], df["Low"], 52)
        top = np.maximum(span_a, span_b)
        bottom = np.minimum(span_a, span_b)
        pos = np.where(df["Close"] > top, 1.0, np.where(df["Close"] < bottom, -1.0, 0.0))
        pos[~np.isfinite(span_b.to_numpy())] = np.nan
        return _series(pos, idx)

    if name == "price":
        return _series(close, idx)

    if name == "volume":
        return _series(vol, idx)

    if name == "volume_sma":
        period = int(p.get("period", 20))
        return _series(talib.SMA(vol, timeperiod=period) if n >= period else np.full(n, np.nan), idx)

    raise ValueError(f"Unknown indicator: {name}")


def describe_indicator(name: str, params: dict | None = None) -> str:
    """Short label used in trade reasons, e.g. 'RSI(14)'."""
    period = (params or {}).get("period")
    labels = {
        "rsi": f"RSI({period or 14})",
        "macd": "MACD",
        "macd_signal": "MACD Signal",
        "macd_histogram": "MACD Hist",
        "bollinger_upper": f"BB Upper({period or 20})",
        "bollinger_lower": f"BB Lower({period or 20})",
        "bollinger_middle": f"BB Mid({period or 20})",
        "sma": f"SMA({period or 20})",
        "ema": f"EMA({period or 21})",
        "supertrend": f"ST({period or 10})",
        "adx": f"ADX({period or 14})",
        "stoch_rsi_k": f"StochRSI K({period or 14})",
        "stoch_rsi_d": f"StochRSI D({period or 14})",
        "atr": f"ATR({period or 14})",
        "obv_trend": "OBV Trend",
        "vwap": "VWAP",
        "ichimoku_tenkan": "Tenkan",
        "ichimoku_kijun": "Kijun",
        "ichimoku_cloud": "Cloud",
        "price": "Price",
        "volume": "Volume",
        "volume_sma": f"Vol SMA({period or 20})",
    }
    return labels.get(name, name)


def atr_at(df: pd.DataFrame, period: int = 14) -> float | None:
    """ATR of the last bar in `df`, None when not yet defined."""
    v = compute_indicator("atr", df, {"period": period})
    if v.empty:
        return None
    last = float(v.iloc[-1])
    return last if np.isfinite(last) and last > 0 else None
