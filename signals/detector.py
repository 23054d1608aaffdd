# signals/detector.py
"""
Built-in signal detector producing a SignalSummary from bars alone.

Candlestick patterns come from TA-Lib's CDL* recognizers, read on the last bar
(multi-candle patterns look back up to three bars); FVGs scan the last 30 bars;
support/resistance from clustered pivots plus moving-average and 52-week
levels; Fibonacci retracements from the last 100 bars' swing.
"""
from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pandas as pd
import talib

from models.signal import FairValueGap, FibLevel, PriceLevel, PriceTargets, Signal, SignalSummary

# (talib function, display name, strength, bullish description, bearish description)
CANDLE_PATTERNS = [
    ("CDLENGULFING", "Engulfing", 4, "completely engulfs prior bearish candle", "completely engulfs prior bullish candle"),
    ("CDLHAMMER", "Hammer", 3, "long lower wick after downtrend", ""),
    ("CDLINVERTEDHAMMER", "Inverted Hammer", 2, "buying pressure emerging", ""),
    ("CDLSHOOTINGSTAR", "Shooting Star", 3, "", "rejection at highs"),
    ("CDLHANGINGMAN", "Hanging Man", 2, "", "selling pressure at highs"),
    ("CDLMARUBOZU", "Marubozu", 4, "full-body buying conviction", "full-body selling conviction"),
    ("CDLPIERCING", "Piercing Line", 3, "opens below prior close, closes above midpoint", ""),
    ("CDLDARKCLOUDCOVER", "Dark Cloud Cover", 3, "", "opens above prior close, closes below midpoint"),
    ("CDLMORNINGSTAR", "Morning Star", 5, "bearish, indecision, then strong bullish", ""),
    ("CDLEVENINGSTAR", "Evening Star", 5, "", "bullish, indecision, then strong bearish"),
    ("CDL3WHITESOLDIERS", "Three White Soldiers", 5, "three consecutive rising bullish candles", ""),
    ("CDL3BLACKCROWS", "Three Black Crows", 5, "", "three consecutive falling bearish candles"),
    ("CDLDOJI", "Doji", 2, "indecision", "indecision"),
]
FIB_RATIOS = [("0% (High)", 0.0), ("23.6%", 0.236), ("38.2%", 0.382), ("50%", 0.5),
              ("61.8%", 0.618), ("78.6%", 0.786), ("100% (Low)", 1.0)]
SR_CLUSTER_PCT = 0.015
SR_MAX_DISTANCE_PCT = 0.15
FVG_MIN_GAP_PCT = 0.3
FVG_LOOKBACK = 30


def _arrays(df: pd.DataFrame):
    return tuple(np.asarray(df[c], dtype="float64").ravel() for c in ("Open", "High", "Low", "Close"))


# ---------- Candlesticks ----------

def detect_candlestick_patterns(df: pd.DataFrame) -> List[Signal]:
    if len(df) < 5:
        return []
    o, h, l, c = _arrays(df)
    out: List[Signal] = []
    for fn_name, name, strength, bull_desc, bear_desc in CANDLE_PATTERNS:
        val = int(getattr(talib, fn_name)(o, h, l, c)[-1])
        if val == 0:
            continue
        if fn_name == "CDLDOJI":
            out.append(Signal(name, "candlestick", "neutral", strength, "Indecision - body tiny relative to range"))
        elif val > 0:
            label = f"Bullish {name}" if bear_desc else name
            out.append(Signal(label, "candlestick", "bullish", strength, f"Bullish reversal - {bull_desc}"))
        else:
            label = f"Bearish {name}" if bull_desc else name
            out.append(Signal(label, "candlestick", "bearish", strength, f"Bearish reversal - {bear_desc}"))
    return out


# ---------- Fair value gaps ----------

def detect_fvgs(df: pd.DataFrame) -> Tuple[List[Signal], List[FairValueGap]]:
    if len(df) < 20:
        return [], []
    recent = df.iloc[-FVG_LOOKBACK:]
    price = float(df["Close"].iloc[-1])
    hi = recent["High"].to_numpy()
    lo = recent["Low"].to_numpy()
    cl = recent["Close"].to_numpy()
    gaps: List[FairValueGap] = []
    for i in range(1, len(recent) - 1):
        dt = str(recent.index[i].date())
        if lo[i + 1] > hi[i - 1] and (lo[i + 1] - hi[i - 1]) / cl[i] * 100 > FVG_MIN_GAP_PCT:
            top, bot = lo[i + 1], hi[i - 1]
            gaps.append(FairValueGap((top + bot) / 2, "bullish", bool(bot <= price <= top), float(top), float(bot), dt))
        if hi[i + 1] < lo[i - 1] and (lo[i - 1] - hi[i + 1]) / cl[i] * 100 > FVG_MIN_GAP_PCT:
            top, bot = lo[i - 1], hi[i + 1]
            gaps.append(FairValueGap((top + bot) / 2, "bearish", bool(bot <= price <= top), float(top), float(bot), dt))

    near = [g for g in gaps if not g.filled and abs(g.mid_price - price) / price < 0.05]
    bull = [g for g in near if g.type == "bullish" and g.mid_price < price]
    bear = [g for g in near if g.type == "bearish" and g.mid_price > price]
    sigs: List[Signal] = []
    if bull:
        sigs.append(Signal(f"Bullish FVG ({len(bull)})", "smart-money", "bullish", min(4, len(bull) + 1),
                           f"{len(bull)} unfilled bullish gap(s) below price near {bull[0].mid_price:.2f}",
                           bull[0].mid_price))
    if bear:
        sigs.append(Signal(f"Bearish FVG ({len(bear)})", "smart-money", "bearish", min(4, len(bear) + 1),
                           f"{len(bear)} unfilled bearish gap(s) above price near {bear[0].mid_price:.2f}",
                           bear[0].mid_price))
    return sigs, gaps


# ---------- Technical ----------

def detect_technical_signals(df: pd.DataFrame) -> List[Signal]:
    c = np.asarray(df["Close"], dtype="float64").ravel()
    h = np.asarray(df["High"], dtype="float64").ravel()
    l = np.asarray(df["Low"], dtype="float64").ravel()
    out: List[Signal] = []

    if len(c) >= 210:
        s20, s50, s200 = talib.SMA(c, 20), talib.SMA(c, 50), talib.SMA(c, 200)
        if s50[-1] > s200[-1] and s50[-2] <= s200[-2]:
            out.append(Signal("Golden Cross", "momentum", "bullish", 5, "SMA 50 crossed above SMA 200"))
        if s50[-1] < s200[-1] and s50[-2] >= s200[-2]:
            out.append(Signal("Death Cross", "momentum", "bearish", 5, "SMA 50 crossed below SMA 200"))
        if s20[-1] > s50[-1] and s20[-2] <= s50[-2]:
            out.append(Signal("20/50 Bullish Cross", "momentum", "bullish", 3, "Short-term MA crossed above medium-term"))
        if s20[-1] < s50[-1] and s20[-2] >= s50[-2]:
            out.append(Signal("20/50 Bearish Cross", "momentum", "bearish", 3, "Short-term MA crossed below medium-term"))
        if c[-1] > s20[-1] > s50[-1] > s200[-1]:
            out.append(Signal("Full Bull Alignment", "momentum", "bullish", 4, "Price > SMA20 > SMA50 > SMA200"))
        if c[-1] < s20[-1] < s50[-1] < s200[-1]:
            out.append(Signal("Full Bear Alignment", "momentum", "bearish", 4, "Price < SMA20 < SMA50 < SMA200"))

    if len(c) >= 35:
        rsi = talib.RSI(c, timeperiod=14)
        if np.isfinite(rsi[-1]) and rsi[-1] < 30:
            out.append(Signal("RSI Oversold", "technical", "bullish", 3, f"RSI(14) at {rsi[-1]:.1f}"))
        elif np.isfinite(rsi[-1]) and rsi[-1] > 70:
            out.append(Signal("RSI Overbought", "technical", "bearish", 3, f"RSI(14) at {rsi[-1]:.1f}"))
        macd, macds, _ = talib.MACD(c, fastperiod=12, slowperiod=26, signalperiod=9)
        if np.isfinite(macds[-2]):
            if macd[-1] > macds[-1] and macd[-2] <= macds[-2]:
                out.append(Signal("MACD Bullish Cross", "momentum", "bullish", 3, "MACD crossed above signal line"))
            if macd[-1] < macds[-1] and macd[-2] >= macds[-2]:
                out.append(Signal("MACD Bearish Cross", "momentum", "bearish", 3, "MACD crossed below signal line"))

    if len(c) >= 30:
        adx = talib.ADX(h, l, c, timeperiod=14)
        pdi = talib.PLUS_DI(h, l, c, timeperiod=14)
        mdi = talib.MINUS_DI(h, l, c, timeperiod=14)
        if np.isfinite(adx[-1]) and adx[-1] > 25:
            bull = pdi[-1] > mdi[-1]
            out.append(Signal("Strong Trend (ADX)", "technical", "bullish" if bull else "bearish",
                              4 if adx[-1] > 40 else 3, f"ADX {adx[-1]:.1f} with {'+DI' if bull else '-DI'} leading"))
    return out


# ---------- Levels ----------

def _find_pivots(high: pd.Series, low: pd.Series, left: int, right: int, tol: float = 1e-6) -> tuple[list[int], list[int]]:
    """Pivot high/low indices; a bar needs a full left/right window. A plateau keeps its first bar."""
    highs_idx, lows_idx = [], []
    H = high.to_numpy()
    L = low.to_numpy()
    n = len(H)
    last_high_plateau = last_low_plateau = -2
    for i in range(left, n - right):
        winH = H[i - left:i + right + 1]
        winL = L[i - left:i + right + 1]
        if np.isfinite(H[i]) and H[i] >= np.nanmax(winH) - tol:
            if i - 1 != last_high_plateau:
                highs_idx.append(i)
            last_high_plateau = i
        if np.isfinite(L[i]) and L[i] <= np.nanmin(winL) + tol:
            if i - 1 != last_low_plateau:
                lows_idx.append(i)
            last_low_plateau = i
    return highs_idx, lows_idx


def _cluster(prices: List[float], kind: str, tolerance: float) -> List[PriceLevel]:
    clusters: List[List[float]] = []
    for p in sorted(prices):
        for cl in clusters:
            if abs(np.mean(cl) - p) < tolerance:
                cl.append(p)
                break
        else:
            clusters.append([p])
    return [PriceLevel(round(float(np.mean(cl)), 2), kind, min(5, len(cl)), "Pivot") for cl in clusters]


def find_support_resistance(df: pd.DataFrame) -> List[PriceLevel]:
    """Levels within 15% of price, nearest-first from the top, duplicates merged."""
    if len(df) < 50:
        return []
    price = float(df["Close"].iloc[-1])
    tol = price * SR_CLUSTER_PCT
    recent = df.iloc[-60:]
    hi_idx, lo_idx = _find_pivots(recent["High"], recent["Low"], left=2, right=2)
    levels = _cluster([float(recent["Low"].iloc[i]) for i in lo_idx], "support", tol)
    levels += _cluster([float(recent["High"].iloc[i]) for i in hi_idx], "resistance", tol)

    closes = np.asarray(df["Close"], dtype="float64")
    sma50 = float(talib.SMA(closes, 50)[-1])
    levels.append(PriceLevel(round(sma50, 2), "support" if sma50 < price else "resistance", 3, "SMA 50"))
    if len(df) >= 200:
        sma200 = float(talib.SMA(closes, 200)[-1])
        levels.append(PriceLevel(round(sma200, 2), "support" if sma200 < price else "resistance", 4, "SMA 200"))
    yr = df.iloc[-252:]
    levels.append(PriceLevel(round(float(yr["High"].max()), 2), "resistance", 4, "52W High"))
    levels.append(PriceLevel(round(float(yr["Low"].min()), 2), "support", 4, "52W Low"))

    merged: List[PriceLevel] = []
    for lv in sorted(levels, key=lambda x: x.price):
        dup = next((m for m in merged if abs(m.price - lv.price) < tol * 0.5), None)
        if dup is None:
            merged.append(PriceLevel(lv.price, lv.type, lv.strength, lv.source))
            continue
        dup.strength = min(5, dup.strength + 1)
        if lv.source not in dup.source:
            dup.source = f"{dup.source}, {lv.source}"
    near = [m for m in merged if abs(m.price - price) / price < SR_MAX_DISTANCE_PCT]
    return sorted(near, key=lambda x: -x.price)


def fibonacci_levels(df: pd.DataFrame) -> List[FibLevel]:
    if len(df) < 50:
        return []
    recent = df.iloc[-100:]
    hi = recent["High"].to_numpy()
    lo = recent["Low"].to_numpy()
    sh_i, sl_i = int(np.argmax(hi)), int(np.argmin(lo))
    swing_high, swing_low = float(hi[sh_i]), float(lo[sl_i])
    rng = swing_high - swing_low
    price = float(recent["Close"].iloc[-1])
    up = sh_i > sl_i
    out = []
    for label, ratio in FIB_RATIOS:
        px = swing_high - rng * ratio if up else swing_low + rng * ratio
        out.append(FibLevel(label, round(px, 2), "support" if px < price else "resistance"))
    return out


def price_targets(df: pd.DataFrame, levels: List[PriceLevel]) -> PriceTargets:
    price = float(df["Close"].iloc[-1])
    sup = sorted((l for l in levels if l.type == "support" and l.price < price), key=lambda x: -x.price)
    res = sorted((l for l in levels if l.type == "resistance" and l.price > price), key=lambda x: x.price)
    imm_s = sup[0].price if sup else price * 0.95
    imm_r = res[0].price if res else price * 1.05
    _, h, l, c = _arrays(df)
    atr = talib.ATR(h, l, c, timeperiod=14) if len(c) > 14 else np.array([np.nan])
    atr_last = float(atr[-1]) if np.isfinite(atr[-1]) else 0.0
    stop = max(imm_s - atr_last * 0.5, price * 0.92)
    t1 = imm_r
    t2 = res[1].price if len(res) > 1 else price * 1.10
    risk, reward = price - stop, t1 - price
    return PriceTargets(
        current_price=round(price, 2),
        immediate_support=round(imm_s, 2),
        immediate_resistance=round(imm_r, 2),
        target1=round(t1, 2),
        target2=round(t2, 2),
        stop_loss=round(stop, 2),
        risk_reward_ratio=round(reward / risk, 2) if risk > 0 else 0.0,
    )


# ---------- Master ----------

def analyze_signals(df: pd.DataFrame) -> SignalSummary:
    candles = detect_candlestick_patterns(df)
    fvg_sigs, fvgs = detect_fvgs(df)
    signals = candles + fvg_sigs + detect_technical_signals(df)
    levels = find_support_resistance(df)
    fibs = fibonacci_levels(df)
    targets = price_targets(df, levels)

    bull = sum(s.strength * 8 for s in signals if s.direction == "bullish")
    bear = sum(s.strength * 8 for s in signals if s.direction == "bearish")
    overall = max(-100, min(100, bull - bear))
    cbull = sum(s.strength * 15 for s in candles if s.direction == "bullish")
    cbear = sum(s.strength * 15 for s in candles if s.direction == "bearish")
    cscore = cbull - cbear

    price = float(df["Close"].iloc[-1])
    near_s = next((l for l in levels if l.type == "support" and abs(l.price - price) / price < 0.02), None)
    near_r = next((l for l in levels if l.type == "resistance" and abs(l.price - price) / price < 0.02), None)
    if near_s:
        pvl = f"Near support at {near_s.price:.2f} ({near_s.source})"
    elif near_r:
        pvl = f"Near resistance at {near_r.price:.2f} ({near_r.source})"
    else:
        pvl = f"Between S:{targets.immediate_support:.2f} and R:{targets.immediate_resistance:.2f}"

    return SignalSummary(
        signals=signals,
        candlestick_patterns=candles,
        support_resistance=levels,
        fib_levels=fibs,
        fvgs=fvgs,
        price_targets=targets,
        candlestick_bias="bullish" if cscore > 10 else "bearish" if cscore < -10 else "neutral",
        candlestick_score=float(max(-100, min(100, cscore))),
        overall_bias="bullish" if overall > 15 else "bearish" if overall < -15 else "neutral",
        overall_score=float(overall),
        price_vs_levels=pvl,
    )
