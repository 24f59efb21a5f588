"""
Indicator engine: EMA, ATR and VWAP over a bar window.

Pure functions of the bars they are given. Values are NaN until the
indicator has enough history:

- EMA(n): seeded with the simple average of the first ``n`` closes, then
  smoothed with ``k = 2 / (n + 1)``.
- ATR(n): true range (first bar uses high - low), seeded with the simple
  average of the first ``n`` ranges, then Wilder smoothing.
- VWAP: cumulative typical price x volume over cumulative volume across the
  whole window.
"""

import math
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from breakout.core.models import Bar, IndicatorSnapshot

EMA_FAST_PERIOD = 20
EMA_SLOW_PERIOD = 200
ATR_PERIOD = 14


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """OHLCV DataFrame indexed by bar time (float columns)."""
    return pd.DataFrame(
        {
            "open": [float(b.open) for b in bars],
            "high": [float(b.high) for b in bars],
            "low": [float(b.low) for b in bars],
            "close": [float(b.close) for b in bars],
            "volume": [float(b.volume) for b in bars],
        },
        index=pd.DatetimeIndex([b.time_utc for b in bars], name="time_utc"),
    )


def _seeded_smoothing(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """Exponential smoothing seeded with the SMA of the first ``period`` values."""
    out = pd.Series(np.nan, index=values.index)
    if period <= 0 or len(values) < period:
        return out

    seed = values.iloc[:period].mean()
    tail = pd.concat([pd.Series([seed]), values.iloc[period:].reset_index(drop=True)])
    smoothed = tail.ewm(alpha=alpha, adjust=False).mean()
    out.iloc[period - 1:] = smoothed.to_numpy()
    return out


def ema(close: pd.Series, period: int) -> pd.Series:
    return _seeded_smoothing(close, period, 2.0 / (period + 1))


def true_range(df: pd.DataFrame) -> pd.Series:
    prev_close = df["close"].shift(1)
    tr = pd.concat(
        [
            df["high"] - df["low"],
            (df["high"] - prev_close).abs(),
            (df["low"] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    if len(tr):
        tr.iloc[0] = df["high"].iloc[0] - df["low"].iloc[0]
    return tr


def atr(df: pd.DataFrame, period: int = ATR_PERIOD) -> pd.Series:
    return _seeded_smoothing(true_range(df), period, 1.0 / period)


def vwap(df: pd.DataFrame) -> pd.Series:
    typical = (df["high"] + df["low"] + df["close"]) / 3.0
    cum_vol = df["volume"].cumsum()
    cum_pv = (typical * df["volume"]).cumsum()
    return (cum_pv / cum_vol).where(cum_vol > 0)


def compute_indicators(
    bars: Sequence[Bar],
    ema_fast: int = EMA_FAST_PERIOD,
    ema_slow: int = EMA_SLOW_PERIOD,
    atr_period: int = ATR_PERIOD,
    with_vwap: bool = True,
) -> pd.DataFrame:
    """
    Compute the indicator series for a window of bars.

    Returns:
        DataFrame indexed by bar time with columns ``ema_fast``, ``ema_slow``,
        ``vwap`` and ``atr``.
    """
    df = bars_to_frame(bars)
    if df.empty:
        return pd.DataFrame(columns=["ema_fast", "ema_slow", "vwap", "atr"])

    out = pd.DataFrame(index=df.index)
    out["ema_fast"] = ema(df["close"], ema_fast)
    out["ema_slow"] = ema(df["close"], ema_slow)
    out["vwap"] = vwap(df) if with_vwap else np.nan
    out["atr"] = atr(df, atr_period)
    return out


def _to_decimal(value) -> Optional[Decimal]:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return Decimal(repr(float(value)))


def latest_snapshot(bars: Sequence[Bar], **kwargs) -> IndicatorSnapshot:
    """Indicator values at the last bar of ``bars``."""
    if not bars:
        return IndicatorSnapshot()
    last = compute_indicators(bars, **kwargs).iloc[-1]
    return IndicatorSnapshot(
        ema_fast=_to_decimal(last["ema_fast"]),
        ema_slow=_to_decimal(last["ema_slow"]),
        vwap=_to_decimal(last["vwap"]),
        atr=_to_decimal(last["atr"]),
    )
