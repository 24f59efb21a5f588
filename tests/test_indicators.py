"""Tests for the EMA / ATR / VWAP indicator engine."""

import math

import pandas as pd
import pytest

from breakout.indicators import atr, bars_to_frame, compute_indicators, ema, latest_snapshot, true_range, vwap
from factories import make_bars


def _closes(*values):
    return make_bars("TEST", [(str(v), str(v), str(v), str(v)) for v in values])


class TestEma:
    def test_seeded_with_sma(self):
        out = ema(pd.Series([1.0, 2.0, 3.0, 4.0, 5.0]), 3)
        assert math.isnan(out.iloc[0]) and math.isnan(out.iloc[1])
        # seed = 2, k = 0.5
        assert out.iloc[2] == pytest.approx(2.0)
        assert out.iloc[3] == pytest.approx(3.0)
        assert out.iloc[4] == pytest.approx(4.0)

    def test_not_enough_history(self):
        assert ema(pd.Series([1.0, 2.0]), 3).isna().all()


class TestAtr:
    def test_first_true_range_is_high_low(self):
        df = bars_to_frame(make_bars("TEST", [("10", "11", "9", "10"), ("10", "10.5", "9.5", "10")]))
        tr = true_range(df)
        assert tr.iloc[0] == pytest.approx(2.0)
        assert tr.iloc[1] == pytest.approx(1.0)

    def test_gap_uses_previous_close(self):
        df = bars_to_frame(make_bars("TEST", [("10", "10", "10", "10"), ("12", "12.5", "12", "12.2")]))
        assert true_range(df).iloc[1] == pytest.approx(2.5)

    def test_wilder_smoothing(self):
        # ranges 2, 2, 2, 5 with period 3: seed 2, then (2 * 2 + 5) / 3
        ohlc = [("10", "11", "9", "10")] * 3 + [("10", "12.5", "7.5", "10")]
        out = atr(bars_to_frame(make_bars("TEST", ohlc)), 3)
        assert math.isnan(out.iloc[1])
        assert out.iloc[2] == pytest.approx(2.0)
        assert out.iloc[3] == pytest.approx(3.0)


class TestVwap:
    def test_typical_price_weighted(self):
        bars = make_bars("TEST", [("10", "12", "8", "10"), ("20", "23", "17", "20")])
        out = vwap(bars_to_frame(bars))
        assert out.iloc[0] == pytest.approx(10.0)
        assert out.iloc[1] == pytest.approx(15.0)


class TestSnapshot:
    def test_columns(self):
        df = compute_indicators(_closes(*range(1, 30)), ema_fast=5, ema_slow=10, atr_period=3)
        assert list(df.columns) == ["ema_fast", "ema_slow", "vwap", "atr"]
        assert len(df) == 29

    def test_unavailable_values_are_none(self):
        snap = latest_snapshot(_closes(*range(1, 30)))
        assert snap.ema_fast is not None
        assert snap.ema_slow is None  # 200-bar EMA
        assert snap.atr is not None
        assert snap.vwap is not None

    def test_empty_window(self):
        snap = latest_snapshot([])
        assert snap.to_dict() == {"ema_fast": None, "ema_slow": None, "vwap": None, "atr": None}
