"""Tests for ledger export and text reports."""

import json
from decimal import Decimal

import pandas as pd

from breakout.backtest.dataset import BacktestDataSet
from breakout.backtest.reporter import (
    LEDGER_COLUMNS,
    BacktestReporter,
    summary_to_dict,
    trades_to_dataframe,
    write_summary_json,
    write_trades_csv,
)
from breakout.backtest.simulator import run_backtest
from breakout.core.enums import Direction
from factories import AllowAll, SignalScanner, bar_time, flat, make_bars, replay_options


def _result():
    # One no-fill (signal at bar 2) and one end-of-day trade (signal at bar 15)
    ohlc = flat("10.50", 16) + [("10.20", "10.30", "9.98", "10.10")] + flat("10.20", 3)
    ds = BacktestDataSet.from_bars(make_bars("TEST", ohlc))
    signals = {
        ("TEST", bar_time(2)): (Direction.LONG, "10.00", "9.50", None),
        ("TEST", bar_time(15)): (Direction.LONG, "10.00", "9.50", None),
    }
    return run_backtest(ds, replay_options(), SignalScanner(signals), AllowAll())


class TestLedger:
    def test_columns_and_values(self):
        df = trades_to_dataframe(_result().trades)
        assert list(df.columns) == LEDGER_COLUMNS
        assert list(df["outcome"]) == ["no_fill", "end_of_day"]

        filled = df.iloc[1]
        assert filled["signal_time_utc"] == "2024-03-04T15:45:00Z"
        assert filled["entry_time_utc"] == "2024-03-04T15:50:00Z"
        assert Decimal(filled["filled_entry_price"]) == Decimal("10.01")
        assert Decimal(filled["pnl"]) == Decimal("17.98")
        assert df.iloc[0]["entry_time_utc"] == ""

    def test_empty_ledger_keeps_columns(self):
        assert list(trades_to_dataframe([]).columns) == LEDGER_COLUMNS

    def test_files(self, tmp_path):
        result = _result()
        csv_path = write_trades_csv(tmp_path / "out" / "trades.csv", result.trades)
        json_path = write_summary_json(tmp_path / "out" / "summary.json", result.summary)

        assert len(pd.read_csv(csv_path)) == 2
        summary = json.loads(json_path.read_text())
        assert summary["trades"] == 2
        assert summary["no_fills"] == 1
        assert summary["filled_trades"] == 1
        assert Decimal(summary["total_pnl"]) == Decimal("17.98")


class TestBacktestReporter:
    def test_summary_text(self):
        text = BacktestReporter().generate_summary(_result(), title="TEST RUN")
        assert "TEST RUN" in text
        assert "No-Fills:" in text
        assert "end_of_day:" in text
        assert "no_fill:" in text

    def test_summary_dict_is_json_safe(self):
        json.dumps(summary_to_dict(_result().summary))
