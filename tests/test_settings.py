"""Tests for environment-driven settings and option defaults."""

from datetime import time
from decimal import Decimal

import pytest
from pydantic import ValidationError

from breakout.backtest.models import BacktestOptions
from breakout.config.settings import Settings
from breakout.core.enums import MarketSessionMode
from breakout.core.exceptions import BreakoutConfigError
from breakout.optimize.models import OptimizeOptions


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.market_timezone == "America/New_York"
        assert s.flatten_time == time(15, 50)
        assert s.max_bars_to_fill_entry == 6
        assert s.optimize_trials == 500
        assert s.optimize_seed == 12345

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BREAKOUT_MAX_BARS_TO_FILL_ENTRY", "3")
        monkeypatch.setenv("BREAKOUT_SESSION_MODE", "extended")
        monkeypatch.setenv("BREAKOUT_SLIPPAGE_PCT", "0.001")
        s = Settings(_env_file=None)
        assert s.max_bars_to_fill_entry == 3
        assert s.session_mode == MarketSessionMode.EXTENDED
        assert s.slippage_pct == Decimal("0.001")


class TestBacktestOptions:
    def test_from_settings(self):
        s = Settings(_env_file=None, max_bars_to_fill_entry=2, flatten_time=time(15, 0))
        opts = BacktestOptions.from_settings(s, symbols=["aapl"])
        assert opts.max_bars_to_fill_entry == 2
        assert opts.flatten_time == time(15, 0)
        assert opts.symbols == ["AAPL"]

    @pytest.mark.parametrize(
        "field, value",
        [
            ("max_bars_to_fill_entry", 0),
            ("entry_limit_buffer_pct", Decimal("-0.001")),
            ("slippage_pct", Decimal("-0.1")),
            ("take_profit_r", Decimal("0")),
            ("window_size", 0),
        ],
    )
    def test_field_constraints(self, field, value):
        with pytest.raises(ValidationError):
            BacktestOptions(symbols=["AAPL"], **{field: value})

    def test_inverted_dates(self):
        from datetime import date

        opts = BacktestOptions(symbols=["AAPL"], from_date=date(2024, 3, 5), to_date=date(2024, 3, 4))
        with pytest.raises(BreakoutConfigError):
            opts.validate_run()


class TestOptimizeOptions:
    def test_from_settings(self):
        s = Settings(_env_file=None, optimize_trials=25, weight_avg_r=Decimal("50"), symbol_cooldown_minutes=10)
        opts = OptimizeOptions.from_settings(s, symbols=["AAPL"])
        assert opts.trials == 25
        assert opts.weights.avg_r == Decimal("50")
        assert opts.risk.symbol_cooldown.total_seconds() == 600

    def test_trials_must_be_positive(self):
        with pytest.raises(ValidationError):
            OptimizeOptions(trials=0)
