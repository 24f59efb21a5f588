"""Tests for the randomized train/test optimizer."""

import json
import threading
from datetime import date, time, timedelta
from decimal import Decimal

import pandas as pd
import pytest

from breakout.backtest.dataset import BacktestDataSet
from breakout.backtest.models import BacktestTrade
from breakout.backtest.statistics import build_result
from breakout.config.settings import Settings
from breakout.core.enums import Direction, ScannerStrategy, TradeOutcome
from breakout.core.exceptions import BreakoutCancelledError, BreakoutConfigError
from breakout.data.base import InMemoryBarSource
from breakout.optimize import (
    MIN_FILLED_PENALTY,
    OptimizationResult,
    Optimizer,
    OptimizeOptions,
    composite_score,
    compute_metrics,
    load_train_test,
    sample_trials,
    score_trial,
)
from breakout.optimize.driver import backtest_options_for, rank_trials
from breakout.optimize.models import OptimizeMetrics, ScoreWeights
from breakout.optimize.reporter import RESULTS_FILE, TOP_CONFIGS_FILE, format_top, write_optimization_outputs
from breakout.scanners.consolidation import ConsolidationScannerOptions
from breakout.scheduler.market_hours import MarketSessionHours
from factories import BASE_UTC, D, bar_time, random_walk_bars

DAY = timedelta(days=1)


def _options(**overrides):
    values = dict(
        symbols=["AAA", "BBB"],
        train_from=date(2024, 3, 4),
        train_to=date(2024, 3, 5),
        test_from=date(2024, 3, 6),
        test_to=date(2024, 3, 6),
        trials=4,
        seed=7,
        max_workers=1,
        min_filled_trades=1,
        base_consolidation=ConsolidationScannerOptions(require_atr_available=False),
    )
    values.update(overrides)
    return OptimizeOptions(**values)


def _bars(days):
    bars = []
    for d in days:
        for k, sym in enumerate(("AAA", "BBB")):
            bars += random_walk_bars(sym, BASE_UTC + DAY * d, 78, seed=100 * d + k)
    return bars


@pytest.fixture(scope="module")
def datasets():
    train = BacktestDataSet.from_bars(_bars([0, 1]))
    test = BacktestDataSet.from_bars(_bars([2]))
    return train, test


def _winners(n, pnl="10", r="1"):
    trades = [
        BacktestTrade(
            symbol="AAA",
            direction=Direction.LONG,
            quantity=10,
            signal_time_utc=bar_time(i),
            entry_limit=D("50"),
            stop_price=D("49"),
            outcome=TradeOutcome.TAKE_PROFIT,
            pnl=D(pnl),
            r_multiple=D(r),
            risk_per_share=D("1"),
        )
        for i in range(n)
    ]
    return build_result(trades)


# =============================================================================
# Options validation
# =============================================================================


class TestOptimizeOptions:
    def test_valid(self):
        _options().validate_run()

    def test_symbols_normalized(self):
        assert _options(symbols=[" aaa", "AAA", "bbb"]).symbols == ["AAA", "BBB"]

    @pytest.mark.parametrize(
        "overrides",
        [
            dict(symbols=[]),
            dict(train_from=None),
            dict(train_from=date(2024, 3, 6), train_to=date(2024, 3, 5)),
            dict(test_from=date(2024, 3, 7), test_to=date(2024, 3, 6)),
            dict(test_from=date(2024, 3, 5)),  # overlaps train
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(BreakoutConfigError):
            _options(**overrides).validate_run()

    def test_optimizer_validates_on_construction(self, datasets):
        with pytest.raises(BreakoutConfigError):
            Optimizer(_options(symbols=[]), *datasets)

    def test_trial_backtest_options(self):
        trial = sample_trials(_options())[0]
        opts = backtest_options_for(trial, _options())
        assert opts.symbols == ["AAA", "BBB"]
        assert opts.max_bars_to_fill_entry == trial.max_bars_to_fill_entry
        assert opts.take_profit_r == trial.take_profit_r
        assert opts.window_size == 400

    def test_trial_backtest_options_carry_run_settings(self):
        hours = MarketSessionHours(regular_end=time(13, 0), after_hours_start=time(13, 0))
        options = OptimizeOptions.from_settings(
            Settings(_env_file=None, window_size=50),
            symbols=["AAA"],
            train_from=date(2024, 3, 4),
            train_to=date(2024, 3, 5),
            test_from=date(2024, 3, 6),
            test_to=date(2024, 3, 6),
            session_hours=hours,
        )
        opts = backtest_options_for(sample_trials(options)[0], options)
        assert opts.window_size == 50
        assert opts.session_hours == hours


# =============================================================================
# Sampling
# =============================================================================


class TestSampling:
    def test_reproducible_from_seed(self):
        assert sample_trials(_options()) == sample_trials(_options())
        assert sample_trials(_options()) != sample_trials(_options(seed=8))

    def test_numbered_from_one(self):
        assert [t.trial for t in sample_trials(_options(trials=5))] == [1, 2, 3, 4, 5]

    def test_within_ranges(self):
        opts = _options(trials=50)
        r = opts.consolidation_ranges
        for t in sample_trials(opts):
            c = t.consolidation
            assert t.reversal is None
            assert r.lookback_bars.min <= c.consolidation_lookback_bars <= r.lookback_bars.max
            assert r.max_range_pct.min <= c.max_consolidation_range_pct <= r.max_range_pct.max
            assert r.min_volume_ratio.min <= c.min_volume_to_avg_volume <= r.min_volume_ratio.max
            assert 1 <= t.max_bars_to_fill_entry <= 12
            assert t.take_profit_r in opts.exit_ranges.take_profit_r_values
            # Unsampled settings come from the base options
            assert c.require_atr_available is False

    def test_reversal_strategy(self):
        opts = _options(strategy=ScannerStrategy.REVERSAL_UP, trials=10)
        r = opts.reversal_ranges
        for t in sample_trials(opts):
            assert t.consolidation is None
            assert t.scanner_options is t.reversal
            assert r.sideways_lookback_bars.min <= t.reversal.sideways_lookback_bars <= r.sideways_lookback_bars.max
            assert r.take_profit_bull_run_pct.min <= t.reversal.take_profit_bull_run_pct <= r.take_profit_bull_run_pct.max


# =============================================================================
# Scoring
# =============================================================================


class TestScoring:
    def test_composite(self):
        m = OptimizeMetrics(
            trades=10,
            filled_trades=8,
            win_rate=D("0.75"),
            avg_r=D("0.5"),
            profit_factor=D("2"),
            max_drawdown_pct=D("0.02"),
        )
        # 50 + 20 + 25 - 1 - 1
        assert composite_score(m, ScoreWeights()) == D("93")

    def test_metrics(self):
        m = compute_metrics(_winners(4), D("1000"))
        assert m.filled_trades == 4
        assert m.win_rate == 1
        assert m.profit_factor == D("999")
        assert m.max_drawdown_pct == 0
        assert m.no_fill_pct == 0

    def test_penalty_for_too_few_fills(self):
        # 5 fills each side against a floor of 20
        score = score_trial(_winners(5), _winners(5), _options(min_filled_trades=20))
        per_run = D("1") * 100 + D("999") * 10 + (D("1") - D("0.5")) * 100
        assert score.train_score == per_run
        assert score.penalized
        assert score.final_score == per_run - MIN_FILLED_PENALTY

    def test_no_penalty_at_floor(self):
        score = score_trial(_winners(5), _winners(5), _options(min_filled_trades=5))
        assert not score.penalized
        assert score.final_score == score.train_score * D("0.6") + score.test_score * D("0.4")

    def test_rank_ties_by_trial_number(self, datasets):
        results = Optimizer(_options(), *datasets).run().ranked
        shuffled = list(reversed(results))
        ranked = rank_trials(shuffled)
        keys = [(-r.final_score, r.trial) for r in ranked]
        assert keys == sorted(keys)


# =============================================================================
# Driver
# =============================================================================


class TestOptimizer:
    def test_runs_every_trial(self, datasets):
        result = Optimizer(_options(), *datasets).run()
        assert sorted(r.trial for r in result.ranked) == [1, 2, 3, 4]
        assert result.best is result.ranked[0]
        scores = [r.final_score for r in result.ranked]
        assert scores == sorted(scores, reverse=True)

    def test_parallel_matches_sequential(self, datasets):
        sequential = Optimizer(_options(), *datasets).run()
        parallel = Optimizer(_options(max_workers=2), *datasets).run()
        assert [(r.trial, r.final_score) for r in parallel.ranked] == [
            (r.trial, r.final_score) for r in sequential.ranked
        ]
        assert parallel.ranked == sequential.ranked

    def test_same_seed_same_result(self, datasets):
        first = Optimizer(_options(), *datasets).run()
        second = Optimizer(_options(), *datasets).run()
        assert first.ranked == second.ranked

    def test_cancel(self, datasets):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(BreakoutCancelledError):
            Optimizer(_options(), *datasets).run(cancel)

    def test_worker_count(self, datasets):
        assert Optimizer(_options(max_workers=8, trials=3), *datasets).worker_count == 3
        assert Optimizer(_options(max_workers=1), *datasets).worker_count == 1

    @pytest.mark.asyncio
    async def test_load_train_test(self):
        source = InMemoryBarSource(_bars([0, 1, 2]))
        train, test = await load_train_test(source, _options())
        assert train.bar_count == 2 * 2 * 78
        assert test.bar_count == 2 * 78
        assert max(train.times_utc) < min(test.times_utc)


# =============================================================================
# Outputs
# =============================================================================


class TestOptimizationOutputs:
    def test_write(self, datasets, tmp_path):
        result = Optimizer(_options(top_n=2), *datasets).run()
        run_dir = write_optimization_outputs(tmp_path, result, run_name="run1")

        assert run_dir == tmp_path / "run1"
        df = pd.read_csv(run_dir / RESULTS_FILE)
        assert list(df["trial"]) == [r.trial for r in result.ranked]
        assert "consolidation.consolidation_lookback_bars" in df.columns
        assert "test_avg_r" in df.columns

        top = json.loads((run_dir / TOP_CONFIGS_FILE).read_text())
        assert len(top) == 2
        assert top[0]["trial"] == result.best.trial
        assert Decimal(top[0]["final_score"]) == result.best.final_score

    def test_format_top(self, datasets):
        result = Optimizer(_options(top_n=3), *datasets).run()
        text = format_top(result)
        assert "TOP 3 CONFIGS" in text
        assert f"#{result.best.trial}" in text

    def test_empty_result(self):
        result = OptimizationResult(ranked=[], top_n=5)
        assert result.best is None
        assert result.top == []
