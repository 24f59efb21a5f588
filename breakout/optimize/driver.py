"""
Randomized parameter search over train/test backtests.

Flow:
1. Load train and test datasets once (shared, read-only)
2. Sample every trial's parameters from the seeded generator
3. Evaluate trials: each gets a fresh scanner and fresh risk state, runs
   the simulator on train and on test, and is scored
4. Rank by final score (descending; ties by trial number)

Trials run on a process pool. Workers receive the datasets once, through
the pool initializer, instead of with every task. ``max_workers=1`` runs
everything in-process, which also lets the simulator see the cancel event
at every timestamp.
"""

import logging
import os
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from typing import List, Optional, Tuple

from breakout.backtest.dataset import BacktestDataSet, load_dataset
from breakout.backtest.models import BacktestOptions, BacktestResult
from breakout.backtest.simulator import CancelToken, run_backtest
from breakout.core.exceptions import BreakoutCancelledError
from breakout.data.base import MarketDataSource
from breakout.optimize.models import OptimizationResult, OptimizeOptions, TrialResult, TrialSettings
from breakout.optimize.sampler import sample_trials
from breakout.optimize.scoring import score_trial
from breakout.risk.risk_manager import RiskManager
from breakout.risk.state import RiskState
from breakout.scanners.factory import create_scanner

logger = logging.getLogger(__name__)


def backtest_options_for(trial: TrialSettings, options: OptimizeOptions) -> BacktestOptions:
    """Execution model for one trial: fixed run settings + sampled exit settings."""
    return BacktestOptions(
        symbols=options.symbols,
        timeframe=options.timeframe,
        max_bars_to_fill_entry=trial.max_bars_to_fill_entry,
        entry_limit_buffer_pct=trial.entry_limit_buffer_pct,
        flatten_time=options.flatten_time,
        session_mode=options.session_mode,
        session_hours=options.session_hours,
        same_bar_rule=options.same_bar_rule,
        slippage_pct=options.slippage_pct,
        commission_per_trade=options.commission_per_trade,
        take_profit_r=trial.take_profit_r,
        window_size=options.window_size,
    )


def run_trial_once(
    trial: TrialSettings,
    options: OptimizeOptions,
    dataset: BacktestDataSet,
    cancel_event: Optional[CancelToken] = None,
) -> BacktestResult:
    """One simulator run with a fresh scanner and fresh risk state."""
    scanner = create_scanner(trial.strategy, trial.scanner_options, options.retest, options.direction_mode)
    risk = RiskManager(RiskState(), options.risk, dataset.market_tz)
    return run_backtest(dataset, backtest_options_for(trial, options), scanner, risk, cancel_event)


def evaluate_trial(
    trial: TrialSettings,
    options: OptimizeOptions,
    train: BacktestDataSet,
    test: BacktestDataSet,
    cancel_event: Optional[CancelToken] = None,
) -> TrialResult:
    """Run ``trial`` on train and test data and score it."""
    train_run = run_trial_once(trial, options, train, cancel_event)
    test_run = run_trial_once(trial, options, test, cancel_event)
    score = score_trial(train_run, test_run, options)
    return TrialResult(
        trial=trial.trial,
        settings=trial,
        train=score.train,
        test=score.test,
        train_score=score.train_score,
        test_score=score.test_score,
        final_score=score.final_score,
        penalized=score.penalized,
    )


def rank_trials(results: List[TrialResult]) -> List[TrialResult]:
    return sorted(results, key=lambda r: (-r.final_score, r.trial))


# ---------------------------------------------------------------------------
# Worker process state
# ---------------------------------------------------------------------------

_worker_state: Optional[Tuple[OptimizeOptions, BacktestDataSet, BacktestDataSet]] = None


def _init_worker(options: OptimizeOptions, train: BacktestDataSet, test: BacktestDataSet) -> None:
    global _worker_state
    _worker_state = (options, train, test)


def _evaluate_in_worker(trial: TrialSettings) -> TrialResult:
    options, train, test = _worker_state
    return evaluate_trial(trial, options, train, test)


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------


class Optimizer:
    """
    Runs a full optimization over pre-loaded train/test datasets.

    Args:
        options: Run options (validated on construction).
        train: Dataset covering the train range.
        test: Dataset covering the test range.
    """

    def __init__(self, options: OptimizeOptions, train: BacktestDataSet, test: BacktestDataSet):
        options.validate_run()
        self.options = options
        self.train = train
        self.test = test

    @property
    def worker_count(self) -> int:
        n = self.options.max_workers or os.cpu_count() or 1
        return max(1, min(n, self.options.trials))

    def run(self, cancel_event: Optional[CancelToken] = None) -> OptimizationResult:
        """
        Evaluate every trial and rank them.

        Raises:
            BreakoutCancelledError: ``cancel_event`` was set; no partial
                result is returned.
        """
        opt = self.options
        trials = sample_trials(opt)
        logger.info(
            f"Optimize strategy={opt.strategy.value} trials={opt.trials} symbols={','.join(opt.symbols)} "
            f"train={opt.train_from}..{opt.train_to} test={opt.test_from}..{opt.test_to} "
            f"workers={self.worker_count}"
        )

        if self.worker_count == 1:
            results = self._run_sequential(trials, cancel_event)
        else:
            results = self._run_parallel(trials, cancel_event)

        ranked = rank_trials(results)
        if ranked:
            best = ranked[0]
            logger.info(
                f"Optimization complete: best trial #{best.trial} score={best.final_score:.2f} "
                f"(train={best.train_score:.2f} test={best.test_score:.2f})"
            )
        return OptimizationResult(ranked=ranked, top_n=opt.top_n)

    def _log_trial(self, r: TrialResult, done: int) -> None:
        logger.info(
            f"[{done}/{self.options.trials}] trial #{r.trial} score={r.final_score:.2f} "
            f"train_filled={r.train.filled_trades} test_filled={r.test.filled_trades}"
            + (" (penalized: too few fills)" if r.penalized else "")
        )

    def _run_sequential(self, trials: List[TrialSettings], cancel_event: Optional[CancelToken]) -> List[TrialResult]:
        results: List[TrialResult] = []
        for trial in trials:
            if cancel_event is not None and cancel_event.is_set():
                raise BreakoutCancelledError(f"Optimization cancelled before trial #{trial.trial}")
            r = evaluate_trial(trial, self.options, self.train, self.test, cancel_event)
            results.append(r)
            self._log_trial(r, len(results))
        return results

    def _run_parallel(self, trials: List[TrialSettings], cancel_event: Optional[CancelToken]) -> List[TrialResult]:
        results: List[TrialResult] = []
        executor = ProcessPoolExecutor(
            max_workers=self.worker_count,
            initializer=_init_worker,
            initargs=(self.options, self.train, self.test),
        )
        try:
            pending = {executor.submit(_evaluate_in_worker, t) for t in trials}
            while pending:
                done, pending = wait(pending, timeout=0.5, return_when=FIRST_COMPLETED)
                for future in done:
                    r = future.result()
                    results.append(r)
                    self._log_trial(r, len(results))
                if cancel_event is not None and cancel_event.is_set():
                    raise BreakoutCancelledError(
                        f"Optimization cancelled after {len(results)}/{len(trials)} trials"
                    )
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return results


async def load_train_test(
    source: MarketDataSource,
    options: OptimizeOptions,
) -> Tuple[BacktestDataSet, BacktestDataSet]:
    """Load the train and test datasets once for a whole optimization run."""
    options.validate_run()
    logger.info("Loading train bars...")
    train = await load_dataset(
        source, options.symbols, options.train_from, options.train_to, options.timeframe, options.market_timezone
    )
    logger.info("Loading test bars...")
    test = await load_dataset(
        source, options.symbols, options.test_from, options.test_to, options.timeframe, options.market_timezone
    )
    return train, test
