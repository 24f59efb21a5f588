"""
Trial scoring.

Composite score (higher is better)::

    AvgR * wR + ProfitFactor * wPF + (WinRate - minWinRate) * wWR
        - MaxDrawdownPct * wDD - NoFillPct * wNF

Final score = train * train_weight + test * test_weight, minus a fixed
penalty when either run filled fewer trades than the configured floor. The
penalty demotes the trial instead of dropping it so the ranking stays
complete.
"""

from decimal import Decimal
from typing import NamedTuple

from breakout.backtest.models import BacktestResult
from breakout.backtest.statistics import profit_factor
from breakout.optimize.models import OptimizeMetrics, OptimizeOptions, ScoreWeights

MIN_FILLED_PENALTY = Decimal("1000")


class TrialScore(NamedTuple):
    train: OptimizeMetrics
    test: OptimizeMetrics
    train_score: Decimal
    test_score: Decimal
    final_score: Decimal
    penalized: bool


def compute_metrics(result: BacktestResult, starting_equity: Decimal) -> OptimizeMetrics:
    s = result.summary
    pnls = [t.pnl for t in result.trades if t.is_filled]
    dd_pct = s.max_drawdown / starting_equity if starting_equity > 0 else Decimal("0")
    return OptimizeMetrics(
        trades=s.trades,
        filled_trades=s.filled_trades,
        wins=s.wins,
        losses=s.losses,
        win_rate=s.win_rate,
        total_pnl=s.total_pnl,
        avg_pnl=s.avg_pnl,
        avg_r=s.avg_r,
        max_drawdown=s.max_drawdown,
        max_drawdown_pct=dd_pct,
        profit_factor=profit_factor(pnls),
    )


def composite_score(m: OptimizeMetrics, w: ScoreWeights) -> Decimal:
    return (
        m.avg_r * w.avg_r
        + m.profit_factor * w.profit_factor
        + (m.win_rate - w.min_win_rate) * w.win_rate
        - m.max_drawdown_pct * w.max_drawdown_pct
        - m.no_fill_pct * w.no_fill_pct
    )


def score_trial(train: BacktestResult, test: BacktestResult, options: OptimizeOptions) -> TrialScore:
    equity = options.risk.account_equity
    train_m = compute_metrics(train, equity)
    test_m = compute_metrics(test, equity)

    train_score = composite_score(train_m, options.weights)
    test_score = composite_score(test_m, options.weights)
    final = train_score * options.train_weight + test_score * options.test_weight

    penalized = (
        train_m.filled_trades < options.min_filled_trades
        or test_m.filled_trades < options.min_filled_trades
    )
    if penalized:
        final -= MIN_FILLED_PENALTY

    return TrialScore(train_m, test_m, train_score, test_score, final, penalized)
