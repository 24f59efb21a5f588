"""
Backtest statistics over a trade ledger.

Key metrics:
- Trade / win / loss / no-fill counts
- Total and average P&L, win rate, average R-multiple
- Max drawdown of the cumulative realized equity curve
- Profit factor (gross wins / gross losses)

Everything except the counts is computed over filled trades only, in ledger
order. No-fills carry zero P&L and would otherwise dilute the averages.
"""

from decimal import Decimal
from typing import Iterable, Sequence

from breakout.backtest.models import BacktestResult, BacktestSummary, BacktestTrade

ZERO = Decimal("0")

# Profit factor reported when there are wins but no losses
PROFIT_FACTOR_CAP = Decimal("999")


def max_drawdown(pnls: Iterable[Decimal]) -> Decimal:
    """
    Largest peak-to-trough decline of the cumulative equity curve.

    Equity starts at 0 and the peak is tracked from there, so a losing first
    trade already counts as drawdown. Always >= 0.
    """
    equity = ZERO
    peak = ZERO
    worst = ZERO
    for pnl in pnls:
        equity += pnl
        if equity > peak:
            peak = equity
        dd = peak - equity
        if dd > worst:
            worst = dd
    return worst


def profit_factor(pnls: Iterable[Decimal]) -> Decimal:
    """Gross profit / gross loss; 999 when there are only wins, 0 when nothing won."""
    pnls = list(pnls)
    gross_profit = sum((p for p in pnls if p > 0), ZERO)
    gross_loss = abs(sum((p for p in pnls if p < 0), ZERO))
    if gross_loss > 0:
        return gross_profit / gross_loss
    return PROFIT_FACTOR_CAP if gross_profit > 0 else ZERO


def summarize(trades: Sequence[BacktestTrade]) -> BacktestSummary:
    """Recompute the summary for a ledger from scratch."""
    filled = [t for t in trades if t.is_filled]
    pnls = [t.pnl for t in filled]
    n = len(filled)

    wins = sum(1 for p in pnls if p > 0)
    losses = sum(1 for p in pnls if p < 0)
    total = sum(pnls, ZERO)

    return BacktestSummary(
        trades=len(trades),
        wins=wins,
        losses=losses,
        no_fills=len(trades) - n,
        total_pnl=total,
        avg_pnl=total / n if n else ZERO,
        win_rate=Decimal(wins) / n if n else ZERO,
        avg_r=sum((t.r_multiple for t in filled), ZERO) / n if n else ZERO,
        max_drawdown=max_drawdown(pnls),
    )


def build_result(trades: Iterable[BacktestTrade]) -> BacktestResult:
    """Freeze a ledger and attach its summary."""
    trades = tuple(trades)
    return BacktestResult(trades=trades, summary=summarize(trades))
