"""Backtest simulation: dataset, replay engine, statistics and reporting."""

from .dataset import BacktestDataSet, load_dataset
from .models import BacktestOptions, BacktestResult, BacktestSummary, BacktestTrade, OpenPosition
from .reporter import BacktestReporter, trades_to_dataframe
from .simulator import run_backtest
from .statistics import max_drawdown, profit_factor, summarize

__all__ = [
    "BacktestDataSet",
    "load_dataset",
    "BacktestOptions",
    "BacktestResult",
    "BacktestSummary",
    "BacktestTrade",
    "OpenPosition",
    "BacktestReporter",
    "trades_to_dataframe",
    "run_backtest",
    "max_drawdown",
    "profit_factor",
    "summarize",
]
