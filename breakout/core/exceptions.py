"""
Breakout custom exceptions.
"""


class BreakoutError(Exception):
    """Base exception for the breakout package."""

    pass


class BreakoutConfigError(BreakoutError):
    """Invalid options, date ranges or symbol lists."""

    pass


class BreakoutDataError(BreakoutError):
    """Bar data could not be loaded or violates ordering rules."""

    pass


class BreakoutCancelledError(BreakoutError):
    """A backtest or optimization run was cancelled by the caller."""

    pass
