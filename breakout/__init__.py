"""Breakout backtest simulator and parameter optimizer."""

__version__ = "0.1.0"
