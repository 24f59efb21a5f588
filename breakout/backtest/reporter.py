"""
Backtest Reporter

Tabular trade ledger, structured summary and a plain-text report for a
BacktestResult.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import pandas as pd

from breakout.backtest.models import BacktestResult, BacktestSummary, BacktestTrade

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = [
    "symbol",
    "direction",
    "quantity",
    "signal_time_utc",
    "entry_time_utc",
    "exit_time_utc",
    "entry_limit",
    "filled_entry_price",
    "stop_price",
    "take_profit_price",
    "exit_price",
    "outcome",
    "pnl",
    "r_multiple",
    "risk_per_share",
    "reward_per_share",
]


def _iso(ts: Optional[datetime]) -> str:
    return ts.isoformat().replace("+00:00", "Z") if ts is not None else ""


def _num(value: Optional[Decimal]) -> str:
    return str(value) if value is not None else ""


def trades_to_dataframe(trades: Sequence[BacktestTrade]) -> pd.DataFrame:
    """Trade ledger as a DataFrame; timestamps ISO-8601 UTC, prices as exact strings."""
    rows = [
        {
            "symbol": t.symbol,
            "direction": t.direction.value,
            "quantity": t.quantity,
            "signal_time_utc": _iso(t.signal_time_utc),
            "entry_time_utc": _iso(t.entry_time_utc),
            "exit_time_utc": _iso(t.exit_time_utc),
            "entry_limit": _num(t.entry_limit),
            "filled_entry_price": _num(t.filled_entry_price),
            "stop_price": _num(t.stop_price),
            "take_profit_price": _num(t.take_profit_price),
            "exit_price": _num(t.exit_price),
            "outcome": t.outcome.value,
            "pnl": _num(t.pnl),
            "r_multiple": _num(t.r_multiple),
            "risk_per_share": _num(t.risk_per_share),
            "reward_per_share": _num(t.reward_per_share),
        }
        for t in trades
    ]
    return pd.DataFrame(rows, columns=LEDGER_COLUMNS)


def summary_to_dict(summary: BacktestSummary) -> Dict[str, Any]:
    """JSON-friendly summary (Decimals as strings)."""
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in summary.to_dict().items()}


def write_trades_csv(path: Union[str, Path], trades: Sequence[BacktestTrade]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    trades_to_dataframe(trades).to_csv(path, index=False)
    logger.info(f"Wrote {len(trades)} trades -> {path}")
    return path


def write_summary_json(path: Union[str, Path], summary: BacktestSummary) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary_to_dict(summary), indent=2))
    return path


class BacktestReporter:
    """Generate text reports from backtest results."""

    def generate_summary(self, result: BacktestResult, title: str = "BACKTEST SUMMARY") -> str:
        s = result.summary
        lines = [
            "=" * 70,
            title,
            "=" * 70,
            "",
            "## TRADE STATISTICS",
            f"Total Trades:      {s.trades:>12}",
            f"Filled:            {s.filled_trades:>12}",
            f"No-Fills:          {s.no_fills:>12}",
            f"Winners:           {s.wins:>12}",
            f"Losers:            {s.losses:>12}",
            f"Win Rate:          {float(s.win_rate) * 100:>12.1f}%",
            "",
            "## P&L",
            f"Total P&L:         ${float(s.total_pnl):>12,.2f}",
            f"Avg Trade P&L:     ${float(s.avg_pnl):>12,.2f}",
            f"Avg R:             {float(s.avg_r):>12.3f}",
            f"Max Drawdown:      ${float(s.max_drawdown):>12,.2f}",
        ]

        outcomes: Dict[str, int] = {}
        for t in result.trades:
            outcomes[t.outcome.value] = outcomes.get(t.outcome.value, 0) + 1
        if outcomes:
            lines.extend(["", "## OUTCOMES"])
            for name, count in sorted(outcomes.items()):
                lines.append(f"{name + ':':<19}{count:>12}")

        return "\n".join(lines)
