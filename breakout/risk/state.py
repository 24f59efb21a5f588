"""
Risk State - per-day counters consumed by the risk evaluator.

The state object is owned by the caller and passed into the evaluator by
reference. Every backtest run (and every optimization trial) builds its own,
so counters never leak between runs.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional
from zoneinfo import ZoneInfo


@dataclass
class RiskState:
    """Trade count, realized P&L and last trade time per symbol for one market day."""

    trading_day: Optional[date] = None
    trades_today: int = 0
    realized_pnl_today: Decimal = Decimal("0")
    last_trade_utc: Dict[str, datetime] = field(default_factory=dict)

    def reset_if_new_day(self, now_utc: datetime, market_tz: ZoneInfo) -> bool:
        """Clear counters when ``now_utc`` falls on a new market-local day.

        Returns:
            True if the state was reset.
        """
        day = now_utc.astimezone(market_tz).date()
        if day == self.trading_day:
            return False
        self.trading_day = day
        self.trades_today = 0
        self.realized_pnl_today = Decimal("0")
        self.last_trade_utc.clear()
        return True

    def record_trade_placed(self, symbol: str, now_utc: datetime) -> None:
        self.trades_today += 1
        self.last_trade_utc[symbol.upper()] = now_utc

    def record_realized_pnl(self, pnl: Decimal) -> None:
        self.realized_pnl_today += pnl

    def last_trade_time(self, symbol: str) -> Optional[datetime]:
        return self.last_trade_utc.get(symbol.upper())
