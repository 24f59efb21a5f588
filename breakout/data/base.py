"""
Breakout Base Data Source

Abstract interface for historical bar providers. The backtest only ever asks
for one thing: all bars for a set of symbols over a UTC window.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Sequence

from breakout.core.models import Bar


class MarketDataSource(ABC):
    """Abstract base class for historical bar providers."""

    @abstractmethod
    async def get_historical_bars(
        self,
        symbols: Sequence[str],
        from_utc: datetime,
        to_utc: datetime,
        timeframe: str,
    ) -> List[Bar]:
        """
        Get OHLCV bars for several symbols.

        Args:
            symbols: Ticker symbols
            from_utc: Inclusive window start (UTC-aware)
            to_utc: Exclusive window end (UTC-aware)
            timeframe: Bar size label, e.g. "5Min"

        Returns:
            Bars sortable by (symbol, time) with no duplicate (symbol, time)
            pairs.
        """
        pass


class InMemoryBarSource(MarketDataSource):
    """Serves a fixed list of bars. Used for tests and replays of saved data."""

    def __init__(self, bars: Sequence[Bar]):
        self._bars = list(bars)

    async def get_historical_bars(
        self,
        symbols: Sequence[str],
        from_utc: datetime,
        to_utc: datetime,
        timeframe: str,
    ) -> List[Bar]:
        wanted = {s.upper() for s in symbols}
        return [
            b
            for b in self._bars
            if b.symbol.upper() in wanted and from_utc <= b.time_utc < to_utc
        ]
