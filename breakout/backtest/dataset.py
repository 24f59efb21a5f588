"""
Pre-loaded bar data for fast repeated backtests.

A BacktestDataSet is built once (per optimization run, per date range) and
then shared read-only by every replay. It holds:
- bars per symbol, ordered by time, as tuples
- the global time index: sorted union of all distinct bar times
- a per-symbol time -> position map for O(1) "bar at t" lookups
"""

import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

from breakout.core.exceptions import BreakoutConfigError, BreakoutDataError
from breakout.core.models import Bar
from breakout.data.base import MarketDataSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BacktestDataSet:
    """Immutable per-symbol bar series plus the global replay time index."""

    bars_by_symbol: Mapping[str, Tuple[Bar, ...]]
    times_utc: Tuple[datetime, ...]
    market_tz: ZoneInfo
    _index: Mapping[str, Mapping[datetime, int]] = field(default=None, repr=False, compare=False)
    _times: Mapping[str, Tuple[datetime, ...]] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        index = {s: {b.time_utc: i for i, b in enumerate(bars)} for s, bars in self.bars_by_symbol.items()}
        times = {s: tuple(b.time_utc for b in bars) for s, bars in self.bars_by_symbol.items()}
        object.__setattr__(self, "_index", index)
        object.__setattr__(self, "_times", times)

    @classmethod
    def from_bars(
        cls,
        bars: Iterable[Bar],
        market_tz: Union[str, ZoneInfo] = "America/New_York",
    ) -> "BacktestDataSet":
        """
        Group bars by (upper-cased) symbol, sort by time and build the time index.

        Raises:
            BreakoutDataError: On naive timestamps or duplicate (symbol, time).
        """
        tz = ZoneInfo(market_tz) if isinstance(market_tz, str) else market_tz
        grouped: Dict[str, List[Bar]] = defaultdict(list)
        for bar in bars:
            if bar.time_utc.tzinfo is None:
                raise BreakoutDataError(f"{bar.symbol}: naive timestamp {bar.time_utc}")
            grouped[bar.symbol.upper()].append(bar)

        by_symbol: Dict[str, Tuple[Bar, ...]] = {}
        all_times = set()
        for symbol, series in grouped.items():
            series.sort(key=lambda b: b.time_utc)
            for prev, cur in zip(series, series[1:]):
                if prev.time_utc == cur.time_utc:
                    raise BreakoutDataError(f"{symbol}: duplicate bar at {cur.time_utc.isoformat()}")
            by_symbol[symbol] = tuple(series)
            all_times.update(b.time_utc for b in series)

        return cls(by_symbol, tuple(sorted(all_times)), tz)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def symbols(self) -> List[str]:
        return sorted(self.bars_by_symbol)

    @property
    def bar_count(self) -> int:
        return sum(len(b) for b in self.bars_by_symbol.values())

    def series(self, symbol: str) -> Tuple[Bar, ...]:
        return self.bars_by_symbol.get(symbol.upper(), ())

    def index_at(self, symbol: str, t_utc: datetime) -> Optional[int]:
        """Position of the bar at exactly ``t_utc`` for ``symbol``, or None."""
        idx = self._index.get(symbol.upper())
        return idx.get(t_utc) if idx is not None else None

    def bar_at(self, symbol: str, t_utc: datetime) -> Optional[Bar]:
        i = self.index_at(symbol, t_utc)
        return self.bars_by_symbol[symbol.upper()][i] if i is not None else None

    def first_index_after(self, symbol: str, t_utc: datetime) -> int:
        """Position of the first bar strictly later than ``t_utc``."""
        return bisect_right(self._times.get(symbol.upper(), ()), t_utc)

    def last_bar(self, symbol: str) -> Optional[Bar]:
        series = self.series(symbol)
        return series[-1] if series else None

    # ------------------------------------------------------------------
    # Slicing
    # ------------------------------------------------------------------

    def between(self, from_date: date, to_date: date) -> "BacktestDataSet":
        """Subset covering market-local dates ``[from_date, to_date]``."""
        from_utc, to_utc = local_date_window(from_date, to_date, self.market_tz)
        bars = [
            b
            for series in self.bars_by_symbol.values()
            for b in series
            if from_utc <= b.time_utc < to_utc
        ]
        return BacktestDataSet.from_bars(bars, self.market_tz)


def local_date_window(from_date: date, to_date: date, market_tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC bounds ``[from 00:00 local, (to + 1 day) 00:00 local)``."""
    if to_date < from_date:
        raise BreakoutConfigError(f"Date range is inverted ({from_date} > {to_date})")
    start = datetime.combine(from_date, time.min, tzinfo=market_tz)
    end = datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=market_tz)
    return start.astimezone(ZoneInfo("UTC")), end.astimezone(ZoneInfo("UTC"))


async def load_dataset(
    source: MarketDataSource,
    symbols: Sequence[str],
    from_date: date,
    to_date: date,
    timeframe: str = "5Min",
    market_tz: Union[str, ZoneInfo] = "America/New_York",
) -> BacktestDataSet:
    """
    Load all bars for ``symbols`` over market-local dates once.

    Raises:
        BreakoutConfigError: Empty symbol list or inverted dates.
        BreakoutDataError: The source failed or returned malformed bars.
    """
    if not symbols:
        raise BreakoutConfigError("At least one symbol is required")
    tz = ZoneInfo(market_tz) if isinstance(market_tz, str) else market_tz
    from_utc, to_utc = local_date_window(from_date, to_date, tz)

    try:
        bars = await source.get_historical_bars([s.upper() for s in symbols], from_utc, to_utc, timeframe)
    except BreakoutDataError:
        raise
    except Exception as e:
        raise BreakoutDataError(f"Failed to load bars: {e}") from e

    dataset = BacktestDataSet.from_bars(bars, tz)
    missing = [s for s in symbols if s.upper() not in dataset.bars_by_symbol]
    if missing:
        logger.warning(f"No bars for {missing} between {from_date} and {to_date}")
    logger.info(
        f"Loaded {dataset.bar_count} bars for {len(dataset.bars_by_symbol)} symbols "
        f"({from_date}..{to_date}, {len(dataset.times_utc)} timestamps)"
    )
    return dataset
