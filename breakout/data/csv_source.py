"""
CSV bar source.

File format (one row per bar, any symbol order)::

    symbol,timestamp,open,high,low,close,volume
    AAPL,2024-03-04T14:30:00Z,179.55,179.90,179.20,179.61,412003

Timestamps without an offset are read as UTC. Prices are parsed as strings and
converted to ``Decimal`` so no binary rounding enters the simulation.
"""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Sequence, Union

import pandas as pd

from breakout.core.exceptions import BreakoutDataError
from breakout.core.models import Bar
from breakout.data.base import MarketDataSource

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["symbol", "timestamp", "open", "high", "low", "close", "volume"]
_PRICE_COLUMNS = ["open", "high", "low", "close"]


def read_bars_csv(path: Union[str, Path]) -> List[Bar]:
    """Read every bar from a CSV file."""
    path = Path(path)
    if not path.exists():
        raise BreakoutDataError(f"Bar file not found: {path}")

    df = pd.read_csv(path, dtype={c: str for c in _PRICE_COLUMNS + ["symbol"]})
    missing = [c for c in CSV_COLUMNS if c not in df.columns]
    if missing:
        raise BreakoutDataError(f"{path.name}: missing columns {missing}")

    df = df.dropna(subset=CSV_COLUMNS)
    times = pd.to_datetime(df["timestamp"], utc=True)

    bars = []
    for row, ts in zip(df.itertuples(index=False), times):
        bars.append(
            Bar(
                symbol=str(row.symbol).strip().upper(),
                time_utc=ts.to_pydatetime(),
                open=Decimal(row.open),
                high=Decimal(row.high),
                low=Decimal(row.low),
                close=Decimal(row.close),
                volume=int(row.volume),
            )
        )

    logger.debug(f"Read {len(bars)} bars from {path.name}")
    return bars


def write_bars_csv(path: Union[str, Path], bars: Iterable[Bar]) -> Path:
    """Write bars in the format :func:`read_bars_csv` accepts."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = [
        {
            "symbol": b.symbol,
            "timestamp": b.time_utc.isoformat().replace("+00:00", "Z"),
            "open": str(b.open),
            "high": str(b.high),
            "low": str(b.low),
            "close": str(b.close),
            "volume": b.volume,
        }
        for b in bars
    ]
    pd.DataFrame(rows, columns=CSV_COLUMNS).to_csv(path, index=False)
    logger.info(f"Wrote {len(rows)} bars -> {path}")
    return path


class CsvBarSource(MarketDataSource):
    """
    Historical bars from a local CSV file.

    The file is parsed once on first use; subsequent requests filter the
    cached bars in memory.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._bars: List[Bar] = []
        self._loaded = False

    async def get_historical_bars(
        self,
        symbols: Sequence[str],
        from_utc: datetime,
        to_utc: datetime,
        timeframe: str,
    ) -> List[Bar]:
        if not self._loaded:
            loop = asyncio.get_running_loop()
            self._bars = await loop.run_in_executor(None, read_bars_csv, self.path)
            self._loaded = True

        wanted = {s.upper() for s in symbols}
        return [
            b
            for b in self._bars
            if b.symbol in wanted and from_utc <= b.time_utc < to_utc
        ]
