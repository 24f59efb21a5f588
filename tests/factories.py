"""Bar, scanner and risk-evaluator factories shared by the test modules."""

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from breakout.backtest.models import BacktestOptions
from breakout.core.enums import Direction, MarketSessionMode
from breakout.core.models import Bar, RiskDecision, SetupCandidate
from breakout.risk.risk_manager import RiskEvaluator
from breakout.scanners.base import BaseScanner

# Monday 2024-03-04 09:30 New York (EST)
BASE_UTC = datetime(2024, 3, 4, 14, 30, tzinfo=timezone.utc)
STEP = timedelta(minutes=5)

Ohlc = Tuple[str, str, str, str]


def D(value) -> Decimal:
    return Decimal(str(value))


def bar_time(i: int, start: datetime = BASE_UTC) -> datetime:
    return start + STEP * i


def flat(price: str, n: int) -> List[Ohlc]:
    return [(price, price, price, price)] * n


def make_bars(
    symbol: str,
    ohlc: Sequence[Ohlc],
    start: datetime = BASE_UTC,
    volume: int = 1000,
    indices: Optional[Sequence[int]] = None,
) -> List[Bar]:
    """One bar per OHLC tuple, 5 minutes apart (or at ``indices`` steps)."""
    indices = indices if indices is not None else range(len(ohlc))
    return [
        Bar(symbol, bar_time(i, start), D(o), D(h), D(l), D(c), volume)
        for i, (o, h, l, c) in zip(indices, ohlc)
    ]


def random_walk_bars(symbol: str, start: datetime, n: int, seed: int) -> List[Bar]:
    """Noisy 5-minute bars with occasional wide, high-volume candles."""
    rng = np.random.default_rng(seed)
    price = 50.0
    bars = []
    for i in range(n):
        wide = rng.random() < 0.08
        move = rng.normal(0, 0.25 if wide else 0.03)
        o = price
        c = max(1.0, price + move)
        h = max(o, c) + abs(rng.normal(0, 0.02))
        l = min(o, c) - abs(rng.normal(0, 0.02))
        vol = int(rng.integers(3000, 6000) if wide else rng.integers(800, 1200))
        bars.append(
            Bar(symbol, start + STEP * i, D(round(o, 2)), D(round(h, 2)), D(round(l, 2)), D(round(c, 2)), vol)
        )
        price = c
    return bars


def replay_options(**overrides) -> BacktestOptions:
    """Options for synthetic replays: every bar in session, no flatten, 0.1% slippage."""
    values = dict(
        symbols=["TEST"],
        session_mode=MarketSessionMode.ALL,
        flatten_time=time(23, 59),
        max_bars_to_fill_entry=3,
        slippage_pct=D("0.001"),
        commission_per_trade=D("0"),
    )
    values.update(overrides)
    return BacktestOptions(**values)


class SignalScanner(BaseScanner):
    """
    Emits a fixed candidate when a symbol's window ends at a chosen bar time.

    Every ``scan`` call is recorded as ``{symbol: (window length, last bar time)}``.
    """

    name = "signal"

    def __init__(self, signals: Dict[Tuple[str, datetime], Tuple[Direction, str, str, Optional[str]]] = None):
        super().__init__()
        self.signals = signals or {}
        self.calls: List[Dict[str, Tuple[int, datetime]]] = []

    def scan(self, bars_by_symbol):
        self.calls.append({s: (len(b), b[-1].time_utc) for s, b in bars_by_symbol.items()})
        return super().scan(bars_by_symbol)

    def scan_symbol(self, symbol, bars):
        signal = self.signals.get((symbol, bars[-1].time_utc))
        if signal is None:
            return None
        direction, entry, stop, take_profit = signal
        return SetupCandidate(
            symbol=symbol,
            direction=direction,
            entry_price=D(entry),
            stop_price=D(stop),
            signal_time_utc=bars[-1].time_utc,
            take_profit_price=D(take_profit) if take_profit is not None else None,
        )


class AllowAll(RiskEvaluator):
    """Allows everything at a fixed size and records what the simulator reports."""

    def __init__(self, quantity: int = 100):
        self.quantity = quantity
        self.evaluated: List[Tuple[SetupCandidate, Optional[Decimal], datetime]] = []
        self.placed: List[Tuple[str, datetime]] = []
        self.realized: List[Tuple[Decimal, datetime]] = []

    def evaluate(self, candidate, take_profit_price, now_utc):
        self.evaluated.append((candidate, take_profit_price, now_utc))
        return RiskDecision.allow(self.quantity, candidate.risk_per_share * self.quantity)

    def record_trade_placed(self, symbol, now_utc):
        self.placed.append((symbol, now_utc))

    def record_realized_pnl(self, pnl, now_utc):
        self.realized.append((pnl, now_utc))


class BlockAll(RiskEvaluator):
    def evaluate(self, candidate, take_profit_price, now_utc):
        return RiskDecision.block("blocked")
