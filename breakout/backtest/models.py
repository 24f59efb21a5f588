"""
Data models for the backtest simulator.

- BacktestOptions: validated run configuration (pydantic)
- OpenPosition: live position inside one replay
- BacktestTrade: terminal ledger row, one per attempted trade
- BacktestSummary / BacktestResult: aggregates derived from the ledger
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from breakout.config.settings import Settings, get_settings
from breakout.core.enums import Direction, MarketSessionMode, SameBarFillRule, TradeOutcome
from breakout.core.exceptions import BreakoutConfigError
from breakout.core.models import SetupCandidate
from breakout.scheduler.market_hours import MarketSessionHours

ZERO = Decimal("0")


class BacktestOptions(BaseModel):
    """Execution model for one backtest run."""

    model_config = ConfigDict(frozen=True)

    symbols: List[str] = Field(default_factory=list)
    timeframe: str = "5Min"
    from_date: Optional[date] = None  # market-local, inclusive
    to_date: Optional[date] = None  # market-local, inclusive

    max_bars_to_fill_entry: int = Field(6, ge=1)
    entry_limit_buffer_pct: Decimal = Field(Decimal("0"), ge=0)
    flatten_time: time = time(15, 50)
    session_mode: MarketSessionMode = MarketSessionMode.REGULAR
    session_hours: MarketSessionHours = Field(default_factory=MarketSessionHours)
    same_bar_rule: SameBarFillRule = SameBarFillRule.CONSERVATIVE_STOP_FIRST

    slippage_pct: Decimal = Field(Decimal("0.0005"), ge=0)
    commission_per_trade: Decimal = Field(Decimal("0"), ge=0)
    take_profit_r: Optional[Decimal] = Field(None, gt=0)
    window_size: int = Field(400, ge=1)

    @field_validator("symbols")
    @classmethod
    def _normalize_symbols(cls, v: List[str]) -> List[str]:
        out: List[str] = []
        for s in v:
            s = s.strip().upper()
            if s and s not in out:
                out.append(s)
        return out

    def validate_run(self) -> None:
        """Structural checks done before any replay starts."""
        if not self.symbols:
            raise BreakoutConfigError("Backtest requires at least one symbol")
        if self.from_date and self.to_date and self.to_date < self.from_date:
            raise BreakoutConfigError(
                f"Backtest date range is inverted ({self.from_date} > {self.to_date})"
            )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "BacktestOptions":
        s = settings or get_settings()
        values = dict(
            timeframe=s.timeframe,
            max_bars_to_fill_entry=s.max_bars_to_fill_entry,
            entry_limit_buffer_pct=s.entry_limit_buffer_pct,
            flatten_time=s.flatten_time,
            session_mode=s.session_mode,
            same_bar_rule=s.same_bar_rule,
            slippage_pct=s.slippage_pct,
            commission_per_trade=s.commission_per_trade,
            window_size=s.window_size,
        )
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class OpenPosition:
    """A filled entry waiting for stop, target or flatten."""

    symbol: str
    direction: Direction
    quantity: int
    signal_time_utc: datetime
    entry_time_utc: datetime
    entry_limit: Decimal
    entry_price: Decimal  # after slippage
    stop_price: Decimal
    take_profit_price: Optional[Decimal]
    candidate: SetupCandidate
    commission: Decimal = ZERO

    @property
    def risk_per_share(self) -> Decimal:
        return abs(self.entry_price - self.stop_price)


@dataclass(frozen=True)
class BacktestTrade:
    """Terminal record of one attempted trade (filled or not)."""

    symbol: str
    direction: Direction
    quantity: int
    signal_time_utc: datetime
    entry_limit: Decimal
    stop_price: Decimal
    outcome: TradeOutcome
    pnl: Decimal
    r_multiple: Decimal
    risk_per_share: Decimal
    take_profit_price: Optional[Decimal] = None
    entry_time_utc: Optional[datetime] = None
    exit_time_utc: Optional[datetime] = None
    filled_entry_price: Optional[Decimal] = None
    exit_price: Optional[Decimal] = None
    reward_per_share: Optional[Decimal] = None
    candidate: Optional[SetupCandidate] = None

    @property
    def is_filled(self) -> bool:
        return self.outcome != TradeOutcome.NO_FILL

    @property
    def is_winner(self) -> bool:
        return self.is_filled and self.pnl > 0

    @property
    def is_loser(self) -> bool:
        return self.is_filled and self.pnl < 0


@dataclass(frozen=True)
class BacktestSummary:
    """Aggregate statistics over a trade ledger (filled trades only, except counts)."""

    trades: int
    wins: int
    losses: int
    no_fills: int
    total_pnl: Decimal
    avg_pnl: Decimal
    win_rate: Decimal  # fraction of filled trades, 0..1
    avg_r: Decimal
    max_drawdown: Decimal

    @property
    def filled_trades(self) -> int:
        return self.trades - self.no_fills

    def to_dict(self) -> dict:
        result = asdict(self)
        result["filled_trades"] = self.filled_trades
        return result


@dataclass(frozen=True)
class BacktestResult:
    """Trade ledger plus its summary."""

    trades: Tuple[BacktestTrade, ...]
    summary: BacktestSummary
