"""
Breakout Core Data Models

Immutable dataclasses shared by the data layer, scanners, risk evaluator and
backtest simulator. All prices are ``Decimal``; all timestamps are UTC-aware.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .enums import Direction, RiskDecisionType

UTC = timezone.utc


@dataclass(frozen=True)
class Bar:
    """One OHLCV observation for a symbol."""

    symbol: str
    time_utc: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int

    @property
    def body(self) -> Decimal:
        return abs(self.close - self.open)

    @property
    def range(self) -> Decimal:
        return self.high - self.low


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values at the last bar of a window (None until warmed up)."""

    ema_fast: Optional[Decimal] = None
    ema_slow: Optional[Decimal] = None
    vwap: Optional[Decimal] = None
    atr: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {k: (str(v) if v is not None else None) for k, v in asdict(self).items()}


@dataclass(frozen=True)
class SetupCandidate:
    """A trade setup proposed by a scanner at one instant."""

    symbol: str
    direction: Direction
    entry_price: Decimal
    stop_price: Decimal
    signal_time_utc: datetime
    take_profit_price: Optional[Decimal] = None

    # Descriptive metrics (logging / analysis only)
    range_high: Decimal = Decimal("0")
    range_low: Decimal = Decimal("0")
    range_pct: Decimal = Decimal("0")
    atr_pct: Decimal = Decimal("0")
    body_to_median: Decimal = Decimal("0")
    volume_to_avg: Decimal = Decimal("0")
    indicators: IndicatorSnapshot = field(default_factory=IndicatorSnapshot)

    @property
    def risk_per_share(self) -> Decimal:
        return abs(self.entry_price - self.stop_price)


@dataclass(frozen=True)
class RiskDecision:
    """Verdict of the risk evaluator for one candidate."""

    decision: RiskDecisionType
    reason: str
    quantity: Optional[int] = None
    estimated_risk: Optional[Decimal] = None

    @property
    def allowed(self) -> bool:
        return self.decision == RiskDecisionType.ALLOW

    @classmethod
    def allow(cls, quantity: int, estimated_risk: Decimal, reason: str = "Allowed") -> "RiskDecision":
        return cls(RiskDecisionType.ALLOW, reason, quantity, estimated_risk)

    @classmethod
    def block(cls, reason: str) -> "RiskDecision":
        return cls(RiskDecisionType.BLOCK, reason)
