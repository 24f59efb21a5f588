"""
Optimization models: search ranges, score weights, run options, trial
parameter sets and their scored results.
"""

from datetime import date, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from breakout.config.settings import Settings, get_settings
from breakout.core.enums import (
    MarketSessionMode,
    SameBarFillRule,
    ScannerStrategy,
    TradeDirectionMode,
)
from breakout.core.exceptions import BreakoutConfigError
from breakout.risk.risk_manager import RiskManagerOptions
from breakout.scanners.base import RetestOptions
from breakout.scanners.consolidation import ConsolidationScannerOptions
from breakout.scanners.reversal import ReversalScannerOptions
from breakout.scheduler.market_hours import MarketSessionHours

# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


class DecimalRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: Decimal
    max: Decimal

    @model_validator(mode="after")
    def _ordered(self):
        if self.min > self.max:
            raise ValueError(f"range min {self.min} > max {self.max}")
        return self


class IntRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int
    max: int

    @model_validator(mode="after")
    def _ordered(self):
        if self.min > self.max:
            raise ValueError(f"range min {self.min} > max {self.max}")
        return self


def _dr(lo: str, hi: str) -> DecimalRange:
    return DecimalRange(min=Decimal(lo), max=Decimal(hi))


class ConsolidationRanges(BaseModel):
    """Search space for the consolidation breakout scanner."""

    lookback_bars: IntRange = IntRange(min=6, max=30)
    max_range_pct: DecimalRange = _dr("0.002", "0.015")
    min_body_to_median: DecimalRange = _dr("1.8", "4.0")
    min_volume_ratio: DecimalRange = _dr("1.5", "5.0")
    breakout_buffer_pct: DecimalRange = _dr("0", "0.002")
    stop_buffer_pct: DecimalRange = _dr("0", "0.002")


class ReversalRanges(BaseModel):
    """Search space for the reversal-up scanner."""

    sideways_lookback_bars: IntRange = IntRange(min=20, max=60)
    max_sideways_range_pct: DecimalRange = _dr("0.015", "0.05")
    min_green_body_to_median: DecimalRange = _dr("0.8", "2.0")
    min_bull_run_pct: DecimalRange = _dr("0.01", "0.04")
    take_profit_bull_run_pct: DecimalRange = _dr("0.4", "0.9")
    stop_buffer_pct: DecimalRange = _dr("0", "0.002")


class ExitRanges(BaseModel):
    """Search space for fill patience, entry buffer and take-profit R."""

    max_bars_to_fill_entry: IntRange = IntRange(min=1, max=12)
    entry_limit_buffer_pct: DecimalRange = _dr("0", "0.0025")
    # None = no fixed R target
    take_profit_r_values: List[Optional[Decimal]] = Field(
        default_factory=lambda: [Decimal("1.5"), Decimal("2.0"), Decimal("2.5")]
    )


class ScoreWeights(BaseModel):
    """Weights of the composite fitness score."""

    model_config = ConfigDict(frozen=True)

    avg_r: Decimal = Decimal("100")
    profit_factor: Decimal = Decimal("10")
    win_rate: Decimal = Decimal("100")
    max_drawdown_pct: Decimal = Decimal("50")
    no_fill_pct: Decimal = Decimal("5")
    min_win_rate: Decimal = Decimal("0.5")


# ---------------------------------------------------------------------------
# Run options
# ---------------------------------------------------------------------------


class OptimizeOptions(BaseModel):
    """Everything one optimization run needs."""

    strategy: ScannerStrategy = ScannerStrategy.CONSOLIDATION_BREAKOUT
    symbols: List[str] = Field(default_factory=list)
    timeframe: str = "5Min"
    market_timezone: str = "America/New_York"

    train_from: Optional[date] = None
    train_to: Optional[date] = None
    test_from: Optional[date] = None
    test_to: Optional[date] = None

    trials: int = Field(500, ge=1)
    seed: int = 12345
    top_n: int = Field(10, ge=1)
    min_filled_trades: int = Field(20, ge=0)
    max_workers: int = Field(0, ge=0)  # 0 = os.cpu_count()
    out_dir: str = "_BacktestOptimizationRuns"

    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    train_weight: Decimal = Decimal("0.6")
    test_weight: Decimal = Decimal("0.4")

    consolidation_ranges: ConsolidationRanges = Field(default_factory=ConsolidationRanges)
    reversal_ranges: ReversalRanges = Field(default_factory=ReversalRanges)
    exit_ranges: ExitRanges = Field(default_factory=ExitRanges)

    # Fixed (not searched) scanner settings, e.g. indicator filters
    base_consolidation: ConsolidationScannerOptions = Field(default_factory=ConsolidationScannerOptions)
    base_reversal: ReversalScannerOptions = Field(default_factory=ReversalScannerOptions)
    retest: RetestOptions = Field(default_factory=RetestOptions)
    direction_mode: TradeDirectionMode = TradeDirectionMode.BOTH

    # Fixed execution model
    flatten_time: time = time(15, 50)
    session_mode: MarketSessionMode = MarketSessionMode.REGULAR
    session_hours: MarketSessionHours = Field(default_factory=MarketSessionHours)
    same_bar_rule: SameBarFillRule = SameBarFillRule.CONSERVATIVE_STOP_FIRST
    slippage_pct: Decimal = Decimal("0.0005")
    commission_per_trade: Decimal = Decimal("0")
    window_size: int = Field(400, ge=1)
    risk: RiskManagerOptions = Field(default_factory=RiskManagerOptions)

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
        """
        Raises:
            BreakoutConfigError: Missing symbols or dates, inverted or
                overlapping train/test ranges.
        """
        if not self.symbols:
            raise BreakoutConfigError("Optimization requires at least one symbol")
        for name in ("train_from", "train_to", "test_from", "test_to"):
            if getattr(self, name) is None:
                raise BreakoutConfigError(f"Optimization requires {name}")
        if self.train_to < self.train_from:
            raise BreakoutConfigError(f"Train range is inverted ({self.train_from} > {self.train_to})")
        if self.test_to < self.test_from:
            raise BreakoutConfigError(f"Test range is inverted ({self.test_from} > {self.test_to})")
        if self.train_from <= self.test_to and self.test_from <= self.train_to:
            raise BreakoutConfigError(
                f"Train {self.train_from}..{self.train_to} overlaps test {self.test_from}..{self.test_to}"
            )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "OptimizeOptions":
        s = settings or get_settings()
        values = dict(
            timeframe=s.timeframe,
            market_timezone=s.market_timezone,
            trials=s.optimize_trials,
            seed=s.optimize_seed,
            top_n=s.optimize_top_n,
            min_filled_trades=s.optimize_min_filled_trades,
            max_workers=s.optimize_max_workers,
            out_dir=s.optimize_out_dir,
            weights=ScoreWeights(
                avg_r=s.weight_avg_r,
                profit_factor=s.weight_profit_factor,
                win_rate=s.weight_win_rate,
                max_drawdown_pct=s.weight_max_drawdown_pct,
                no_fill_pct=s.weight_no_fill_pct,
                min_win_rate=s.min_win_rate,
            ),
            train_weight=s.train_weight,
            test_weight=s.test_weight,
            flatten_time=s.flatten_time,
            session_mode=s.session_mode,
            same_bar_rule=s.same_bar_rule,
            slippage_pct=s.slippage_pct,
            commission_per_trade=s.commission_per_trade,
            window_size=s.window_size,
            risk=RiskManagerOptions.from_settings(s),
        )
        values.update(overrides)
        return cls(**values)


# ---------------------------------------------------------------------------
# Trials
# ---------------------------------------------------------------------------


class TrialSettings(BaseModel):
    """One sampled parameter set."""

    model_config = ConfigDict(frozen=True)

    trial: int
    strategy: ScannerStrategy
    consolidation: Optional[ConsolidationScannerOptions] = None
    reversal: Optional[ReversalScannerOptions] = None
    max_bars_to_fill_entry: int
    entry_limit_buffer_pct: Decimal
    take_profit_r: Optional[Decimal] = None

    @property
    def scanner_options(self):
        if self.strategy == ScannerStrategy.CONSOLIDATION_BREAKOUT:
            return self.consolidation
        return self.reversal


class OptimizeMetrics(BaseModel):
    """Per-run metrics feeding the composite score."""

    trades: int = 0
    filled_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: Decimal = Decimal("0")
    total_pnl: Decimal = Decimal("0")
    avg_pnl: Decimal = Decimal("0")
    avg_r: Decimal = Decimal("0")
    max_drawdown: Decimal = Decimal("0")
    max_drawdown_pct: Decimal = Decimal("0")
    profit_factor: Decimal = Decimal("0")

    @property
    def no_fill_pct(self) -> Decimal:
        if self.trades <= 0:
            return Decimal("0")
        return Decimal(self.trades - self.filled_trades) / self.trades


class TrialResult(BaseModel):
    """A scored trial."""

    trial: int
    settings: TrialSettings
    train: OptimizeMetrics
    test: OptimizeMetrics
    train_score: Decimal
    test_score: Decimal
    final_score: Decimal
    penalized: bool = False


class OptimizationResult(BaseModel):
    """All trials ranked by final score (descending, ties by trial number)."""

    ranked: List[TrialResult]
    top_n: int = 10

    @property
    def top(self) -> List[TrialResult]:
        return self.ranked[: self.top_n]

    @property
    def best(self) -> Optional[TrialResult]:
        return self.ranked[0] if self.ranked else None
