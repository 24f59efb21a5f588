"""
Breakout Base Scanner

Abstract base class for setup scanners. A scanner is a pure function of the
bar windows it is handed: it looks only at bars up to the last one in each
window and returns zero or more SetupCandidate objects. The backtest
simulator guarantees windows never contain future bars.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from breakout.core.enums import TradeDirectionMode
from breakout.core.models import Bar, SetupCandidate

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class RetestOptions(BaseModel):
    """Breakout -> retest -> confirm pattern settings."""

    model_config = ConfigDict(frozen=True)

    include_retest: bool = False
    retest_max_bars: int = Field(6, ge=1)
    retest_tolerance_pct: Decimal = Decimal("0.001")
    retest_confirm_min_close_pct: Decimal = Decimal("0")


def median_body(bars: Sequence[Bar]) -> Decimal:
    """Upper median of candle bodies (element ``n // 2`` of the sorted bodies)."""
    bodies = sorted(b.body for b in bars)
    return bodies[len(bodies) // 2] if bodies else ZERO


def average_volume(bars: Sequence[Bar]) -> Decimal:
    if not bars:
        return ZERO
    return Decimal(sum(b.volume for b in bars)) / len(bars)


def volume_ratio(bar: Bar, window: Sequence[Bar]) -> Decimal:
    avg = average_volume(window)
    return Decimal(bar.volume) / avg if avg > 0 else ZERO


def range_bounds(bars: Sequence[Bar]) -> tuple:
    """(high, low, range_pct) where range_pct is measured against the midpoint."""
    high = max(b.high for b in bars)
    low = min(b.low for b in bars)
    mid = (high + low) / 2
    pct = (high - low) / mid if mid > 0 else None
    return high, low, pct


class BaseScanner(ABC):
    """
    Abstract base class for all setup scanners.

    Subclasses implement :meth:`scan_symbol`; :meth:`scan` iterates the
    windows and applies the configured direction filter.
    """

    name: str = "base"

    def __init__(self, direction_mode: TradeDirectionMode = TradeDirectionMode.BOTH):
        self.direction_mode = direction_mode

    def scan(self, bars_by_symbol: Mapping[str, Sequence[Bar]]) -> List[SetupCandidate]:
        """
        Scan every symbol window and return candidates.

        Args:
            bars_by_symbol: Read-only, time-ordered bar window per symbol.

        Returns:
            Candidates allowed by the direction mode, in symbol order.
        """
        candidates: List[SetupCandidate] = []
        for symbol, bars in bars_by_symbol.items():
            if not bars:
                continue
            candidate = self.scan_symbol(symbol, bars)
            if candidate is None:
                continue
            if not self.direction_mode.allows(candidate.direction):
                self.log_skip(symbol, f"direction {candidate.direction.value} filtered by mode")
                continue
            candidates.append(candidate)
        return candidates

    @abstractmethod
    def scan_symbol(self, symbol: str, bars: Sequence[Bar]) -> Optional[SetupCandidate]:
        """Evaluate one symbol's window; return a candidate or None."""
        pass

    def log_skip(self, symbol: str, reason: str) -> None:
        logger.debug("%s skip %s: %s", self.name, symbol, reason)
