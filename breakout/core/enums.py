"""
Breakout enumerations.
"""

from enum import Enum


class Direction(str, Enum):
    """Trade direction."""

    LONG = "long"
    SHORT = "short"

    @property
    def is_long(self) -> bool:
        return self is Direction.LONG

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class TradeOutcome(str, Enum):
    """Terminal outcome of one attempted trade."""

    NO_FILL = "no_fill"
    STOP = "stop"
    TAKE_PROFIT = "take_profit"
    END_OF_DAY = "end_of_day"


class SameBarFillRule(str, Enum):
    """How to resolve a bar whose range touches both stop and target."""

    CONSERVATIVE_STOP_FIRST = "conservative_stop_first"
    OPTIMISTIC_TAKE_PROFIT_FIRST = "optimistic_take_profit_first"


class MarketSession(str, Enum):
    """Trading session a timestamp falls into."""

    CLOSED = "closed"
    PRE_MARKET = "pre_market"
    REGULAR = "regular"
    AFTER_HOURS = "after_hours"


class MarketSessionMode(str, Enum):
    """Which sessions signal generation is allowed in."""

    AUTO = "auto"  # any non-closed session
    REGULAR = "regular"
    PRE_MARKET = "pre_market"
    AFTER_HOURS = "after_hours"
    EXTENDED = "extended"  # pre-market + after-hours
    ALL = "all"


class ScannerStrategy(str, Enum):
    """Setup scanner families."""

    CONSOLIDATION_BREAKOUT = "consolidation_breakout"
    REVERSAL_UP = "reversal_up"


class TradeDirectionMode(str, Enum):
    """Restricts which candidate directions a scanner emits."""

    BOTH = "both"
    LONG = "long"
    SHORT = "short"

    def allows(self, direction: Direction) -> bool:
        if self is TradeDirectionMode.BOTH:
            return True
        return self.value == direction.value


class RiskDecisionType(str, Enum):
    """Risk evaluator verdict."""

    ALLOW = "allow"
    BLOCK = "block"
