"""
Market Hours Module - Classifies instants into trading sessions.

Session windows are expressed in market-local time (US equities by default):
- Pre-Market: 04:00-09:30
- Regular:    09:30-16:00
- After-Hours: 16:00-20:00

Each window is half-open, ``[start, end)``. Anything else is Closed.
"""

from datetime import datetime, time, timezone
from typing import Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from breakout.core.enums import MarketSession, MarketSessionMode

UTC = timezone.utc


class MarketSessionHours(BaseModel):
    """Session boundaries in market-local time."""

    model_config = ConfigDict(frozen=True)

    pre_market_start: time = time(4, 0)
    pre_market_end: time = time(9, 30)
    regular_start: time = time(9, 30)
    regular_end: time = time(16, 0)
    after_hours_start: time = time(16, 0)
    after_hours_end: time = time(20, 0)


class MarketHours:
    """
    Resolves UTC instants to market sessions for one market time zone.

    Args:
        tz: Market time zone (name or ZoneInfo).
        hours: Session boundaries; US equity defaults when omitted.
    """

    def __init__(
        self,
        tz: Union[str, ZoneInfo] = "America/New_York",
        hours: MarketSessionHours = MarketSessionHours(),
    ):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self.hours = hours

    def to_local(self, utc: datetime) -> datetime:
        """Convert a UTC-aware instant to market-local time."""
        return utc.astimezone(self.tz)

    def resolve(self, utc: datetime) -> MarketSession:
        """Classify a UTC instant into a market session."""
        tod = self.to_local(utc).time()
        h = self.hours

        if h.pre_market_start <= tod < h.pre_market_end:
            return MarketSession.PRE_MARKET
        if h.regular_start <= tod < h.regular_end:
            return MarketSession.REGULAR
        if h.after_hours_start <= tod < h.after_hours_end:
            return MarketSession.AFTER_HOURS
        return MarketSession.CLOSED

    def is_in_session(self, utc: datetime, mode: MarketSessionMode) -> bool:
        """Check whether signal generation is allowed at ``utc`` under ``mode``."""
        if mode == MarketSessionMode.ALL:
            return True

        session = self.resolve(utc)
        if mode == MarketSessionMode.AUTO:
            return session != MarketSession.CLOSED
        if mode == MarketSessionMode.EXTENDED:
            return session in (MarketSession.PRE_MARKET, MarketSession.AFTER_HOURS)
        return session.value == mode.value
