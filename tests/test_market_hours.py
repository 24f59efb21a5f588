"""Tests for market session classification."""

from datetime import datetime, time, timezone

import pytest

from breakout.core.enums import MarketSession, MarketSessionMode
from breakout.scheduler.market_hours import MarketHours, MarketSessionHours


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestResolve:
    @pytest.fixture
    def hours(self):
        return MarketHours("America/New_York")

    @pytest.mark.parametrize(
        "utc, session",
        [
            (_utc(2024, 3, 4, 14, 30), MarketSession.REGULAR),  # 09:30 EST
            (_utc(2024, 3, 4, 14, 29), MarketSession.PRE_MARKET),
            (_utc(2024, 3, 4, 9, 0), MarketSession.PRE_MARKET),  # 04:00 EST
            (_utc(2024, 3, 4, 21, 0), MarketSession.AFTER_HOURS),  # 16:00 EST
            (_utc(2024, 3, 5, 1, 0), MarketSession.CLOSED),  # 20:00 EST
            (_utc(2024, 7, 1, 13, 30), MarketSession.REGULAR),  # 09:30 EDT
            (_utc(2024, 7, 1, 13, 29), MarketSession.PRE_MARKET),
        ],
    )
    def test_sessions(self, hours, utc, session):
        assert hours.resolve(utc) == session

    def test_custom_boundaries(self):
        hours = MarketHours("America/New_York", MarketSessionHours(regular_start=time(10, 0)))
        # 09:45 falls between pre-market end and the later regular open
        assert hours.resolve(_utc(2024, 3, 4, 14, 45)) == MarketSession.CLOSED
        assert hours.resolve(_utc(2024, 3, 4, 15, 0)) == MarketSession.REGULAR


class TestSessionModes:
    @pytest.fixture
    def hours(self):
        return MarketHours()

    def test_regular(self, hours):
        assert hours.is_in_session(_utc(2024, 3, 4, 15, 0), MarketSessionMode.REGULAR)
        assert not hours.is_in_session(_utc(2024, 3, 4, 13, 0), MarketSessionMode.REGULAR)

    def test_extended_excludes_regular(self, hours):
        assert hours.is_in_session(_utc(2024, 3, 4, 13, 0), MarketSessionMode.EXTENDED)
        assert hours.is_in_session(_utc(2024, 3, 4, 22, 0), MarketSessionMode.EXTENDED)
        assert not hours.is_in_session(_utc(2024, 3, 4, 15, 0), MarketSessionMode.EXTENDED)

    def test_auto_and_all(self, hours):
        closed = _utc(2024, 3, 5, 3, 0)
        assert not hours.is_in_session(closed, MarketSessionMode.AUTO)
        assert hours.is_in_session(closed, MarketSessionMode.ALL)
