"""
Breakout Risk Manager

Allows or blocks a setup candidate and sizes the position. Checks run in a
fixed order and stop at the first failure:

1. Daily trade-count cap
2. Daily realized-loss cap (% of account equity)
3. Per-symbol cooldown since the last trade
4. Entry and stop prices must be positive
5. Stop distance within [min, max] % of entry
6. Reward:risk above the minimum (only when a target is given)
7. Size = min(floor(budget / risk_per_share), floor(max_notional / entry), max_shares)

Risk per share is measured from the entry nudged by the expected slippage,
so sizing already accounts for a worse fill.
"""

import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field

from breakout.config.settings import Settings, get_settings
from breakout.core.enums import Direction
from breakout.core.models import RiskDecision, SetupCandidate
from breakout.risk.state import RiskState

logger = logging.getLogger(__name__)


class RiskManagerOptions(BaseModel):
    """Hard per-trade and per-day limits."""

    model_config = ConfigDict(frozen=True)

    account_equity: Decimal = Field(Decimal("25000"), gt=0)
    risk_per_trade_pct: Decimal = Field(Decimal("0.003"), gt=0)
    max_position_notional: Decimal = Field(Decimal("10000"), gt=0)
    max_shares: int = Field(5_000, gt=0)
    max_stop_distance_pct: Decimal = Decimal("0.015")
    min_stop_distance_pct: Decimal = Decimal("0.001")
    min_reward_to_risk_r: Decimal = Decimal("1.8")
    max_trades_per_day: int = 6
    max_daily_loss_pct: Decimal = Decimal("0.01")
    symbol_cooldown: timedelta = timedelta(minutes=30)
    slippage_pct: Decimal = Decimal("0.0005")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RiskManagerOptions":
        s = settings or get_settings()
        return cls(
            account_equity=s.account_equity,
            risk_per_trade_pct=s.risk_per_trade_pct,
            max_position_notional=s.max_position_notional,
            max_shares=s.max_shares,
            max_stop_distance_pct=s.max_stop_distance_pct,
            min_stop_distance_pct=s.min_stop_distance_pct,
            min_reward_to_risk_r=s.min_reward_to_risk_r,
            max_trades_per_day=s.max_trades_per_day,
            max_daily_loss_pct=s.max_daily_loss_pct,
            symbol_cooldown=timedelta(minutes=s.symbol_cooldown_minutes),
            slippage_pct=s.risk_slippage_pct,
        )


class RiskEvaluator(ABC):
    """
    Contract the backtest simulator consumes.

    ``record_*`` hooks let an evaluator track what the simulator actually
    did; the defaults ignore them.
    """

    @abstractmethod
    def evaluate(
        self,
        candidate: SetupCandidate,
        take_profit_price: Optional[Decimal],
        now_utc: datetime,
    ) -> RiskDecision:
        """Allow (with quantity) or block ``candidate`` at ``now_utc``."""
        pass

    def record_trade_placed(self, symbol: str, now_utc: datetime) -> None:
        pass

    def record_realized_pnl(self, pnl: Decimal, now_utc: datetime) -> None:
        pass


class RiskManager(RiskEvaluator):
    """
    Per-trade risk evaluator over a caller-owned :class:`RiskState`.

    Args:
        state: Mutable day counters (one per run).
        options: Risk limits; defaults from settings when omitted.
        market_tz: Time zone that defines the trading day.
    """

    def __init__(
        self,
        state: RiskState,
        options: Optional[RiskManagerOptions] = None,
        market_tz: Union[str, ZoneInfo] = "America/New_York",
    ):
        self.state = state
        self.options = options or RiskManagerOptions.from_settings()
        self.market_tz = ZoneInfo(market_tz) if isinstance(market_tz, str) else market_tz

    def evaluate(
        self,
        candidate: SetupCandidate,
        take_profit_price: Optional[Decimal],
        now_utc: datetime,
    ) -> RiskDecision:
        opt = self.options
        symbol = candidate.symbol
        self.state.reset_if_new_day(now_utc, self.market_tz)

        if self.state.trades_today >= opt.max_trades_per_day:
            return self._block(symbol, f"max trades per day reached ({opt.max_trades_per_day})")

        max_daily_loss = opt.account_equity * opt.max_daily_loss_pct
        if self.state.realized_pnl_today <= -max_daily_loss:
            return self._block(
                symbol,
                f"max daily loss reached ({self.state.realized_pnl_today:.2f} <= -{max_daily_loss:.2f})",
            )

        last = self.state.last_trade_time(symbol)
        if last is not None:
            until = last + opt.symbol_cooldown
            if now_utc < until:
                remaining = (until - now_utc).total_seconds() / 60
                return self._block(symbol, f"symbol cooldown active ({remaining:.0f} min remaining)")

        entry = candidate.entry_price
        stop = candidate.stop_price
        if entry <= 0 or stop <= 0:
            return self._block(symbol, "invalid entry/stop prices")

        stop_dist = abs(entry - stop)
        stop_dist_pct = stop_dist / entry
        if stop_dist_pct > opt.max_stop_distance_pct:
            return self._block(
                symbol, f"stop distance too large ({stop_dist_pct:.4%} > {opt.max_stop_distance_pct:.4%})"
            )
        if stop_dist_pct < opt.min_stop_distance_pct:
            return self._block(
                symbol, f"stop distance too small ({stop_dist_pct:.4%} < {opt.min_stop_distance_pct:.4%})"
            )

        if take_profit_price is not None:
            reward_r = abs(take_profit_price - entry) / stop_dist
            if reward_r < opt.min_reward_to_risk_r:
                return self._block(
                    symbol, f"reward:risk too low ({reward_r:.2f}R < {opt.min_reward_to_risk_r:.2f}R)"
                )

        slipped_entry = self._apply_slippage(entry, candidate.direction)
        risk_per_share = abs(slipped_entry - stop)
        if risk_per_share <= 0:
            return self._block(symbol, "risk per share is zero")

        risk_budget = opt.account_equity * opt.risk_per_trade_pct
        qty_by_risk = math.floor(risk_budget / risk_per_share)
        if qty_by_risk <= 0:
            return self._block(symbol, f"risk budget too small (risk/share={risk_per_share:.4f})")

        qty_by_notional = math.floor(opt.max_position_notional / slipped_entry)
        qty = min(qty_by_risk, qty_by_notional, opt.max_shares)
        if qty <= 0:
            return self._block(symbol, "position size after caps is zero")

        est_risk = qty * risk_per_share
        return RiskDecision.allow(
            qty, est_risk, f"qty={qty} est_risk={est_risk:.2f} (risk/share={risk_per_share:.4f})"
        )

    def record_trade_placed(self, symbol: str, now_utc: datetime) -> None:
        self.state.reset_if_new_day(now_utc, self.market_tz)
        self.state.record_trade_placed(symbol, now_utc)

    def record_realized_pnl(self, pnl: Decimal, now_utc: datetime) -> None:
        self.state.reset_if_new_day(now_utc, self.market_tz)
        self.state.record_realized_pnl(pnl)

    def _apply_slippage(self, entry: Decimal, direction: Direction) -> Decimal:
        slip = entry * self.options.slippage_pct
        return entry + slip if direction == Direction.LONG else entry - slip

    @staticmethod
    def _block(symbol: str, reason: str) -> RiskDecision:
        logger.debug("[%s] Rejected: %s", symbol, reason)
        return RiskDecision.block(reason)
