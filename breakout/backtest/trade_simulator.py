"""
Fill and exit mechanics for the backtest simulator.

Assumptions:
- Entries are limit orders at the candidate entry (optionally buffered in
  the trader's favour of getting filled) searched over the next N bars of
  the same symbol; a long fills when a bar's low touches the limit, a short
  when its high does
- Slippage is applied against the trader on both entry and exit
- Stop/target are checked against bar low/high; when a single bar touches
  both, the configured SameBarFillRule decides which one happened first
- Flat commission is charged once per filled trade
"""

from decimal import Decimal
from typing import Optional, Sequence, Tuple

from breakout.backtest.models import BacktestTrade, OpenPosition
from breakout.core.enums import Direction, SameBarFillRule, TradeOutcome
from breakout.core.models import Bar, SetupCandidate

ZERO = Decimal("0")


def apply_slippage(price: Decimal, direction: Direction, slippage_pct: Decimal) -> Decimal:
    """Nudge ``price`` against a trader acting in ``direction`` (buy higher, sell lower)."""
    slip = price * slippage_pct
    return price + slip if direction == Direction.LONG else price - slip


def apply_entry_limit_buffer(entry: Decimal, direction: Direction, buffer_pct: Decimal) -> Decimal:
    """Widen the entry limit so it is easier to fill (long higher, short lower)."""
    if buffer_pct <= 0:
        return entry
    if direction == Direction.LONG:
        return entry * (1 + buffer_pct)
    return entry * (1 - buffer_pct)


def compute_take_profit(
    entry: Decimal,
    stop: Decimal,
    direction: Direction,
    take_profit_r: Optional[Decimal],
) -> Optional[Decimal]:
    """Target ``take_profit_r`` risk-multiples away from entry, or None."""
    if take_profit_r is None:
        return None
    risk = abs(entry - stop)
    if risk <= 0:
        return None
    dist = risk * take_profit_r
    return entry + dist if direction == Direction.LONG else entry - dist


def find_entry_fill(
    series: Sequence[Bar],
    start_idx: int,
    direction: Direction,
    limit: Decimal,
    max_bars: int,
) -> Optional[Bar]:
    """
    First bar in ``series[start_idx : start_idx + max_bars]`` that touches ``limit``.

    ``start_idx`` must point at the first bar after the signal.
    """
    for bar in series[start_idx:start_idx + max_bars]:
        if direction == Direction.LONG and bar.low <= limit:
            return bar
        if direction == Direction.SHORT and bar.high >= limit:
            return bar
    return None


def no_fill_trade(
    candidate: SetupCandidate,
    quantity: int,
    signal_time_utc,
    entry_limit: Decimal,
    take_profit: Optional[Decimal],
) -> BacktestTrade:
    return BacktestTrade(
        symbol=candidate.symbol,
        direction=candidate.direction,
        quantity=quantity,
        signal_time_utc=signal_time_utc,
        entry_limit=entry_limit,
        stop_price=candidate.stop_price,
        take_profit_price=take_profit,
        outcome=TradeOutcome.NO_FILL,
        pnl=ZERO,
        r_multiple=ZERO,
        risk_per_share=candidate.risk_per_share,
        candidate=candidate,
    )


def close_position(
    pos: OpenPosition,
    bar: Bar,
    raw_exit: Decimal,
    outcome: TradeOutcome,
    slippage_pct: Decimal,
) -> BacktestTrade:
    """Turn ``pos`` into a ledger row exiting at ``raw_exit`` (before slippage) on ``bar``."""
    exit_price = apply_slippage(raw_exit, pos.direction.opposite, slippage_pct)
    if pos.direction == Direction.LONG:
        per_share = exit_price - pos.entry_price
    else:
        per_share = pos.entry_price - exit_price

    pnl = per_share * pos.quantity - pos.commission
    risk = pos.risk_per_share
    r_multiple = per_share / risk if risk > 0 else ZERO
    reward = abs(pos.take_profit_price - pos.entry_price) if pos.take_profit_price is not None else None

    return BacktestTrade(
        symbol=pos.symbol,
        direction=pos.direction,
        quantity=pos.quantity,
        signal_time_utc=pos.signal_time_utc,
        entry_limit=pos.entry_limit,
        stop_price=pos.stop_price,
        take_profit_price=pos.take_profit_price,
        outcome=outcome,
        pnl=pnl,
        r_multiple=r_multiple,
        risk_per_share=risk,
        entry_time_utc=pos.entry_time_utc,
        exit_time_utc=bar.time_utc,
        filled_entry_price=pos.entry_price,
        exit_price=exit_price,
        reward_per_share=reward,
        candidate=pos.candidate,
    )


def evaluate_exit(
    pos: OpenPosition,
    bar: Bar,
    rule: SameBarFillRule,
    slippage_pct: Decimal,
) -> Optional[BacktestTrade]:
    """Check ``bar`` against the position's stop and target; None if neither hit."""
    stop, target = pos.stop_price, pos.take_profit_price
    if pos.direction == Direction.LONG:
        stop_hit = bar.low <= stop
        target_hit = target is not None and bar.high >= target
    else:
        stop_hit = bar.high >= stop
        target_hit = target is not None and bar.low <= target

    if stop_hit and target_hit:
        # OHLC cannot tell which came first
        stop_hit = rule == SameBarFillRule.CONSERVATIVE_STOP_FIRST
        target_hit = not stop_hit

    if stop_hit:
        return close_position(pos, bar, stop, TradeOutcome.STOP, slippage_pct)
    if target_hit:
        return close_position(pos, bar, target, TradeOutcome.TAKE_PROFIT, slippage_pct)
    return None


def force_exit(pos: OpenPosition, bar: Bar, slippage_pct: Decimal) -> BacktestTrade:
    """Close at ``bar.close`` (end of day or end of data)."""
    return close_position(pos, bar, bar.close, TradeOutcome.END_OF_DAY, slippage_pct)
