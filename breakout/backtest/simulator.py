"""
Deterministic bar-by-bar backtest simulator.

Replays a pre-loaded BacktestDataSet forward in time across all symbols.
For every timestamp of the global time index, in order:

1. Append the bar at this timestamp (if any) to each symbol's rolling window;
   a position still open from an earlier market-local day is closed first at
   that day's last bar (EndOfDay)
2. Evaluate stop/target for open positions that have a bar at this timestamp
3. At/after the flatten time (market-local), force-close remaining positions
4. Outside the configured session, stop here (exits above still applied)
5. Scan the windows of symbols that printed a bar at this timestamp; for each
   candidate on a flat symbol ask the risk evaluator, then search the next N
   bars for an entry fill (NoFill trade on timeout)

When the time index is exhausted, positions still open are closed at their
symbol's last bar (EndOfDay).

The replay is a pure fold: no I/O, no wall-clock reads, and the dataset is
never mutated, so it can be re-run concurrently against the same data.
"""

import dataclasses
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Protocol

from breakout.backtest.dataset import BacktestDataSet
from breakout.backtest.models import BacktestOptions, BacktestResult, BacktestTrade, OpenPosition
from breakout.backtest.statistics import build_result
from breakout.backtest.trade_simulator import (
    apply_entry_limit_buffer,
    apply_slippage,
    compute_take_profit,
    evaluate_exit,
    find_entry_fill,
    force_exit,
    no_fill_trade,
)
from breakout.core.exceptions import BreakoutCancelledError
from breakout.core.models import Bar
from breakout.risk.risk_manager import RiskEvaluator
from breakout.scanners.base import BaseScanner
from breakout.scheduler.market_hours import MarketHours

logger = logging.getLogger(__name__)


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


def run_backtest(
    dataset: BacktestDataSet,
    options: BacktestOptions,
    scanner: BaseScanner,
    risk: RiskEvaluator,
    cancel_event: Optional[CancelToken] = None,
) -> BacktestResult:
    """
    Replay ``dataset`` and return the trade ledger with its summary.

    Args:
        dataset: Shared, read-only bar data.
        options: Execution model; ``from_date``/``to_date`` narrow the replay
            when set.
        scanner: Fresh scanner for this run.
        risk: Risk evaluator holding this run's own state.
        cancel_event: Checked once per timestamp.

    Raises:
        BreakoutConfigError: Invalid options (e.g. no symbols).
        BreakoutCancelledError: ``cancel_event`` was set mid-replay.
    """
    options.validate_run()
    if options.from_date and options.to_date:
        dataset = dataset.between(options.from_date, options.to_date)

    symbols = [s for s in options.symbols if s in dataset.bars_by_symbol]
    for s in options.symbols:
        if s not in dataset.bars_by_symbol:
            logger.debug(f"No bars for {s}; skipped")

    hours = MarketHours(dataset.market_tz, options.session_hours)
    windows: Dict[str, Deque[Bar]] = {s: deque(maxlen=options.window_size) for s in symbols}
    open_positions: Dict[str, OpenPosition] = {}
    trades: List[BacktestTrade] = []

    def close(trade: BacktestTrade) -> None:
        del open_positions[trade.symbol]
        trades.append(trade)
        risk.record_realized_pnl(trade.pnl, trade.exit_time_utc)

    for t in dataset.times_utc:
        if cancel_event is not None and cancel_event.is_set():
            raise BreakoutCancelledError(f"Backtest cancelled at {t.isoformat()}")

        # 1. Windows (close anything left over from the previous day first)
        current: Dict[str, Bar] = {}
        for sym in symbols:
            bar = dataset.bar_at(sym, t)
            if bar is not None:
                window = windows[sym]
                pos = open_positions.get(sym)
                if pos is not None and window:
                    prev = window[-1]
                    if (
                        pos.entry_time_utc <= prev.time_utc
                        and hours.to_local(bar.time_utc).date() > hours.to_local(prev.time_utc).date()
                    ):
                        logger.debug(f"[{sym}] Held past the session close; closed at {prev.time_utc.isoformat()}")
                        close(force_exit(pos, prev, options.slippage_pct))
                window.append(bar)
                current[sym] = bar

        # 2. Stop / target (positions whose fill bar has been reached)
        for sym in list(open_positions):
            bar = current.get(sym)
            pos = open_positions[sym]
            if bar is None or bar.time_utc < pos.entry_time_utc:
                continue
            exited = evaluate_exit(pos, bar, options.same_bar_rule, options.slippage_pct)
            if exited is not None:
                close(exited)

        # 3. Flatten
        if hours.to_local(t).time() >= options.flatten_time:
            for sym in list(open_positions):
                bar = current.get(sym)
                pos = open_positions[sym]
                if bar is None or bar.time_utc < pos.entry_time_utc:
                    continue
                close(force_exit(pos, bar, options.slippage_pct))

        # 4. Session
        if not hours.is_in_session(t, options.session_mode):
            continue

        # 5. Scan -> risk -> fill
        if not current:
            continue
        snapshot = {sym: tuple(windows[sym]) for sym in current}
        for c in scanner.scan(snapshot):
            sym = c.symbol.upper()
            if sym not in current:
                logger.debug(f"[{sym}] Candidate for a symbol with no bar at {t.isoformat()}; ignored")
                continue
            if sym in open_positions:
                continue
            if c.symbol != sym:
                c = dataclasses.replace(c, symbol=sym)

            decision = risk.evaluate(c, c.take_profit_price, t)
            if not decision.allowed:
                continue
            qty = decision.quantity

            if options.take_profit_r is not None:
                target = compute_take_profit(c.entry_price, c.stop_price, c.direction, options.take_profit_r)
            else:
                target = c.take_profit_price
            limit = apply_entry_limit_buffer(c.entry_price, c.direction, options.entry_limit_buffer_pct)

            series = dataset.series(sym)
            fill_bar = find_entry_fill(
                series,
                dataset.first_index_after(sym, t),
                c.direction,
                limit,
                options.max_bars_to_fill_entry,
            )
            if fill_bar is None:
                logger.debug(f"[{sym}] No fill at {limit} within {options.max_bars_to_fill_entry} bars")
                trades.append(no_fill_trade(c, qty, t, limit, target))
                continue

            open_positions[sym] = OpenPosition(
                symbol=sym,
                direction=c.direction,
                quantity=qty,
                signal_time_utc=t,
                entry_time_utc=fill_bar.time_utc,
                entry_limit=limit,
                entry_price=apply_slippage(limit, c.direction, options.slippage_pct),
                stop_price=c.stop_price,
                take_profit_price=target,
                candidate=c,
                commission=options.commission_per_trade,
            )
            risk.record_trade_placed(sym, t)

    # 6. End of data
    for sym in list(open_positions):
        last = dataset.last_bar(sym)
        close(force_exit(open_positions[sym], last, options.slippage_pct))

    result = build_result(trades)
    logger.debug(
        f"Backtest done: {result.summary.trades} trades, "
        f"{result.summary.no_fills} no-fills, pnl={result.summary.total_pnl:.2f}"
    )
    return result
