"""
Reversal-up scanner (long only).

Looks for a sideways market that has just printed a fresh swing low after a
meaningful bull run, then a green bar with a long lower wick off that low.

- Sideways: the last N bars fit in a range of at most X% of its midpoint
- Swings: pivot highs/lows with ``pivot`` bars on each side
- Bull run: prior swing low -> swing high before the latest swing low
- Entry: signal close (+ optional buffer); stop just under the latest swing
  low; target at a fraction of the bull run measured from that low
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from breakout.core.enums import Direction, TradeDirectionMode
from breakout.core.models import Bar, SetupCandidate
from breakout.indicators import latest_snapshot
from breakout.scanners.base import (
    ZERO,
    BaseScanner,
    RetestOptions,
    median_body,
    range_bounds,
    volume_ratio,
)


class ReversalScannerOptions(BaseModel):
    """Thresholds for the reversal-up pattern."""

    model_config = ConfigDict(frozen=True)

    sideways_lookback_bars: int = Field(40, ge=2)
    max_sideways_range_pct: Decimal = Decimal("0.035")
    pivot_lookback_bars: int = Field(3, ge=1)
    min_swing_count: int = 4
    max_bars_after_swing_low: int = 3

    min_green_body_to_median: Decimal = Decimal("1.2")
    min_lower_wick_pct: Decimal = Decimal("0.25")

    entry_buffer_pct: Decimal = Decimal("0")
    stop_buffer_pct: Decimal = Decimal("0.001")

    min_bull_run_pct: Decimal = Decimal("0.02")
    take_profit_bull_run_pct: Decimal = Decimal("0.60")


@dataclass(frozen=True)
class Swing:
    index: int
    price: Decimal
    is_high: bool


def find_swings(bars: Sequence[Bar], pivot: int) -> List[Swing]:
    """Pivot highs and lows; a bar that is both (or neither) is ignored."""
    swings: List[Swing] = []
    if pivot < 1:
        return swings

    for i in range(pivot, len(bars) - pivot):
        around = bars[i - pivot:i + pivot + 1]
        is_high = all(b.high <= bars[i].high for b in around)
        is_low = all(b.low >= bars[i].low for b in around)
        if is_high and not is_low:
            swings.append(Swing(i, bars[i].high, True))
        elif is_low and not is_high:
            swings.append(Swing(i, bars[i].low, False))
    return swings


def _last(swings: Sequence[Swing], is_high: bool, before: Optional[int] = None) -> Optional[Swing]:
    for s in reversed(swings):
        if s.is_high == is_high and (before is None or s.index < before):
            return s
    return None


class ReversalUpScanner(BaseScanner):
    """Long reversal off a fresh swing low inside a sideways range."""

    name = "reversal_up"

    def __init__(
        self,
        options: Optional[ReversalScannerOptions] = None,
        retest: Optional[RetestOptions] = None,
        direction_mode: TradeDirectionMode = TradeDirectionMode.BOTH,
    ):
        super().__init__(direction_mode)
        self.options = options or ReversalScannerOptions()
        self.retest = retest or RetestOptions()

    def _retest_signal(self, window: Sequence[Bar]) -> Optional[Bar]:
        rt = self.retest
        confirm_idx = len(window) - 1
        confirm = window[confirm_idx]
        retest_start = max(1, confirm_idx - rt.retest_max_bars)
        for retest_idx in range(confirm_idx - 1, retest_start - 1, -1):
            retest_bar = window[retest_idx]
            breakout_start = max(1, retest_idx - rt.retest_max_bars)
            for breakout_idx in range(retest_idx - 1, breakout_start - 1, -1):
                level = window[breakout_idx].close
                if level <= 0:
                    continue
                if retest_bar.low > level * (1 + rt.retest_tolerance_pct):
                    continue
                if confirm.close < level * (1 + rt.retest_confirm_min_close_pct):
                    continue
                return window[breakout_idx]
        return None

    def scan_symbol(self, symbol: str, bars: Sequence[Bar]) -> Optional[SetupCandidate]:
        opt = self.options
        needed = opt.sideways_lookback_bars + opt.pivot_lookback_bars * 2 + 2
        if len(bars) < needed:
            self.log_skip(symbol, f"not enough bars ({len(bars)} < {needed})")
            return None

        window = list(bars[-opt.sideways_lookback_bars:])
        range_high, range_low, range_pct = range_bounds(window)
        if range_pct is None:
            self.log_skip(symbol, "invalid range mid")
            return None
        if range_pct > opt.max_sideways_range_pct:
            self.log_skip(symbol, f"range too wide ({range_pct:.4%})")
            return None

        swings = find_swings(window, opt.pivot_lookback_bars)
        if len(swings) < opt.min_swing_count:
            self.log_skip(symbol, f"not enough swings ({len(swings)} < {opt.min_swing_count})")
            return None

        last_low = _last(swings, is_high=False)
        if last_low is None:
            self.log_skip(symbol, "no swing low")
            return None
        last_high = _last(swings, is_high=True, before=last_low.index)
        if last_high is None:
            self.log_skip(symbol, "no swing high before last low")
            return None
        prior_low = _last(swings, is_high=False, before=last_high.index)
        if prior_low is None:
            self.log_skip(symbol, "no prior swing low for bull run")
            return None

        bars_since_low = len(window) - 1 - last_low.index
        if bars_since_low > opt.max_bars_after_swing_low:
            self.log_skip(symbol, f"last swing low too old ({bars_since_low} bars)")
            return None

        bull_run = last_high.price - prior_low.price
        if bull_run <= 0:
            self.log_skip(symbol, "invalid bull run distance")
            return None
        bull_run_pct = bull_run / prior_low.price
        if bull_run_pct < opt.min_bull_run_pct:
            self.log_skip(symbol, f"bull run too small ({bull_run_pct:.4%})")
            return None

        confirm = window[-1]
        signal = confirm
        if self.retest.include_retest:
            signal = self._retest_signal(window)
            if signal is None:
                self.log_skip(symbol, "retest not confirmed")
                return None

        if signal.close <= signal.open:
            self.log_skip(symbol, "signal bar not green")
            return None

        med = median_body(window)
        if med <= 0:
            self.log_skip(symbol, "median body <= 0")
            return None
        body_to_median = signal.body / med
        if body_to_median < opt.min_green_body_to_median:
            self.log_skip(symbol, f"body/median too small ({body_to_median:.2f})")
            return None

        if signal.range <= 0:
            self.log_skip(symbol, "invalid signal range")
            return None
        lower_wick_pct = (min(signal.open, signal.close) - signal.low) / signal.range
        if lower_wick_pct < opt.min_lower_wick_pct:
            self.log_skip(symbol, f"lower wick too small ({lower_wick_pct:.2%})")
            return None

        base_entry = confirm.close
        entry = base_entry * (1 + opt.entry_buffer_pct)
        stop = last_low.price * (1 - opt.stop_buffer_pct)
        if entry <= 0 or stop <= 0:
            self.log_skip(symbol, "invalid entry/stop")
            return None

        take_profit = last_low.price + opt.take_profit_bull_run_pct * bull_run
        if take_profit <= entry:
            self.log_skip(symbol, "take profit below entry")
            return None

        ind = latest_snapshot(bars)
        atr_pct = ind.atr / base_entry if ind.atr is not None and base_entry > 0 else ZERO

        return SetupCandidate(
            symbol=symbol,
            direction=Direction.LONG,
            entry_price=entry,
            stop_price=stop,
            signal_time_utc=confirm.time_utc,
            take_profit_price=take_profit,
            range_high=range_high,
            range_low=range_low,
            range_pct=range_pct,
            atr_pct=atr_pct,
            body_to_median=body_to_median,
            volume_to_avg=volume_ratio(signal, window),
            indicators=ind,
        )
