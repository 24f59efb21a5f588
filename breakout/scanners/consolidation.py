"""
Consolidation breakout ("elephant bar") scanner.

Pattern:
- A tight consolidation of N bars (high-low range within a % of its midpoint)
- Followed by a wide-bodied, high-volume bar that closes beyond the range
- Long when the close clears the range high (plus buffer), short when it
  clears the range low
- Stop just beyond the opposite side of the consolidation

With retest enabled the breakout bar may sit a few bars back; price must
come back to the broken level and the latest bar must confirm by closing
beyond it again. The signal then fires on the confirming bar.

Optional indicator filters (ATR % band, EMA distance and trend, price vs
EMA/VWAP, close position within the breakout bar) run after the pattern is
found, so indicators are only computed for actual setups.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

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


class ConsolidationScannerOptions(BaseModel):
    """Thresholds for the consolidation breakout pattern."""

    model_config = ConfigDict(frozen=True)

    consolidation_lookback_bars: int = Field(12, ge=1)
    max_consolidation_range_pct: Decimal = Decimal("0.006")

    min_body_to_median_body: Decimal = Decimal("2.5")
    min_volume_to_avg_volume: Decimal = Decimal("1.5")
    breakout_buffer_pct: Decimal = Decimal("0")

    require_near_ema_fast: bool = False
    max_distance_from_ema_fast_pct: Decimal = Decimal("0.010")
    require_price_above_ema_fast: bool = False
    require_price_above_ema_slow: bool = False
    require_trend_ema_fast_over_slow: bool = False
    require_price_above_vwap: bool = False
    require_ema_fast_near_slow: bool = False
    max_ema_distance_pct: Decimal = Decimal("0.010")

    require_atr_available: bool = True
    min_atr_pct: Decimal = Decimal("0.001")
    max_atr_pct: Decimal = Decimal("0.030")

    # Close position within the breakout bar's range, 0 = low, 1 = high
    min_close_in_range_for_long: Decimal = Decimal("0")
    max_close_in_range_for_short: Decimal = Decimal("1")

    stop_buffer_pct: Decimal = Decimal("0")


@dataclass
class _Breakout:
    direction: Direction
    breakout_bar: Bar
    range_high: Decimal
    range_low: Decimal
    range_pct: Decimal
    body_to_median: Decimal
    volume_to_avg: Decimal
    stop: Decimal


class ConsolidationBreakoutScanner(BaseScanner):
    """Detects elephant-bar breakouts from tight consolidations."""

    name = "consolidation_breakout"

    def __init__(
        self,
        options: Optional[ConsolidationScannerOptions] = None,
        retest: Optional[RetestOptions] = None,
        direction_mode: TradeDirectionMode = TradeDirectionMode.BOTH,
    ):
        super().__init__(direction_mode)
        self.options = options or ConsolidationScannerOptions()
        self.retest = retest or RetestOptions()

    # ------------------------------------------------------------------
    # Pattern detection
    # ------------------------------------------------------------------

    def _check_breakout(self, bars: Sequence[Bar], breakout_idx: int) -> tuple:
        """Test bar ``breakout_idx`` against the N bars before it.

        Returns:
            (_Breakout or None, skip reason or None)
        """
        opt = self.options
        n = opt.consolidation_lookback_bars
        start = breakout_idx - n
        if start < 0:
            return None, "consolidation window incomplete"

        window = bars[start:breakout_idx]
        high, low, range_pct = range_bounds(window)
        if range_pct is None:
            return None, "invalid consolidation mid"
        if range_pct > opt.max_consolidation_range_pct:
            return None, f"range too wide ({range_pct:.4%} > {opt.max_consolidation_range_pct:.4%})"

        med = median_body(window)
        if med <= 0:
            return None, "median body <= 0"

        bar = bars[breakout_idx]
        body_to_median = bar.body / med
        vol_to_avg = volume_ratio(bar, window)
        if body_to_median < opt.min_body_to_median_body:
            return None, f"body/median too small ({body_to_median:.2f} < {opt.min_body_to_median_body:.2f})"
        if vol_to_avg < opt.min_volume_to_avg_volume:
            return None, f"vol/avg too small ({vol_to_avg:.2f} < {opt.min_volume_to_avg_volume:.2f})"

        if bar.close > high + high * opt.breakout_buffer_pct:
            direction = Direction.LONG
            stop = low * (1 - opt.stop_buffer_pct)
        elif bar.close < low - low * opt.breakout_buffer_pct:
            direction = Direction.SHORT
            stop = high * (1 + opt.stop_buffer_pct)
        else:
            return None, "no breakout beyond consolidation range"

        if stop <= 0:
            return None, "invalid stop price"

        return _Breakout(direction, bar, high, low, range_pct, body_to_median, vol_to_avg, stop), None

    def _find_retest(self, bars: Sequence[Bar]) -> Optional[_Breakout]:
        """Search back for breakout -> retest -> confirm ending at the last bar."""
        rt = self.retest
        confirm_idx = len(bars) - 1
        confirm = bars[confirm_idx]

        retest_start = max(1, confirm_idx - rt.retest_max_bars)
        for retest_idx in range(confirm_idx - 1, retest_start - 1, -1):
            retest_bar = bars[retest_idx]
            breakout_start = max(1, retest_idx - rt.retest_max_bars)
            for breakout_idx in range(retest_idx - 1, breakout_start - 1, -1):
                found, _ = self._check_breakout(bars, breakout_idx)
                if found is None:
                    continue
                if found.direction == Direction.LONG:
                    level = found.range_high
                    if retest_bar.low > level * (1 + rt.retest_tolerance_pct):
                        continue
                    if confirm.close < level * (1 + rt.retest_confirm_min_close_pct):
                        continue
                else:
                    level = found.range_low
                    if retest_bar.high < level * (1 - rt.retest_tolerance_pct):
                        continue
                    if confirm.close > level * (1 - rt.retest_confirm_min_close_pct):
                        continue
                return found
        return None

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def scan_symbol(self, symbol: str, bars: Sequence[Bar]) -> Optional[SetupCandidate]:
        opt = self.options
        needed = opt.consolidation_lookback_bars + 2
        if len(bars) < needed:
            self.log_skip(symbol, f"not enough bars ({len(bars)} < {needed})")
            return None

        last = bars[-1]
        if self.retest.include_retest:
            found = self._find_retest(bars)
            if found is None:
                self.log_skip(symbol, "no retest confirmation")
                return None
        else:
            found, reason = self._check_breakout(bars, len(bars) - 1)
            if found is None:
                self.log_skip(symbol, reason)
                return None

        # Filters use the signal bar's close (confirm bar when retesting)
        price = last.close
        direction = found.direction
        is_long = direction == Direction.LONG

        ind = latest_snapshot(bars)
        atr_pct = ind.atr / price if ind.atr is not None and price > 0 else ZERO

        if opt.require_atr_available and ind.atr is None:
            self.log_skip(symbol, "ATR required but unavailable")
            return None
        if ind.atr is not None and not (opt.min_atr_pct <= atr_pct <= opt.max_atr_pct):
            self.log_skip(symbol, f"ATR pct out of range ({atr_pct:.4%})")
            return None

        if opt.require_near_ema_fast and ind.ema_fast is not None:
            dist = abs(price - ind.ema_fast) / price
            if dist > opt.max_distance_from_ema_fast_pct:
                self.log_skip(symbol, f"EMA fast distance too large ({dist:.4%})")
                return None

        if (
            opt.require_ema_fast_near_slow
            and ind.ema_fast is not None
            and ind.ema_slow is not None
            and ind.ema_slow > 0
        ):
            dist = abs(ind.ema_fast - ind.ema_slow) / ind.ema_slow
            if dist > opt.max_ema_distance_pct:
                self.log_skip(symbol, f"EMA fast/slow distance too large ({dist:.4%})")
                return None

        if opt.require_trend_ema_fast_over_slow:
            if ind.ema_fast is None or ind.ema_slow is None:
                self.log_skip(symbol, "trend filter requires both EMAs")
                return None
            if is_long and ind.ema_fast <= ind.ema_slow:
                self.log_skip(symbol, "trend filter failed for long")
                return None
            if not is_long and ind.ema_fast >= ind.ema_slow:
                self.log_skip(symbol, "trend filter failed for short")
                return None

        for enabled, level, label in (
            (opt.require_price_above_ema_fast, ind.ema_fast, "EMA fast"),
            (opt.require_price_above_ema_slow, ind.ema_slow, "EMA slow"),
            (opt.require_price_above_vwap, ind.vwap, "VWAP"),
        ):
            if not enabled:
                continue
            if level is None:
                self.log_skip(symbol, f"{label} filter requires {label}")
                return None
            if (is_long and price < level) or (not is_long and price > level):
                self.log_skip(symbol, f"price on wrong side of {label}")
                return None

        bar = found.breakout_bar
        if bar.range > 0:
            close_pos = (bar.close - bar.low) / bar.range
            if is_long and close_pos < opt.min_close_in_range_for_long:
                self.log_skip(symbol, f"close position too low for long ({close_pos:.0%})")
                return None
            if not is_long and close_pos > opt.max_close_in_range_for_short:
                self.log_skip(symbol, f"close position too high for short ({close_pos:.0%})")
                return None

        return SetupCandidate(
            symbol=symbol,
            direction=direction,
            entry_price=price,
            stop_price=found.stop,
            signal_time_utc=last.time_utc,
            take_profit_price=None,
            range_high=found.range_high,
            range_low=found.range_low,
            range_pct=found.range_pct,
            atr_pct=atr_pct,
            body_to_median=found.body_to_median,
            volume_to_avg=found.volume_to_avg,
            indicators=ind,
        )
