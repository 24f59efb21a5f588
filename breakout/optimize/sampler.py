"""
Random parameter sampling for optimization trials.

All trials are drawn up front from one seeded numpy Generator, in trial
order, so a run is reproducible from its seed regardless of how many
workers later evaluate the trials.
"""

from decimal import Decimal
from typing import List

import numpy as np

from breakout.core.enums import ScannerStrategy
from breakout.optimize.models import DecimalRange, IntRange, OptimizeOptions, TrialSettings

# Sampled decimals are rounded so configs stay readable in reports
_PLACES = Decimal("0.000001")


def uniform_decimal(rng: np.random.Generator, r: DecimalRange) -> Decimal:
    u = Decimal(repr(float(rng.random())))
    return (r.min + u * (r.max - r.min)).quantize(_PLACES)


def uniform_int(rng: np.random.Generator, r: IntRange) -> int:
    return int(rng.integers(r.min, r.max + 1))


def sample_trial(rng: np.random.Generator, options: OptimizeOptions, trial: int) -> TrialSettings:
    """Draw one full scanner + exit parameter set."""
    consolidation = None
    reversal = None

    if options.strategy == ScannerStrategy.CONSOLIDATION_BREAKOUT:
        r = options.consolidation_ranges
        consolidation = options.base_consolidation.model_copy(
            update=dict(
                consolidation_lookback_bars=uniform_int(rng, r.lookback_bars),
                max_consolidation_range_pct=uniform_decimal(rng, r.max_range_pct),
                min_body_to_median_body=uniform_decimal(rng, r.min_body_to_median),
                min_volume_to_avg_volume=uniform_decimal(rng, r.min_volume_ratio),
                breakout_buffer_pct=uniform_decimal(rng, r.breakout_buffer_pct),
                stop_buffer_pct=uniform_decimal(rng, r.stop_buffer_pct),
            )
        )
    else:
        r = options.reversal_ranges
        reversal = options.base_reversal.model_copy(
            update=dict(
                sideways_lookback_bars=uniform_int(rng, r.sideways_lookback_bars),
                max_sideways_range_pct=uniform_decimal(rng, r.max_sideways_range_pct),
                min_green_body_to_median=uniform_decimal(rng, r.min_green_body_to_median),
                min_bull_run_pct=uniform_decimal(rng, r.min_bull_run_pct),
                take_profit_bull_run_pct=uniform_decimal(rng, r.take_profit_bull_run_pct),
                stop_buffer_pct=uniform_decimal(rng, r.stop_buffer_pct),
            )
        )

    exits = options.exit_ranges
    tp_values = exits.take_profit_r_values
    take_profit_r = tp_values[int(rng.integers(0, len(tp_values)))] if tp_values else None

    return TrialSettings(
        trial=trial,
        strategy=options.strategy,
        consolidation=consolidation,
        reversal=reversal,
        max_bars_to_fill_entry=uniform_int(rng, exits.max_bars_to_fill_entry),
        entry_limit_buffer_pct=uniform_decimal(rng, exits.entry_limit_buffer_pct),
        take_profit_r=take_profit_r,
    )


def sample_trials(options: OptimizeOptions) -> List[TrialSettings]:
    """All trials for a run, numbered from 1."""
    rng = np.random.default_rng(options.seed)
    return [sample_trial(rng, options, i) for i in range(1, options.trials + 1)]
