"""
Optimization outputs.

Per run, a timestamped directory holding:
- optimization_results.csv: every trial, ranked, with its full parameter
  set and train/test metrics
- top_configs.json: the top-N trials for quick inspection
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from breakout.optimize.models import OptimizationResult, OptimizeMetrics, TrialResult

logger = logging.getLogger(__name__)

RESULTS_FILE = "optimization_results.csv"
TOP_CONFIGS_FILE = "top_configs.json"

_SCANNER_COLUMNS = {
    "consolidation": [
        "consolidation_lookback_bars",
        "max_consolidation_range_pct",
        "min_body_to_median_body",
        "min_volume_to_avg_volume",
        "breakout_buffer_pct",
        "stop_buffer_pct",
    ],
    "reversal": [
        "sideways_lookback_bars",
        "max_sideways_range_pct",
        "min_green_body_to_median",
        "min_bull_run_pct",
        "take_profit_bull_run_pct",
        "stop_buffer_pct",
    ],
}


def _metric_columns(prefix: str, m: OptimizeMetrics) -> dict:
    return {
        f"{prefix}_filled": m.filled_trades,
        f"{prefix}_avg_r": float(m.avg_r),
        f"{prefix}_profit_factor": float(m.profit_factor),
        f"{prefix}_dd_pct": float(m.max_drawdown_pct),
        f"{prefix}_total_pnl": float(m.total_pnl),
        f"{prefix}_win_rate": float(m.win_rate),
    }


def results_to_dataframe(results: List[TrialResult]) -> pd.DataFrame:
    """One row per trial, in the given (ranked) order."""
    rows = []
    for r in results:
        s = r.settings
        row = {
            "trial": r.trial,
            "strategy": s.strategy.value,
            "final_score": float(r.final_score),
            "train_score": float(r.train_score),
            "test_score": float(r.test_score),
            "penalized": r.penalized,
        }
        for group, columns in _SCANNER_COLUMNS.items():
            params = getattr(s, group)
            for col in columns:
                value = getattr(params, col) if params is not None else None
                row[f"{group}.{col}"] = str(value) if value is not None else ""
        row["fill_bars"] = s.max_bars_to_fill_entry
        row["entry_buffer_pct"] = str(s.entry_limit_buffer_pct)
        row["take_profit_r"] = str(s.take_profit_r) if s.take_profit_r is not None else ""
        row.update(_metric_columns("train", r.train))
        row.update(_metric_columns("test", r.test))
        rows.append(row)
    return pd.DataFrame(rows)


def write_optimization_outputs(
    out_dir: Union[str, Path],
    result: OptimizationResult,
    run_name: Optional[str] = None,
) -> Path:
    """
    Write the results CSV and top-N JSON into ``out_dir/<run_name>``.

    Returns:
        The run directory.
    """
    run_name = run_name or datetime.now().strftime("%Y-%m-%d_%H%M%S%f")[:-3]
    run_dir = Path(out_dir) / run_name
    run_dir.mkdir(parents=True, exist_ok=True)

    csv_path = run_dir / RESULTS_FILE
    results_to_dataframe(result.ranked).to_csv(csv_path, index=False)

    top_path = run_dir / TOP_CONFIGS_FILE
    top = [r.model_dump(mode="json") for r in result.top]
    top_path.write_text(json.dumps(top, indent=2))

    logger.info(f"Optimization results: {csv_path} | {top_path}")
    return run_dir


def format_top(result: OptimizationResult) -> str:
    """Plain-text table of the top-N trials."""
    lines = [
        "=" * 70,
        f"TOP {len(result.top)} CONFIGS (by final score)",
        "=" * 70,
    ]
    for r in result.top:
        s = r.settings
        tp = str(s.take_profit_r) if s.take_profit_r is not None else "none"
        lines.append(
            f"#{r.trial:<5} score={float(r.final_score):>9.2f}  "
            f"train R={float(r.train.avg_r):.3f} PF={float(r.train.profit_factor):.2f} "
            f"DD={float(r.train.max_drawdown_pct):.2%}  "
            f"test R={float(r.test.avg_r):.3f} PF={float(r.test.profit_factor):.2f} "
            f"DD={float(r.test.max_drawdown_pct):.2%}  "
            f"fill={s.max_bars_to_fill_entry} buf={float(s.entry_limit_buffer_pct):.3%} tpR={tp}"
        )
    return "\n".join(lines)
