"""
Randomized parameter optimization over a train and a test date range.

Loads both ranges once from a bars CSV, evaluates every sampled trial on a
process pool, then writes the ranked results and the top configurations
into a timestamped run directory. Ctrl+C cancels the run.

Usage::

    python -m breakout.scripts.optimize --bars bars.csv --symbols AAPL,MSFT \
        --train-from 2024-01-02 --train-to 2024-02-29 \
        --test-from 2024-03-01 --test-to 2024-03-29
    python -m breakout.scripts.optimize ... --trials 200 --seed 7 --workers 4
"""

import argparse
import asyncio
import logging
import sys
import threading
from datetime import date

from breakout.config.settings import get_settings
from breakout.core.enums import ScannerStrategy, TradeDirectionMode
from breakout.core.exceptions import BreakoutCancelledError, BreakoutError
from breakout.data.csv_source import CsvBarSource
from breakout.optimize.driver import Optimizer, load_train_test
from breakout.optimize.models import OptimizeOptions
from breakout.optimize.reporter import format_top, write_optimization_outputs

logger = logging.getLogger(__name__)


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Breakout - randomized parameter optimization")
    parser.add_argument("--bars", required=True, help="CSV with symbol,timestamp,open,high,low,close,volume")
    parser.add_argument("--symbols", required=True, help="Comma-separated symbols")
    parser.add_argument("--train-from", type=date.fromisoformat, required=True)
    parser.add_argument("--train-to", type=date.fromisoformat, required=True)
    parser.add_argument("--test-from", type=date.fromisoformat, required=True)
    parser.add_argument("--test-to", type=date.fromisoformat, required=True)
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in ScannerStrategy],
        default=ScannerStrategy.CONSOLIDATION_BREAKOUT.value,
    )
    parser.add_argument("--direction", choices=[d.value for d in TradeDirectionMode], default="both")
    parser.add_argument("--trials", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--workers", type=int, default=None, help="0 = one per CPU, 1 = in-process")
    parser.add_argument("--top", type=int, default=None)
    parser.add_argument("--out", default=None, help="Output root directory")
    parser.add_argument("--verbose", "-v", action="store_true", default=False)
    return parser.parse_args(argv)


def _build_options(args) -> OptimizeOptions:
    overrides = dict(
        strategy=ScannerStrategy(args.strategy),
        symbols=args.symbols.split(","),
        train_from=args.train_from,
        train_to=args.train_to,
        test_from=args.test_from,
        test_to=args.test_to,
        direction_mode=TradeDirectionMode(args.direction),
    )
    for arg, field in (("trials", "trials"), ("seed", "seed"), ("workers", "max_workers"),
                       ("top", "top_n"), ("out", "out_dir")):
        value = getattr(args, arg)
        if value is not None:
            overrides[field] = value
    options = OptimizeOptions.from_settings(get_settings(), **overrides)
    options.validate_run()
    return options


def _run(args) -> int:
    options = _build_options(args)
    train, test = asyncio.run(load_train_test(CsvBarSource(args.bars), options))

    cancel = threading.Event()
    try:
        result = Optimizer(options, train, test).run(cancel)
    except KeyboardInterrupt:
        cancel.set()
        logger.warning("Interrupted; optimization cancelled")
        return 130

    print()
    print(format_top(result))
    run_dir = write_optimization_outputs(options.out_dir, result)
    print(f"\n  Results: {run_dir}")
    return 0


def main(argv=None) -> int:
    args = _parse_args(argv)
    level = logging.DEBUG if args.verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(name)-30s  %(levelname)-7s  %(message)s",
    )
    try:
        return _run(args)
    except BreakoutCancelledError as e:
        logger.warning(str(e))
        return 130
    except BreakoutError as e:
        logger.error(f"Optimization failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
