"""
Run a single breakout backtest over bars from a CSV file.

Writes the trade ledger (CSV) and summary (JSON) and prints a summary block.

Usage::

    python -m breakout.scripts.run_backtest --bars bars.csv --symbols AAPL,MSFT \
        --from 2024-03-01 --to 2024-03-29
    python -m breakout.scripts.run_backtest --bars bars.csv --symbols AAPL \
        --from 2024-03-01 --to 2024-03-29 --strategy reversal_up --take-profit-r 2
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

from breakout.backtest.dataset import load_dataset
from breakout.backtest.models import BacktestOptions
from breakout.backtest.reporter import BacktestReporter, write_summary_json, write_trades_csv
from breakout.backtest.simulator import run_backtest
from breakout.config.settings import get_settings
from breakout.core.enums import MarketSessionMode, SameBarFillRule, ScannerStrategy, TradeDirectionMode
from breakout.core.exceptions import BreakoutError
from breakout.data.csv_source import CsvBarSource
from breakout.risk.risk_manager import RiskManager, RiskManagerOptions
from breakout.risk.state import RiskState
from breakout.scanners.base import RetestOptions
from breakout.scanners.factory import create_scanner

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Breakout - single backtest run")
    parser.add_argument("--bars", required=True, help="CSV with symbol,timestamp,open,high,low,close,volume")
    parser.add_argument("--symbols", required=True, help="Comma-separated symbols")
    parser.add_argument("--from", dest="from_date", type=date.fromisoformat, required=True)
    parser.add_argument("--to", dest="to_date", type=date.fromisoformat, required=True)
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in ScannerStrategy],
        default=ScannerStrategy.CONSOLIDATION_BREAKOUT.value,
    )
    parser.add_argument("--direction", choices=[d.value for d in TradeDirectionMode], default="both")
    parser.add_argument("--session", choices=[m.value for m in MarketSessionMode], default=None)
    parser.add_argument("--same-bar-rule", choices=[r.value for r in SameBarFillRule], default=None)
    parser.add_argument("--take-profit-r", type=Decimal, default=None)
    parser.add_argument("--max-fill-bars", type=int, default=None)
    parser.add_argument("--retest", action="store_true", default=False,
                        help="Require a retest of the breakout level before entry")
    parser.add_argument("--out", default="_BacktestRuns", help="Output directory")
    parser.add_argument("--verbose", "-v", action="store_true", default=False)
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

async def _run(args) -> int:
    s = get_settings()
    overrides = dict(
        symbols=args.symbols.split(","),
        from_date=args.from_date,
        to_date=args.to_date,
        take_profit_r=args.take_profit_r,
    )
    if args.session:
        overrides["session_mode"] = MarketSessionMode(args.session)
    if args.same_bar_rule:
        overrides["same_bar_rule"] = SameBarFillRule(args.same_bar_rule)
    if args.max_fill_bars is not None:
        overrides["max_bars_to_fill_entry"] = args.max_fill_bars
    options = BacktestOptions.from_settings(s, **overrides)
    options.validate_run()

    dataset = await load_dataset(
        CsvBarSource(args.bars),
        options.symbols,
        options.from_date,
        options.to_date,
        options.timeframe,
        s.market_timezone,
    )

    scanner = create_scanner(
        ScannerStrategy(args.strategy),
        retest=RetestOptions(include_retest=args.retest),
        direction_mode=TradeDirectionMode(args.direction),
    )
    risk = RiskManager(RiskState(), RiskManagerOptions.from_settings(s), dataset.market_tz)
    result = run_backtest(dataset, options, scanner, risk)

    print()
    print(BacktestReporter().generate_summary(
        result, title=f"{args.strategy.upper()} {','.join(options.symbols)} {args.from_date}..{args.to_date}"
    ))

    out = Path(args.out)
    stem = f"{args.strategy}_{args.from_date}_{args.to_date}"
    trades_path = write_trades_csv(out / f"{stem}_trades.csv", result.trades)
    summary_path = write_summary_json(out / f"{stem}_summary.json", result.summary)
    print(f"\n  Ledger:  {trades_path}")
    print(f"  Summary: {summary_path}")
    return 0


def main(argv=None) -> int:
    args = _parse_args(argv)
    level = logging.DEBUG if args.verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(name)-30s  %(levelname)-7s  %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except BreakoutError as e:
        logger.error(f"Backtest failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
