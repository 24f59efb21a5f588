"""
Scanner factory: maps a configured strategy to a scanner instance.

Each optimization trial builds a fresh scanner through here so no scanner
state is shared between trials.
"""

from typing import Optional, Union

from breakout.core.enums import ScannerStrategy, TradeDirectionMode
from breakout.scanners.base import BaseScanner, RetestOptions
from breakout.scanners.consolidation import (
    ConsolidationBreakoutScanner,
    ConsolidationScannerOptions,
)
from breakout.scanners.reversal import ReversalScannerOptions, ReversalUpScanner

ScannerOptions = Union[ConsolidationScannerOptions, ReversalScannerOptions]


def create_scanner(
    strategy: ScannerStrategy,
    options: Optional[ScannerOptions] = None,
    retest: Optional[RetestOptions] = None,
    direction_mode: TradeDirectionMode = TradeDirectionMode.BOTH,
) -> BaseScanner:
    """
    Build the scanner for ``strategy``.

    Raises:
        TypeError: If ``options`` belong to a different strategy.
    """
    strategy = ScannerStrategy(strategy)
    if strategy == ScannerStrategy.CONSOLIDATION_BREAKOUT:
        if options is not None and not isinstance(options, ConsolidationScannerOptions):
            raise TypeError(f"{strategy.value} expects ConsolidationScannerOptions")
        return ConsolidationBreakoutScanner(options, retest, direction_mode)

    if options is not None and not isinstance(options, ReversalScannerOptions):
        raise TypeError(f"{strategy.value} expects ReversalScannerOptions")
    return ReversalUpScanner(options, retest, direction_mode)
