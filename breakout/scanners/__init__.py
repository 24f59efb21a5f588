from .base import BaseScanner, RetestOptions
from .consolidation import ConsolidationBreakoutScanner, ConsolidationScannerOptions
from .factory import create_scanner
from .reversal import ReversalScannerOptions, ReversalUpScanner

__all__ = [
    "BaseScanner",
    "RetestOptions",
    "ConsolidationBreakoutScanner",
    "ConsolidationScannerOptions",
    "ReversalScannerOptions",
    "ReversalUpScanner",
    "create_scanner",
]
