"""Market state: price history, regime detection and timing analysis."""

from .history import PriceHistoryStore
from .regime import RegimeDetector
from .timing import (
    BestEntryPoint,
    HistoricalPattern,
    HistoricalTimingAnalyzer,
    TimingConfig,
    TimingVerdict,
)

__all__ = [
    "PriceHistoryStore",
    "RegimeDetector",
    "HistoricalTimingAnalyzer",
    "TimingConfig",
    "TimingVerdict",
    "HistoricalPattern",
    "BestEntryPoint",
]
