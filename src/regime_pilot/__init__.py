"""Regime Pilot - regime-aware, fee-aware crypto futures decision engine."""

__version__ = "1.0.0"

from .engine import TradingOrchestrator
from .models import (
    MarketRegime,
    Position,
    Side,
    Signal,
    SignalTier,
    StrategyType,
    TradingStrategy,
)

__all__ = [
    "TradingOrchestrator",
    "MarketRegime",
    "Position",
    "Side",
    "Signal",
    "SignalTier",
    "StrategyType",
    "TradingStrategy",
]
