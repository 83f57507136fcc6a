"""Signal generation tiers and the profitability filter."""

from .aggressive import AggressiveConfig, AggressiveSignalGenerator
from .baseline import BaselineSignalGenerator
from .filter import FilterConfig, ProfitabilityFilter
from .smart import SmartConfig, SmartSignalGenerator

__all__ = [
    "AggressiveConfig",
    "AggressiveSignalGenerator",
    "BaselineSignalGenerator",
    "FilterConfig",
    "ProfitabilityFilter",
    "SmartConfig",
    "SmartSignalGenerator",
]
