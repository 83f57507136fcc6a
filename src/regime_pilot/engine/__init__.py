"""Engine: price feeds, order execution, repositories and the tick loop."""

from .execution import PaperOrderExecutor
from .feeds import CoinGeckoPriceFeed, FeedConfig, PriceResult, PriceSource, StaticPriceFeed
from .orchestrator import EngineConfig, TradingOrchestrator
from .repositories import OrderRepository, StrategyRepository

__all__ = [
    "PaperOrderExecutor",
    "CoinGeckoPriceFeed",
    "FeedConfig",
    "PriceResult",
    "PriceSource",
    "StaticPriceFeed",
    "EngineConfig",
    "TradingOrchestrator",
    "OrderRepository",
    "StrategyRepository",
]
