"""Price feeds.

Feeds are synchronous; the orchestrator runs them in a worker thread.
Every price is returned with its provenance so callers can tell a fresh
quote from a stale cache hit or a configured fallback.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

import requests

from regime_pilot.exceptions import ConfigValidationError, PriceFeedError

logger = logging.getLogger(__name__)


class PriceSource(Enum):
    FRESH = "fresh"
    STALE_CACHE = "stale_cache"
    DEFAULT = "default"


@dataclass(frozen=True)
class PriceResult:
    instrument: str
    price: float
    source: PriceSource

    @property
    def is_fresh(self) -> bool:
        return self.source is PriceSource.FRESH


@dataclass
class FeedConfig:
    """Price feed configuration."""
    api_url: str = "https://api.coingecko.com/api/v3"
    cache_ttl_seconds: float = 5.0
    request_timeout_seconds: float = 10.0
    coin_ids: Dict[str, str] = field(default_factory=lambda: {
        "BTC/USD": "bitcoin",
        "ETH/USD": "ethereum",
        "SOL/USD": "solana",
        "XRP/USD": "ripple",
        "HYPE/USD": "hyperliquid",
    })
    default_prices: Dict[str, float] = field(default_factory=dict)

    def validate(self) -> None:
        errors: List[str] = []
        if not self.api_url:
            errors.append("api_url must not be empty")
        if self.cache_ttl_seconds < 0:
            errors.append("cache_ttl_seconds must be >= 0")
        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be > 0")
        for instrument, price in self.default_prices.items():
            if price <= 0:
                errors.append(f"default price for {instrument} must be > 0")
        if errors:
            raise ConfigValidationError("\n".join(errors))


class CoinGeckoPriceFeed:
    """Spot prices from the CoinGecko simple price endpoint.

    Prices are cached for ``cache_ttl_seconds``. When a fetch fails the last
    cached price is served as STALE_CACHE, then a configured default as
    DEFAULT; with neither, PriceFeedError is raised.
    """

    def __init__(self, config: Optional[FeedConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or FeedConfig()
        self.config.validate()
        self.session = session or requests.Session()
        # instrument -> (price, fetched_at)
        self._cache: Dict[str, tuple] = {}

    def _fetch(self, instrument: str) -> float:
        coin_id = self.config.coin_ids.get(instrument)
        if coin_id is None:
            raise PriceFeedError(f"Unsupported instrument: {instrument}")

        try:
            response = self.session.get(
                f"{self.config.api_url}/simple/price",
                params={"ids": coin_id, "vs_currencies": "usd"},
                timeout=self.config.request_timeout_seconds,
            )
            response.raise_for_status()
            price = response.json()[coin_id]["usd"]
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            raise PriceFeedError(f"Failed to fetch {instrument}: {e}") from e

        if not isinstance(price, (int, float)) or price <= 0:
            raise PriceFeedError(f"Invalid price for {instrument}: {price!r}")
        return float(price)

    def get_price(self, instrument: str) -> PriceResult:
        """Current price with provenance.

        Raises:
            PriceFeedError: When the fetch fails and no fallback exists
        """
        cached = self._cache.get(instrument)
        now = time.monotonic()
        if cached and now - cached[1] < self.config.cache_ttl_seconds:
            return PriceResult(instrument, cached[0], PriceSource.FRESH)

        try:
            price = self._fetch(instrument)
        except PriceFeedError as e:
            if cached:
                logger.warning(f"⚠️ {e}; serving cached price {cached[0]}")
                return PriceResult(instrument, cached[0], PriceSource.STALE_CACHE)
            default = self.config.default_prices.get(instrument)
            if default is not None:
                logger.warning(f"⚠️ {e}; serving default price {default}")
                return PriceResult(instrument, default, PriceSource.DEFAULT)
            raise

        self._cache[instrument] = (price, now)
        return PriceResult(instrument, price, PriceSource.FRESH)

    def get_prices(self, instruments: Iterable[str]) -> Dict[str, PriceResult]:
        """Prices for many instruments; instruments that fail are left out."""
        results = {}
        for instrument in instruments:
            try:
                results[instrument] = self.get_price(instrument)
            except PriceFeedError as e:
                logger.error(f"No price for {instrument}: {e}")
        return results

    def clear_cache(self) -> None:
        self._cache.clear()


class StaticPriceFeed:
    """In-memory feed for paper sessions and tests."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self._prices: Dict[str, float] = dict(prices or {})
        self._sources: Dict[str, PriceSource] = {}

    def set_price(self, instrument: str, price: float, source: PriceSource = PriceSource.FRESH) -> None:
        self._prices[instrument] = price
        self._sources[instrument] = source

    def remove(self, instrument: str) -> None:
        self._prices.pop(instrument, None)
        self._sources.pop(instrument, None)

    def get_prices(self, instruments: Iterable[str]) -> Dict[str, PriceResult]:
        return {
            instrument: PriceResult(
                instrument,
                self._prices[instrument],
                self._sources.get(instrument, PriceSource.FRESH),
            )
            for instrument in instruments
            if instrument in self._prices
        }
