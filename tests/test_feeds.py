"""Tests for price feeds."""

import pytest
import requests

from regime_pilot.engine import CoinGeckoPriceFeed, FeedConfig, PriceSource, StaticPriceFeed
from regime_pilot.exceptions import ConfigValidationError, PriceFeedError


class FakeResponse:

    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    """Records requests and replays queued responses or errors."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def btc(price):
    return FakeResponse({"bitcoin": {"usd": price}})


class TestCoinGeckoPriceFeed:

    def test_fresh_price(self):
        session = FakeSession(btc(50000))
        feed = CoinGeckoPriceFeed(session=session)
        result = feed.get_price("BTC/USD")
        assert result.price == 50000.0
        assert result.source is PriceSource.FRESH
        url, params, timeout = session.calls[0]
        assert url == "https://api.coingecko.com/api/v3/simple/price"
        assert params == {"ids": "bitcoin", "vs_currencies": "usd"}
        assert timeout == 10.0

    def test_cached_within_ttl(self):
        session = FakeSession(btc(50000))
        feed = CoinGeckoPriceFeed(FeedConfig(cache_ttl_seconds=60), session=session)
        feed.get_price("BTC/USD")
        assert feed.get_price("BTC/USD").is_fresh
        assert len(session.calls) == 1

    def test_stale_cache_on_failure(self):
        session = FakeSession(btc(50000), requests.ConnectionError("down"))
        feed = CoinGeckoPriceFeed(FeedConfig(cache_ttl_seconds=0), session=session)
        feed.get_price("BTC/USD")
        result = feed.get_price("BTC/USD")
        assert result.price == 50000.0
        assert result.source is PriceSource.STALE_CACHE

    def test_default_price_on_failure(self):
        session = FakeSession(FakeResponse({}, status_code=503))
        feed = CoinGeckoPriceFeed(FeedConfig(default_prices={"BTC/USD": 42000.0}), session=session)
        result = feed.get_price("BTC/USD")
        assert result.price == 42000.0
        assert result.source is PriceSource.DEFAULT

    def test_raises_without_fallback(self):
        feed = CoinGeckoPriceFeed(session=FakeSession(requests.Timeout("slow")))
        with pytest.raises(PriceFeedError):
            feed.get_price("BTC/USD")

    @pytest.mark.parametrize("payload", [{"bitcoin": {"usd": 0}}, {"bitcoin": {}}, {"bitcoin": {"usd": "n/a"}}])
    def test_rejects_malformed_payload(self, payload):
        feed = CoinGeckoPriceFeed(session=FakeSession(FakeResponse(payload)))
        with pytest.raises(PriceFeedError):
            feed.get_price("BTC/USD")

    def test_unsupported_instrument(self):
        session = FakeSession()
        feed = CoinGeckoPriceFeed(session=session)
        with pytest.raises(PriceFeedError):
            feed.get_price("DOGE/USD")
        assert session.calls == []

    def test_get_prices_drops_failures(self):
        feed = CoinGeckoPriceFeed(session=FakeSession(btc(50000)))
        results = feed.get_prices(["BTC/USD", "DOGE/USD"])
        assert list(results) == ["BTC/USD"]

    def test_clear_cache(self):
        session = FakeSession(btc(50000), btc(51000))
        feed = CoinGeckoPriceFeed(FeedConfig(cache_ttl_seconds=60), session=session)
        feed.get_price("BTC/USD")
        feed.clear_cache()
        assert feed.get_price("BTC/USD").price == 51000.0

    def test_invalid_config(self):
        with pytest.raises(ConfigValidationError):
            CoinGeckoPriceFeed(FeedConfig(request_timeout_seconds=0), session=FakeSession())


class TestStaticPriceFeed:

    def test_returns_known_instruments(self):
        feed = StaticPriceFeed({"BTC/USD": 50000.0})
        results = feed.get_prices(["BTC/USD", "ETH/USD"])
        assert list(results) == ["BTC/USD"]
        assert results["BTC/USD"].is_fresh

    def test_source_override_and_remove(self):
        feed = StaticPriceFeed()
        feed.set_price("BTC/USD", 50000.0, PriceSource.STALE_CACHE)
        assert feed.get_prices(["BTC/USD"])["BTC/USD"].source is PriceSource.STALE_CACHE
        feed.remove("BTC/USD")
        assert feed.get_prices(["BTC/USD"]) == {}
