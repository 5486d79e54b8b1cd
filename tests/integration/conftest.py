"""Shared fixtures for integration tests."""

import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest

from bybit_adapter.exchange_client import BybitExchangeClient
from bybit_adapter.rest_client import BybitRestClient
from gridengine import GridConfig, RateLimiter, RetryPolicy


@pytest.fixture
def grid_config():
    """Long grid 100-120, 4 intervals, 1000 USDT per level."""
    return GridConfig(lower=100.0, upper=120.0, grid_count=4, size_per_grid=1000.0)


@pytest.fixture
def rest_client():
    """Mock Bybit REST client accepting every order."""
    ids = itertools.count(1)
    rest = MagicMock(spec=BybitRestClient)
    rest.get_wallet_balance.return_value = {"totalEquity": "5000", "coin": []}
    rest.get_instrument_info.return_value = {"lotSizeFilter": {"qtyStep": "0.001"}}
    rest.set_leverage.return_value = True
    rest.place_order.side_effect = lambda **kwargs: {
        "orderId": f"bybit-{next(ids)}",
        "orderLinkId": kwargs["order_link_id"],
    }
    return rest


@pytest.fixture
def price_feed(rest_client):
    """Serve a fixed sequence of last prices through get_tickers."""
    def _feed(prices):
        rest_client.get_tickers.side_effect = [
            {"symbol": "BTCUSDT", "lastPrice": str(p)} for p in prices
        ]
    return _feed


@pytest.fixture
def exchange(rest_client, rate_limiter):
    return BybitExchangeClient(rest_client, rate_limiter=rate_limiter)


@pytest.fixture
def rate_limiter():
    return RateLimiter(min_interval=0.0)


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=2, delay=0.0, sleep=AsyncMock())
