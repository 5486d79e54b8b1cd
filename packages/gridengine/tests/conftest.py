"""Test fixtures for gridengine tests."""

import itertools
from unittest.mock import AsyncMock

import pytest

from gridengine import (
    Direction,
    GridConfig,
    GridEngine,
    GridStateStore,
    OrderResult,
    OrderStatus,
    RateLimiter,
    RetryPolicy,
    TradeLedger,
)


@pytest.fixture
def grid_config():
    """Long grid 100-120 with 4 intervals (levels 100, 105, 110, 115, 120)."""
    return GridConfig(lower=100.0, upper=120.0, grid_count=4, size_per_grid=10.0)


@pytest.fixture
def short_config():
    """Short grid with the same levels."""
    return GridConfig(
        lower=100.0, upper=120.0, grid_count=4, size_per_grid=10.0,
        direction=Direction.SHORT,
    )


@pytest.fixture
def exchange():
    """Exchange double that fills every order with increasing ids."""
    ids = itertools.count(1)
    client = AsyncMock()
    client.get_price = AsyncMock(return_value=107.0)
    client.get_account_info = AsyncMock(return_value={"totalEquity": "1000"})
    client.place_order = AsyncMock(
        side_effect=lambda request: OrderResult(status=OrderStatus.FILLED, order_id=f"order-{next(ids)}")
    )
    return client


@pytest.fixture
def rate_limiter():
    return RateLimiter(min_interval=0.0)


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, delay=0.0, sleep=AsyncMock())


@pytest.fixture
def make_engine(exchange, rate_limiter, retry_policy, tmp_path):
    """Factory building engines with state and trade log under tmp_path."""
    def _make(config, symbol="BTCUSDT", market_index=0, persist=True, **kwargs):
        store = GridStateStore(str(tmp_path), symbol, market_index, config.direction) if persist else None
        ledger = TradeLedger(str(tmp_path), symbol, market_index, config.direction) if persist else None
        return GridEngine(
            symbol=symbol,
            market_index=market_index,
            config=config,
            exchange=kwargs.pop("exchange", exchange),
            rate_limiter=rate_limiter,
            retry_policy=retry_policy,
            state_store=store,
            ledger=ledger,
            order_pause=kwargs.pop("order_pause", 0.0),
            sleep=kwargs.pop("sleep", AsyncMock()),
            **kwargs,
        )
    return _make
