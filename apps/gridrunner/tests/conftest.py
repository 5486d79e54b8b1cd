"""Test fixtures for gridrunner tests."""

from unittest.mock import MagicMock

import pytest

from bybit_adapter.rest_client import BybitRestClient
from gridrunner.config import AccountConfig, RunnerConfig, RunnerSettings, StrategyConfig


@pytest.fixture
def sample_account_config():
    """Sample account configuration."""
    return AccountConfig(
        name="test_account",
        api_key="test_key",
        api_secret="test_secret",
        testnet=True,
    )


@pytest.fixture
def sample_strategy_config():
    """Sample long strategy on the 100-120 grid."""
    return StrategyConfig(
        name="btc_long",
        account="test_account",
        symbol="BTCUSDT",
        market_index=0,
        grid_lower=100.0,
        grid_upper=120.0,
        grid_count=4,
        size_per_grid=10.0,
        check_interval=10.0,
    )


@pytest.fixture
def sample_runner_config(sample_account_config):
    """Two long strategies and one disabled short."""
    return RunnerConfig(
        accounts=[sample_account_config],
        strategies={
            "btc_long": dict(
                account="test_account", symbol="BTCUSDT", market_index=0,
                grid_lower=100.0, grid_upper=120.0, grid_count=4, size_per_grid=10.0,
            ),
            "eth_long": dict(
                account="test_account", symbol="ETHUSDT", market_index=0,
                grid_lower=2000.0, grid_upper=3000.0, grid_count=10, size_per_grid=20.0,
            ),
            "btc_short": dict(
                account="test_account", symbol="BTCUSDT", market_index=0, direction="short",
                grid_lower=100.0, grid_upper=120.0, grid_count=4, size_per_grid=10.0,
                enabled=False,
            ),
        },
    )


@pytest.fixture
def settings(tmp_path):
    """Settings with no waiting and state under tmp_path."""
    return RunnerSettings(
        state_dir=str(tmp_path / "state"),
        min_request_interval=0.0,
        retry_attempts=2,
        retry_delay=0.0,
        order_pause=0.0,
        start_gap=0.0,
        status_interval=300.0,
    )


@pytest.fixture
def rest_client():
    """Mock REST client for a healthy account."""
    rest = MagicMock(spec=BybitRestClient)
    rest.get_tickers.return_value = {"symbol": "BTCUSDT", "lastPrice": "107"}
    rest.get_wallet_balance.return_value = {
        "totalEquity": "1000",
        "totalWalletBalance": "1000",
        "totalAvailableBalance": "900",
        "coin": [{"coin": "USDT", "walletBalance": "1000"}],
    }
    rest.get_instrument_info.return_value = {"lotSizeFilter": {"qtyStep": "0.001"}}
    rest.set_leverage.return_value = True
    rest.place_order.return_value = {"orderId": "order-1"}
    return rest


@pytest.fixture
def client_factory(rest_client):
    """Client factory returning the mock REST client."""
    return MagicMock(return_value=rest_client)
