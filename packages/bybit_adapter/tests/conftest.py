"""Test fixtures for bybit_adapter tests."""

from unittest.mock import MagicMock, patch

import pytest

from bybit_adapter.rest_client import BybitRestClient


@pytest.fixture
def mock_session():
    """Mock pybit HTTP session."""
    return MagicMock()


@pytest.fixture
def client(mock_session):
    """BybitRestClient with mocked HTTP session."""
    with patch("bybit_adapter.rest_client.HTTP", return_value=mock_session):
        c = BybitRestClient(api_key="test_key", api_secret="test_secret", testnet=True)
    return c


@pytest.fixture
def sample_ticker():
    """Sample Bybit V5 linear ticker."""
    return {
        "symbol": "BTCUSDT",
        "lastPrice": "42500.50",
        "markPrice": "42501.00",
        "bid1Price": "42500.00",
        "ask1Price": "42501.00",
        "fundingRate": "0.0001",
    }


@pytest.fixture
def sample_wallet():
    """Sample UNIFIED wallet balance entry."""
    return {
        "accountType": "UNIFIED",
        "totalEquity": "1050.25",
        "totalWalletBalance": "1000.00",
        "totalAvailableBalance": "900.00",
        "coin": [
            {"coin": "USDT", "walletBalance": "1000.00", "equity": "1050.25"},
        ],
    }


@pytest.fixture
def sample_instrument():
    """Sample instruments-info entry."""
    return {
        "symbol": "BTCUSDT",
        "status": "Trading",
        "lotSizeFilter": {"qtyStep": "0.001", "minOrderQty": "0.001", "maxOrderQty": "100"},
        "priceFilter": {"tickSize": "0.10"},
    }
