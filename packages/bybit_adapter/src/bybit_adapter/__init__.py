"""Bybit-specific adapter for the grid engine.

This package provides:
- REST API client wrapping pybit for prices, balances, orders and positions
- Async ExchangeClient implementation used by gridengine.GridEngine
"""

from bybit_adapter.rest_client import BybitAPIError, BybitRestClient
from bybit_adapter.exchange_client import BybitExchangeClient, round_qty

__all__ = [
    "BybitAPIError",
    "BybitRestClient",
    "BybitExchangeClient",
    "round_qty",
]
