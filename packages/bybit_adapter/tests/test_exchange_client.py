"""Tests for BybitExchangeClient."""

from unittest.mock import MagicMock

import pytest

from gridengine.config import OrderType, SizeMode, TimeInForce
from gridengine.exchange import (
    ExchangeClient,
    ExchangeError,
    OrderRequest,
    OrderSide,
    OrderStatus,
    RateLimitError,
)
from gridengine.rate_limiter import RateLimiter

from bybit_adapter.exchange_client import BybitExchangeClient, round_qty
from bybit_adapter.rest_client import BybitAPIError, BybitRestClient


@pytest.fixture
def rest():
    rest = MagicMock(spec=BybitRestClient)
    rest.place_order.return_value = {"orderId": "bybit-1", "orderLinkId": "link"}
    return rest


@pytest.fixture
def exchange(rest):
    return BybitExchangeClient(rest, qty_step="0.001")


def _request(**overrides):
    params = dict(
        symbol="BTCUSDT",
        market_index=0,
        side=OrderSide.BUY,
        size=100.0,
        price=50000.0,
        client_order_id="link",
    )
    params.update(overrides)
    return OrderRequest(**params)


class TestRoundQty:
    @pytest.mark.parametrize("qty,step,expected", [
        (0.09345, "0.001", "0.093"),
        (0.002, "0.001", "0.002"),
        (12.7, "1", "12"),
        (150.0, "10", "150"),
        (0.0004, "0.001", "0"),
    ])
    def test_rounds_down(self, qty, step, expected):
        assert round_qty(qty, step) == expected

    def test_invalid_step(self):
        with pytest.raises(ValueError):
            round_qty(1.0, "0")


class TestQueries:
    def test_implements_protocol(self, exchange):
        assert isinstance(exchange, ExchangeClient)

    @pytest.mark.asyncio
    async def test_get_price(self, exchange, rest, sample_ticker):
        rest.get_tickers.return_value = sample_ticker

        assert await exchange.get_price("BTCUSDT") == 42500.50
        rest.get_tickers.assert_called_once_with("BTCUSDT")

    @pytest.mark.asyncio
    async def test_get_price_propagates_errors(self, exchange, rest):
        rest.get_tickers.side_effect = RateLimitError("slow down")

        with pytest.raises(RateLimitError):
            await exchange.get_price("BTCUSDT")

    @pytest.mark.asyncio
    async def test_get_account_info(self, exchange, rest, sample_wallet):
        rest.get_wallet_balance.return_value = sample_wallet

        info = await exchange.get_account_info()

        assert info["totalEquity"] == "1050.25"
        assert info["totalAvailableBalance"] == "900.00"
        assert info["coins"] == {"USDT": "1000.00"}

    @pytest.mark.asyncio
    async def test_open_orders_and_positions(self, exchange, rest):
        rest.get_open_orders.return_value = [{"orderId": "1"}]
        rest.get_positions.return_value = [{"positionIdx": 1}]

        assert await exchange.get_open_orders("BTCUSDT") == [{"orderId": "1"}]
        assert await exchange.get_positions("BTCUSDT") == [{"positionIdx": 1}]

    @pytest.mark.asyncio
    async def test_qty_step_fetched_once(self, rest, sample_instrument):
        rest.get_instrument_info.return_value = sample_instrument
        exchange = BybitExchangeClient(rest)

        assert await exchange.get_qty_step("BTCUSDT") == "0.001"
        assert await exchange.get_qty_step("BTCUSDT") == "0.001"
        rest.get_instrument_info.assert_called_once_with("BTCUSDT")

    @pytest.mark.asyncio
    async def test_instrument_lookup_is_throttled(self, rest, sample_instrument):
        rest.get_instrument_info.return_value = sample_instrument
        limiter = RateLimiter(min_interval=0.0)
        exchange = BybitExchangeClient(rest, rate_limiter=limiter)

        await exchange.get_qty_step("BTCUSDT")
        await exchange.get_qty_step("BTCUSDT")

        assert limiter.get_stats()["requests"] == 1

    @pytest.mark.asyncio
    async def test_configured_qty_step_skips_limiter(self, rest):
        limiter = RateLimiter(min_interval=0.0)
        exchange = BybitExchangeClient(rest, qty_step="0.01", rate_limiter=limiter)

        assert await exchange.get_qty_step("BTCUSDT") == "0.01"
        assert limiter.get_stats()["requests"] == 0
        rest.get_instrument_info.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_leverage(self, exchange, rest):
        rest.set_leverage.return_value = True

        assert await exchange.set_leverage("BTCUSDT", 5) is True
        rest.set_leverage.assert_called_once_with("BTCUSDT", 5)


class TestPlaceOrder:
    @pytest.mark.asyncio
    async def test_market_entry_is_filled(self, exchange, rest):
        result = await exchange.place_order(_request())

        assert result.status == OrderStatus.FILLED
        assert result.order_id == "bybit-1"
        rest.place_order.assert_called_once_with(
            symbol="BTCUSDT",
            side="Buy",
            order_type="Market",
            qty="0.002",
            price=None,
            reduce_only=False,
            position_idx=1,
            order_link_id="link",
            time_in_force=None,
        )

    @pytest.mark.asyncio
    async def test_limit_order_is_pending(self, exchange, rest):
        result = await exchange.place_order(
            _request(order_type=OrderType.LIMIT, time_in_force=TimeInForce.FOK)
        )

        assert result.status == OrderStatus.PENDING
        kwargs = rest.place_order.call_args[1]
        assert kwargs["price"] == "50000.0"
        assert kwargs["time_in_force"] == "FOK"

    @pytest.mark.asyncio
    async def test_notional_exit_uses_entry_price(self, exchange, rest):
        """Closing 100 USD bought at 40000 sells 0.0025 -> 0.002, not 100/50000."""
        await exchange.place_order(_request(
            side=OrderSide.SELL, reduce_only=True, size=100.0, price=50000.0, entry_price=40000.0,
        ))

        assert rest.place_order.call_args[1]["qty"] == "0.002"

    @pytest.mark.asyncio
    async def test_quantity_mode_passes_size(self, exchange, rest):
        await exchange.place_order(_request(size_mode=SizeMode.QUANTITY, size=0.0157))

        assert rest.place_order.call_args[1]["qty"] == "0.015"

    @pytest.mark.parametrize("side,reduce_only,expected_idx", [
        (OrderSide.BUY, False, 1),    # open long
        (OrderSide.SELL, True, 1),    # close long
        (OrderSide.SELL, False, 2),   # open short
        (OrderSide.BUY, True, 2),     # close short
    ])
    @pytest.mark.asyncio
    async def test_hedge_mode_position_idx(self, exchange, rest, side, reduce_only, expected_idx):
        await exchange.place_order(_request(side=side, reduce_only=reduce_only, entry_price=50000.0))

        assert rest.place_order.call_args[1]["position_idx"] == expected_idx

    @pytest.mark.asyncio
    async def test_one_way_mode(self, rest):
        exchange = BybitExchangeClient(rest, qty_step="0.001", hedge_mode=False)

        await exchange.place_order(_request(side=OrderSide.SELL))

        assert rest.place_order.call_args[1]["position_idx"] == 0

    @pytest.mark.asyncio
    async def test_size_below_step_is_rejected_locally(self, exchange, rest):
        result = await exchange.place_order(_request(size=10.0))

        assert result.status == OrderStatus.REJECTED
        assert "qty step" in result.error
        rest.place_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_api_rejection_is_returned(self, exchange, rest):
        rest.place_order.side_effect = BybitAPIError("[110007] Insufficient balance", 110007)

        result = await exchange.place_order(_request())

        assert result.status == OrderStatus.REJECTED
        assert "Insufficient balance" in result.error

    @pytest.mark.asyncio
    async def test_rate_limit_raises(self, exchange, rest):
        rest.place_order.side_effect = RateLimitError("[10006] Too many visits")

        with pytest.raises(RateLimitError):
            await exchange.place_order(_request())

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self, exchange, rest):
        rest.place_order.side_effect = ExchangeError("request failed")

        with pytest.raises(ExchangeError):
            await exchange.place_order(_request())
