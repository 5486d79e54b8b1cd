"""Async ExchangeClient implementation backed by BybitRestClient.

pybit is blocking, so every REST call runs in a worker thread via
asyncio.to_thread and the event loop stays free for other engines.
"""

import asyncio
import logging
from decimal import Decimal, ROUND_DOWN
from typing import Optional

from gridengine.config import OrderType, SizeMode
from gridengine.exchange import (
    OrderRequest,
    OrderResult,
    OrderSide,
    OrderStatus,
)
from gridengine.rate_limiter import RateLimiter

from bybit_adapter.rest_client import BybitAPIError, BybitRestClient


logger = logging.getLogger(__name__)


def round_qty(qty: float, qty_step: str) -> str:
    """Round qty down to a multiple of qty_step and format it for the API.

    Example:
        round_qty(0.09345, "0.001") -> "0.093"
    """
    step = Decimal(str(qty_step))
    if step <= 0:
        raise ValueError(f"qty_step must be positive, got {qty_step}")
    steps = (Decimal(str(qty)) / step).to_integral_value(rounding=ROUND_DOWN)
    return format((steps * step).normalize(), "f")


class BybitExchangeClient:
    """Bybit linear perpetual client for GridEngine.

    Order results: Market orders are reported FILLED, Limit orders PENDING.
    A non-zero retCode on order placement is returned as a REJECTED result;
    rate limiting and transport failures raise.

    Example:
        rest = BybitRestClient(api_key="xxx", api_secret="yyy", testnet=True)
        client = BybitExchangeClient(rest, hedge_mode=True)
        price = await client.get_price("BTCUSDT")
    """

    def __init__(
        self,
        rest_client: BybitRestClient,
        qty_step: Optional[str] = None,
        hedge_mode: bool = True,
        account_type: str = "UNIFIED",
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initialize exchange client.

        Args:
            rest_client: Synchronous REST client for the account.
            qty_step: Lot size used for rounding; fetched per symbol when None.
            hedge_mode: Use positionIdx 1/2 (hedge) instead of 0 (one-way).
            account_type: Wallet account type for balance queries.
            rate_limiter: Throttle applied to requests the client makes on its
                own (the instrument lookup behind get_qty_step).
        """
        self._rest = rest_client
        self._qty_step = qty_step
        self._hedge_mode = hedge_mode
        self._account_type = account_type
        self._rate_limiter = rate_limiter
        self._qty_steps: dict[str, str] = {}

    async def get_price(self, symbol: str) -> float:
        """Return the last traded price."""
        ticker = await asyncio.to_thread(self._rest.get_tickers, symbol)
        return float(ticker["lastPrice"])

    async def get_account_info(self) -> dict:
        """Return the wallet summary for the account."""
        wallet = await asyncio.to_thread(self._rest.get_wallet_balance, self._account_type)
        return {
            "accountType": wallet.get("accountType", self._account_type),
            "totalEquity": wallet.get("totalEquity"),
            "totalWalletBalance": wallet.get("totalWalletBalance"),
            "totalAvailableBalance": wallet.get("totalAvailableBalance"),
            "coins": {
                coin.get("coin"): coin.get("walletBalance")
                for coin in wallet.get("coin", [])
            },
        }

    async def get_open_orders(self, symbol: str) -> list[dict]:
        return await asyncio.to_thread(self._rest.get_open_orders, symbol)

    async def get_positions(self, symbol: str) -> list[dict]:
        return await asyncio.to_thread(self._rest.get_positions, symbol)

    async def set_leverage(self, symbol: str, leverage: int) -> bool:
        """Apply leverage to both sides of the symbol. False if already set."""
        return await asyncio.to_thread(self._rest.set_leverage, symbol, leverage)

    async def get_qty_step(self, symbol: str) -> str:
        """Lot size for symbol: configured value, else instrument lotSizeFilter.qtyStep."""
        if self._qty_step is not None:
            return str(self._qty_step)
        if symbol not in self._qty_steps:
            if self._rate_limiter is not None:
                await self._rate_limiter.throttle()
            info = await asyncio.to_thread(self._rest.get_instrument_info, symbol)
            self._qty_steps[symbol] = info["lotSizeFilter"]["qtyStep"]
        return self._qty_steps[symbol]

    def _base_quantity(self, request: OrderRequest) -> float:
        """Convert the request size to base-asset units."""
        if request.size_mode == SizeMode.QUANTITY:
            return request.size
        # Close the quantity that was bought, not size / exit price
        price = request.entry_price if request.reduce_only and request.entry_price else request.price
        return request.size / price

    def _position_idx(self, request: OrderRequest) -> int:
        if not self._hedge_mode:
            return 0
        # Long positions are opened by Buy and closed by Sell
        opens_long = request.side == OrderSide.BUY
        is_long = opens_long != request.reduce_only
        return 1 if is_long else 2

    async def place_order(self, request: OrderRequest) -> OrderResult:
        """Submit an order and map the response to an OrderResult.

        Raises:
            RateLimitError: If Bybit reports the rate limit was exceeded
            ExchangeError: On transport failure
        """
        qty_step = await self.get_qty_step(request.symbol)
        qty = round_qty(self._base_quantity(request), qty_step)
        if Decimal(qty) <= 0:
            logger.warning(
                f"{request.symbol}: order size {request.size} ({request.size_mode}) "
                f"is below qty step {qty_step}"
            )
            return OrderResult.rejected(f"quantity below qty step {qty_step}")

        is_limit = request.order_type == OrderType.LIMIT
        try:
            result = await asyncio.to_thread(
                self._rest.place_order,
                symbol=request.symbol,
                side=str(request.side),
                order_type=str(request.order_type),
                qty=qty,
                price=str(request.price) if is_limit else None,
                reduce_only=request.reduce_only,
                position_idx=self._position_idx(request),
                order_link_id=request.client_order_id,
                time_in_force=str(request.time_in_force) if is_limit else None,
            )
        except BybitAPIError as e:
            return OrderResult.rejected(str(e))

        status = OrderStatus.PENDING if is_limit else OrderStatus.FILLED
        return OrderResult(status=status, order_id=result.get("orderId"))
