"""REST API client for Bybit grid trading.

This module wraps the pybit HTTP session with the handful of V5 endpoints a
polling grid engine needs:
- Ticker price
- Wallet balance
- Order placement and open orders
- Positions, leverage and instrument lot size

Throttling is not done here; callers share a gridengine.RateLimiter.

Reference:
- Tickers: https://bybit-exchange.github.io/docs/v5/market/tickers
- Instruments Info: https://bybit-exchange.github.io/docs/v5/market/instrument
- Place Order: https://bybit-exchange.github.io/docs/v5/order/create-order
- Open Orders: https://bybit-exchange.github.io/docs/v5/order/open-order
- Position List: https://bybit-exchange.github.io/docs/v5/position
- Set Leverage: https://bybit-exchange.github.io/docs/v5/position/leverage
- Wallet Balance: https://bybit-exchange.github.io/docs/v5/account/wallet-balance
- Error Codes: https://bybit-exchange.github.io/docs/v5/error
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import logging

from pybit.exceptions import FailedRequestError, InvalidRequestError
from pybit.unified_trading import HTTP

from gridengine.exchange import ExchangeError, RateLimitError


logger = logging.getLogger(__name__)

# retCodes meaning the request rate was exceeded
RATE_LIMIT_CODES = frozenset({10006, 10018})

# set_leverage: "leverage not modified"
LEVERAGE_NOT_MODIFIED = 110043


class BybitAPIError(ExchangeError):
    """Bybit answered with a non-zero retCode."""

    def __init__(self, message: str, ret_code: int):
        super().__init__(message)
        self.ret_code = ret_code


def raise_for_code(ret_code: int, message: str) -> None:
    """Raise the exception matching a Bybit retCode."""
    if ret_code in RATE_LIMIT_CODES:
        raise RateLimitError(message)
    raise BybitAPIError(message, ret_code)


@dataclass
class BybitRestClient:
    """Synchronous REST client for one Bybit account.

    Every method either returns the unwrapped "result" payload or raises:
    RateLimitError for retCode 10006/10018, BybitAPIError for any other
    non-zero retCode, ExchangeError for transport failures.

    Example:
        client = BybitRestClient(
            api_key="xxx",
            api_secret="yyy",
            testnet=True,
        )

        ticker = client.get_tickers("BTCUSDT")
        print(ticker["lastPrice"])
    """

    api_key: str
    api_secret: str
    testnet: bool = True
    category: str = "linear"

    _session: Optional[HTTP] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Initialize HTTP session."""
        self._session = HTTP(
            testnet=self.testnet,
            api_key=self.api_key,
            api_secret=self.api_secret,
        )

    def _call(self, method: str, request: Callable[[], dict]) -> dict:
        """Run one pybit request and return its result payload.

        Raises:
            RateLimitError, BybitAPIError, ExchangeError
        """
        try:
            response = request()
        except InvalidRequestError as e:
            # pybit raises on non-zero retCode before we see the response
            ret_code = getattr(e, "status_code", -1)
            message = getattr(e, "message", str(e))
            error_msg = f"Bybit API error in {method}: [{ret_code}] {message}"
            logger.error(error_msg)
            raise_for_code(ret_code, error_msg)
        except FailedRequestError as e:
            error_msg = f"Bybit request failed in {method}: {getattr(e, 'message', e)}"
            logger.error(error_msg)
            raise ExchangeError(error_msg) from e

        self._check_response(response, method)
        return response.get("result", {})

    def get_tickers(self, symbol: str) -> dict:
        """Fetch ticker data for a symbol.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")

        Returns:
            Ticker dict with lastPrice, markPrice, bid1Price, etc.

        Raises:
            ExchangeError: If API call fails or no ticker is returned
        """
        logger.debug(f"Fetching tickers for {symbol}")
        result = self._call(
            "get_tickers",
            lambda: self._session.get_tickers(category=self.category, symbol=symbol),
        )

        tickers = result.get("list", [])
        if not tickers:
            raise ExchangeError(f"No ticker data returned for {symbol}")
        return tickers[0]

    def get_instrument_info(self, symbol: str) -> dict:
        """Fetch instrument specification (lotSizeFilter, priceFilter, ...).

        Raises:
            ExchangeError: If API call fails or the symbol is unknown
        """
        logger.debug(f"Fetching instrument info for {symbol}")
        result = self._call(
            "get_instruments_info",
            lambda: self._session.get_instruments_info(category=self.category, symbol=symbol),
        )

        instruments = result.get("list", [])
        if not instruments:
            raise ExchangeError(f"Unknown instrument {symbol}")
        return instruments[0]

    def get_wallet_balance(self, account_type: str = "UNIFIED") -> dict:
        """Fetch wallet balance.

        Args:
            account_type: Account type (default "UNIFIED")

        Returns:
            Wallet dict for the account (totalEquity, totalAvailableBalance, coin, ...)
        """
        logger.debug(f"Fetching wallet balance for {account_type}")
        result = self._call(
            "get_wallet_balance",
            lambda: self._session.get_wallet_balance(accountType=account_type),
        )

        accounts = result.get("list", [])
        return accounts[0] if accounts else {}

    def place_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        qty: str,
        price: Optional[str] = None,
        reduce_only: bool = False,
        position_idx: int = 0,
        order_link_id: Optional[str] = None,
        time_in_force: Optional[str] = None,
    ) -> dict:
        """Place a new order.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")
            side: Order side ("Buy" or "Sell")
            order_type: Order type ("Limit" or "Market")
            qty: Order quantity as string
            price: Limit price as string (required for Limit orders)
            reduce_only: Whether this is a reduce-only order
            position_idx: Position index for hedge mode (0=one-way, 1=buy-side, 2=sell-side)
            order_link_id: Custom order ID for tracking (client_order_id)
            time_in_force: GTC, IOC or FOK (Limit orders)

        Returns:
            Order response dict with keys: orderId, orderLinkId
        """
        logger.info(f"Placing {order_type} {side} order: {symbol} qty={qty} price={price}")

        params = {
            "category": self.category,
            "symbol": symbol,
            "side": side,
            "orderType": order_type,
            "qty": qty,
            "reduceOnly": reduce_only,
            "positionIdx": position_idx,
        }
        if price is not None:
            params["price"] = price
        if order_link_id is not None:
            params["orderLinkId"] = order_link_id
        if time_in_force is not None:
            params["timeInForce"] = time_in_force

        result = self._call("place_order", lambda: self._session.place_order(**params))
        logger.info(f"Order placed successfully: {result.get('orderId', '')}")
        return result

    def get_open_orders(self, symbol: str, limit: int = 50, max_pages: int = 10) -> list[dict]:
        """Fetch all open orders for a symbol with pagination.

        Args:
            symbol: Trading pair
            limit: Results per page (max 50)
            max_pages: Maximum number of pages to fetch (safety limit)

        Returns:
            List of open order dicts
        """
        logger.debug(f"Fetching open orders for {symbol}")

        all_orders = []
        cursor = None
        page = 0

        while page < max_pages:
            params = {
                "category": self.category,
                "symbol": symbol,
                "limit": min(limit, 50),
            }
            if cursor:
                params["cursor"] = cursor

            result = self._call("get_open_orders", lambda: self._session.get_open_orders(**params))
            orders = result.get("list", [])
            all_orders.extend(orders)

            cursor = result.get("nextPageCursor")
            page += 1
            if not orders or not cursor:
                break

        if page >= max_pages and cursor:
            logger.warning(f"get_open_orders reached max_pages={max_pages} with more data available")

        logger.debug(f"Fetched {len(all_orders)} open orders across {page} pages")
        return all_orders

    def get_positions(self, symbol: str) -> list[dict]:
        """Fetch current positions for a symbol.

        Returns:
            List of position dicts (one per side in hedge mode)
        """
        logger.debug(f"Fetching positions for {symbol}")
        result = self._call(
            "get_positions",
            lambda: self._session.get_positions(category=self.category, symbol=symbol),
        )
        return result.get("list", [])

    def set_leverage(self, symbol: str, leverage: int) -> bool:
        """Set buy and sell leverage for a symbol.

        Returns:
            True if leverage changed, False if it was already set
        """
        logger.info(f"Setting leverage for {symbol} to {leverage}x")
        try:
            self._call(
                "set_leverage",
                lambda: self._session.set_leverage(
                    category=self.category,
                    symbol=symbol,
                    buyLeverage=str(leverage),
                    sellLeverage=str(leverage),
                ),
            )
        except BybitAPIError as e:
            if e.ret_code == LEVERAGE_NOT_MODIFIED:
                logger.debug(f"Leverage for {symbol} already {leverage}x")
                return False
            raise
        return True

    def _check_response(self, response: dict, method: str) -> None:
        """Check API response for errors.

        Args:
            response: API response dict
            method: Method name for error logging

        Raises:
            RateLimitError: If the rate limit was exceeded
            BybitAPIError: If response indicates any other error
        """
        ret_code = response.get("retCode", -1)
        if ret_code != 0:
            ret_msg = response.get("retMsg", "Unknown error")
            error_msg = f"Bybit API error in {method}: [{ret_code}] {ret_msg}"
            logger.error(error_msg)
            raise_for_code(ret_code, error_msg)
