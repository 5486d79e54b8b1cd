"""Exchange capability used by GridEngine.

The engine never talks to an exchange SDK directly. Anything implementing
ExchangeClient (the Bybit adapter, a paper-trading stub, a test double) can
drive it. Request signing and transport belong to the implementation.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import StrEnum
from typing import Optional, Protocol, runtime_checkable

from gridengine.config import MarginMode, OrderType, SizeMode, TimeInForce


class ExchangeError(Exception):
    """Exchange request failed (network failure or error response)."""


class RateLimitError(ExchangeError):
    """Exchange signalled that the request rate limit was exceeded."""


class OrderSide(StrEnum):
    BUY = 'Buy'
    SELL = 'Sell'


class OrderStatus(StrEnum):
    FILLED = 'Filled'
    PENDING = 'Pending'
    REJECTED = 'Rejected'


@dataclass(frozen=True)
class OrderRequest:
    """Order the engine wants placed.

    size is denominated per size_mode; adapters convert to the unit their
    exchange expects. Exit orders carry the level's entry_price so a
    notional size converts back to the quantity that was bought.
    """

    symbol: str
    market_index: int
    side: OrderSide
    size: float
    price: float
    reduce_only: bool = False
    size_mode: SizeMode = SizeMode.NOTIONAL
    order_type: OrderType = OrderType.MARKET
    time_in_force: TimeInForce = TimeInForce.GTC
    order_margin: float = 0.0
    leverage: int = 1
    margin_mode: MarginMode = MarginMode.PORTFOLIO
    take_profit_rate: float = 1.0
    client_order_id: Optional[str] = None
    entry_price: Optional[float] = None


@dataclass
class OrderResult:
    """Result of an order placement attempt."""

    status: OrderStatus
    order_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def accepted(self) -> bool:
        """Exchange took the order (filled or resting)."""
        return self.status in (OrderStatus.FILLED, OrderStatus.PENDING)

    @classmethod
    def rejected(cls, error: str) -> "OrderResult":
        return cls(status=OrderStatus.REJECTED, error=error)


@runtime_checkable
class ExchangeClient(Protocol):
    """Async capability the engine needs from an exchange."""

    async def get_price(self, symbol: str) -> float:
        """Return the last traded price. Raises ExchangeError on failure."""
        ...

    async def get_account_info(self) -> dict:
        """Return account balances. Raises ExchangeError on failure."""
        ...

    async def place_order(self, request: OrderRequest) -> OrderResult:
        """Submit an order. Rejections are returned, transport failures raise."""
        ...

    async def get_open_orders(self, symbol: str) -> list[dict]:
        ...

    async def get_positions(self, symbol: str) -> list[dict]:
        ...
