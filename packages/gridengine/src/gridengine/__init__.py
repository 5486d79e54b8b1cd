"""
gridengine - Fixed-range grid trading engine with zero exchange SDK dependencies.

This package contains the grid level state machine, the entry/exit decision
rules and the polling engine that executes them through any ExchangeClient,
plus the throttle, retry, persistence and trade-log pieces it composes.
"""

from gridengine.config import (
    ConfigurationError,
    Direction,
    GridConfig,
    MarginMode,
    OrderType,
    SizeMode,
    TimeInForce,
)
from gridengine.grid import Grid, GridLevel, LevelState
from gridengine.intents import TradeAction, TradeIntent
from gridengine.exchange import (
    ExchangeClient,
    ExchangeError,
    OrderRequest,
    OrderResult,
    OrderSide,
    OrderStatus,
    RateLimitError,
)
from gridengine.rate_limiter import RateLimiter
from gridengine.retry import RetryPolicy
from gridengine.scheduler import RepeatingTask
from gridengine.persistence import EngineState, GridStateStore
from gridengine.ledger import TradeLedger, TradeRecord
from gridengine.engine import CycleResult, EngineStatus, GridEngine
from gridengine.pnl import (
    calc_notional,
    calc_order_margin,
    calc_profit,
    calc_profit_pct,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "Direction",
    "GridConfig",
    "MarginMode",
    "OrderType",
    "SizeMode",
    "TimeInForce",
    "Grid",
    "GridLevel",
    "LevelState",
    "TradeAction",
    "TradeIntent",
    "ExchangeClient",
    "ExchangeError",
    "OrderRequest",
    "OrderResult",
    "OrderSide",
    "OrderStatus",
    "RateLimitError",
    "RateLimiter",
    "RetryPolicy",
    "RepeatingTask",
    "EngineState",
    "GridStateStore",
    "TradeLedger",
    "TradeRecord",
    "CycleResult",
    "EngineStatus",
    "GridEngine",
    "calc_notional",
    "calc_order_margin",
    "calc_profit",
    "calc_profit_pct",
]
