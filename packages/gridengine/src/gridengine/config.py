"""
Configuration models for the grid level engine.

This module defines the immutable configuration used to parameterize a
GridEngine, plus the small enums shared across the package.
"""

from dataclasses import dataclass
from enum import StrEnum


class ConfigurationError(ValueError):
    """Raised when an engine is constructed from an invalid configuration."""


class Direction(StrEnum):
    """Grid direction: long buys dips and sells rallies, short does the mirror."""
    LONG = 'long'
    SHORT = 'short'


class SizeMode(StrEnum):
    """How size_per_grid is denominated."""
    NOTIONAL = 'notional'  # quote currency, e.g. USD per level
    QUANTITY = 'quantity'  # base asset units per level


class MarginMode(StrEnum):
    PORTFOLIO = 'portfolio'
    ISOLATED = 'isolated'


class OrderType(StrEnum):
    MARKET = 'Market'
    LIMIT = 'Limit'


class TimeInForce(StrEnum):
    GTC = 'GTC'
    IOC = 'IOC'
    FOK = 'FOK'


@dataclass(frozen=True)
class GridConfig:
    """
    Configuration for a fixed-range grid.

    Attributes:
        lower: Lowest grid price (level 0)
        upper: Highest grid price (level grid_count)
        grid_count: Number of grid intervals; the grid has grid_count + 1 levels
        size_per_grid: Trade size per level, see size_mode
        direction: LONG or SHORT
        size_mode: NOTIONAL (quote currency) or QUANTITY (base asset)
        leverage: Leverage used for margin calculation (default: 10)
        margin_mode: PORTFOLIO or ISOLATED
        order_type: Market or Limit
        time_in_force: GTC, IOC or FOK
        check_interval: Seconds between polling cycles (default: 10)
        stop_loss_percent: Stop loss fraction, carried for reporting (default: 0.05)
        take_profit_rate: Take profit rate forwarded on orders (default: 1.0)
        min_margin: Minimum order margin in quote currency (default: 5.0)
        treat_pending_as_filled: Commit level state when the exchange accepts
            an order that has not filled yet (default: True). When False the
            level waits in flight until the order shows up as filled
            or is gone from the book
    """
    lower: float
    upper: float
    grid_count: int
    size_per_grid: float
    direction: Direction = Direction.LONG
    size_mode: SizeMode = SizeMode.NOTIONAL
    leverage: int = 10
    margin_mode: MarginMode = MarginMode.PORTFOLIO
    order_type: OrderType = OrderType.MARKET
    time_in_force: TimeInForce = TimeInForce.GTC
    check_interval: float = 10.0
    stop_loss_percent: float = 0.05
    take_profit_rate: float = 1.0
    min_margin: float = 5.0
    treat_pending_as_filled: bool = True

    def __post_init__(self):
        """Validate configuration parameters."""
        for name in ('lower', 'upper', 'grid_count', 'size_per_grid'):
            if getattr(self, name) is None:
                raise ConfigurationError(f"missing required configuration field: {name}")
        if self.lower <= 0:
            raise ConfigurationError(f"lower must be positive, got {self.lower}")
        if self.lower >= self.upper:
            raise ConfigurationError(
                f"lower must be below upper, got lower={self.lower} upper={self.upper}"
            )
        if isinstance(self.grid_count, bool) or not isinstance(self.grid_count, int):
            raise ConfigurationError(f"grid_count must be an integer, got {self.grid_count!r}")
        if self.grid_count < 1:
            raise ConfigurationError(f"grid_count must be at least 1, got {self.grid_count}")
        if self.size_per_grid <= 0:
            raise ConfigurationError(f"size_per_grid must be positive, got {self.size_per_grid}")
        if self.leverage < 1:
            raise ConfigurationError(f"leverage must be at least 1, got {self.leverage}")
        if self.check_interval <= 0:
            raise ConfigurationError(f"check_interval must be positive, got {self.check_interval}")
        if not (0 < self.stop_loss_percent < 1):
            raise ConfigurationError(
                f"stop_loss_percent must be between 0 and 1, got {self.stop_loss_percent}"
            )
        if self.take_profit_rate <= 0:
            raise ConfigurationError(f"take_profit_rate must be positive, got {self.take_profit_rate}")
        if self.min_margin < 0:
            raise ConfigurationError(f"min_margin must not be negative, got {self.min_margin}")

        # Accept plain strings from loaders (e.g. 'short', 'quantity')
        for name, enum_type in (
            ('direction', Direction),
            ('size_mode', SizeMode),
            ('margin_mode', MarginMode),
            ('order_type', OrderType),
            ('time_in_force', TimeInForce),
        ):
            value = getattr(self, name)
            try:
                object.__setattr__(self, name, enum_type(value))
            except ValueError:
                raise ConfigurationError(f"invalid {name}: {value!r}") from None

    @property
    def step(self) -> float:
        """Price distance between adjacent levels."""
        return (self.upper - self.lower) / self.grid_count

    @property
    def level_count(self) -> int:
        """Number of price levels (grid_count + 1)."""
        return self.grid_count + 1

    def fingerprint(self) -> dict:
        """
        Configuration subset that persisted state must match to be restored.

        Returns:
            Dict with lower, upper, count and sizePerGrid
        """
        return {
            'lower': self.lower,
            'upper': self.upper,
            'count': self.grid_count,
            'sizePerGrid': self.size_per_grid,
        }
