"""Pure profit and margin calculation functions.

Single source of truth for the per-level profit and order margin formulas.
All functions are pure (no side effects, no state).
"""

from gridengine.config import Direction, SizeMode


def calc_profit(
    direction: Direction,
    size_mode: SizeMode,
    size: float,
    entry_price: float,
    exit_price: float,
) -> float:
    """Calculate realized profit for closing one grid level.

    NOTIONAL sizing (quote currency):
        LONG:  size * (exit - entry) / entry
        SHORT: size * (entry - exit) / entry

    QUANTITY sizing (base asset):
        LONG:  (exit - entry) * size
        SHORT: (entry - exit) * size

    Args:
        direction: Grid direction
        size_mode: How size is denominated
        size: Position size recorded at entry
        entry_price: Price the level was entered at
        exit_price: Price the level is closed at

    Returns:
        Realized profit in quote currency (negative for a loss)

    Raises:
        ValueError: If entry_price is not positive
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")

    move = exit_price - entry_price
    if direction == Direction.SHORT:
        move = -move

    if size_mode == SizeMode.QUANTITY:
        return move * size
    return size * move / entry_price


def calc_profit_pct(direction: Direction, entry_price: float, exit_price: float) -> float:
    """Price move in the profitable direction, as a percentage of entry."""
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    change = (exit_price - entry_price) / entry_price
    if direction == Direction.SHORT:
        change = -change
    return change * 100


def calc_notional(size_mode: SizeMode, size: float, price: float) -> float:
    """Quote-currency value of a level's size at price."""
    if size_mode == SizeMode.QUANTITY:
        return size * price
    return size


def calc_order_margin(notional: float, price: float, leverage: int, min_margin: float = 5.0) -> float:
    """Calculate order margin in base-currency units.

    margin = notional / (price * leverage), floored at min_margin quote
    currency converted to base units at price, to satisfy exchange minimums.

    Args:
        notional: Order value in quote currency
        price: Current price
        leverage: Leverage multiplier
        min_margin: Minimum margin in quote currency

    Returns:
        Margin in base-currency units
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    if leverage < 1:
        raise ValueError(f"leverage must be at least 1, got {leverage}")

    margin = notional / (price * leverage)
    min_margin_base = min_margin / price
    return max(margin, min_margin_base)
