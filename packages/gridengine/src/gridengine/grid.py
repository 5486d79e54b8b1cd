"""
Grid levels and entry/exit eligibility rules.

The grid is a fixed set of grid_count + 1 equally spaced price levels between
the configured bounds. Each level carries its own position state. The rules
deciding where positions may be opened and closed live here so they can be
tested without any exchange or event loop.
"""

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Iterable, Optional

from gridengine.config import Direction, GridConfig

logger = logging.getLogger(__name__)


class LevelState(StrEnum):
    """Lifecycle of a single grid level."""
    EMPTY = 'empty'
    ENTERING = 'entering'
    HOLDING = 'holding'
    EXITING = 'exiting'


@dataclass
class GridLevel:
    """
    Position state at one grid price.

    entry_in_flight/exit_in_flight are set while an order for this level is
    being submitted and prevent a second submission at the same level. They
    stay set while the order rests on the book (pending_order_id) until the
    engine learns whether it filled.
    """
    index: int
    price: float
    has_position: bool = False
    entry_price: float = 0.0
    size: float = 0.0
    entry_in_flight: bool = False
    exit_in_flight: bool = False
    order_id: Optional[str] = None
    pending_order_id: Optional[str] = None
    pending_price: float = 0.0

    @property
    def state(self) -> LevelState:
        if self.entry_in_flight:
            return LevelState.ENTERING
        if self.exit_in_flight:
            return LevelState.EXITING
        if self.has_position:
            return LevelState.HOLDING
        return LevelState.EMPTY

    def open(self, entry_price: float, size: float, order_id: Optional[str]) -> None:
        """Commit a filled entry."""
        self.has_position = True
        self.entry_price = entry_price
        self.size = size
        self.order_id = order_id
        self.entry_in_flight = False
        self._clear_pending()

    def close(self, order_id: Optional[str]) -> None:
        """Commit a filled exit."""
        self.has_position = False
        self.entry_price = 0.0
        self.size = 0.0
        self.order_id = order_id
        self.exit_in_flight = False
        self._clear_pending()

    @property
    def awaiting_fill(self) -> bool:
        return self.pending_order_id is not None

    def hold_pending(self, order_id: Optional[str], price: float) -> None:
        """Keep the in-flight flag while order_id rests on the book."""
        self.pending_order_id = order_id
        self.pending_price = price

    def release(self) -> None:
        """Drop a pending order that will not fill; the position is unchanged."""
        self.entry_in_flight = False
        self.exit_in_flight = False
        self._clear_pending()

    def _clear_pending(self) -> None:
        self.pending_order_id = None
        self.pending_price = 0.0

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'price': self.price,
            'hasPosition': self.has_position,
            'entryPrice': self.entry_price,
            'size': self.size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'GridLevel':
        return cls(
            index=int(data['index']),
            price=float(data['price']),
            has_position=bool(data.get('hasPosition', False)),
            entry_price=float(data.get('entryPrice', 0.0)),
            size=float(data.get('size', 0.0)),
        )


def build_levels(config: GridConfig) -> list[GridLevel]:
    """
    Generate grid_count + 1 equally spaced levels from lower to upper inclusive.

    The last level is pinned to upper so that accumulated floating-point
    error never moves the top of the grid.
    """
    step = config.step
    levels = []
    for i in range(config.grid_count + 1):
        price = config.upper if i == config.grid_count else config.lower + step * i
        levels.append(GridLevel(index=i, price=price))
    return levels


class Grid:
    """
    Ordered collection of GridLevel objects plus the decision rules.

    For LONG grids, positions are opened as price falls and closed one level
    higher. SHORT grids apply the mirrored comparisons.
    """

    def __init__(self, config: GridConfig):
        self.config = config
        self.direction = config.direction
        self._levels: list[GridLevel] = build_levels(config)

        logger.debug(
            'Grid initialized: %d levels %s-%s (%s)',
            len(self._levels), config.lower, config.upper, self.direction,
        )

    def __len__(self) -> int:
        return len(self._levels)

    def __getitem__(self, index: int) -> GridLevel:
        return self._levels[index]

    @property
    def top_index(self) -> int:
        return len(self._levels) - 1

    @property
    def prices(self) -> list[float]:
        return [level.price for level in self._levels]

    def snapshot(self) -> list[GridLevel]:
        """Return copies of all levels; mutating them does not touch the grid."""
        return [replace(level) for level in self._levels]

    def contains(self, price: float) -> bool:
        """Whether price is inside [lower, upper]; the grid is inactive outside."""
        return self.config.lower <= price <= self.config.upper

    def has_any_position(self) -> bool:
        return any(level.has_position for level in self._levels)

    def holding_levels(self) -> list[GridLevel]:
        return [level for level in self._levels if level.has_position]

    def pending_levels(self) -> list[GridLevel]:
        """Levels whose last order is resting on the book."""
        return [level for level in self._levels if level.awaiting_fill]

    def closest_index(self, price: float, levels: Optional[list[GridLevel]] = None) -> int:
        """
        Index of the level whose price is closest to price.

        Ties resolve to the lower index (first minimum found).
        """
        levels = levels if levels is not None else self._levels
        closest = 0
        min_diff = abs(levels[0].price - price)
        for level in levels[1:]:
            diff = abs(level.price - price)
            if diff < min_diff:
                min_diff = diff
                closest = level.index
        return closest

    def entry_reason(self, index: int, price: float,
                     levels: Optional[list[GridLevel]] = None) -> Optional[str]:
        """
        Decide whether level index may open a position at price.

        Args:
            index: Level index
            price: Current market price
            levels: Level states to decide from (defaults to the live grid)

        Returns:
            'bootstrap', 'boundary' or 'chain' when eligible, None otherwise
        """
        levels = levels if levels is not None else self._levels
        level = levels[index]
        if level.has_position or level.entry_in_flight or level.exit_in_flight:
            return None

        if not any(lv.has_position or lv.entry_in_flight for lv in levels):
            # First position is opened nearest the market
            if index == self.closest_index(price, levels):
                return 'bootstrap'
            return None

        top = self.top_index
        if self.direction == Direction.LONG:
            if price > level.price:
                return None
            if index == 0:
                return 'boundary'
            if index < top and levels[index + 1].has_position:
                return 'chain'
            return None

        if price < level.price:
            return None
        if index == top:
            return 'boundary'
        if index > 0 and levels[index - 1].has_position:
            return 'chain'
        return None

    def entry_eligible(self, index: int, price: float,
                       levels: Optional[list[GridLevel]] = None) -> bool:
        return self.entry_reason(index, price, levels) is not None

    def exit_eligible(self, index: int, price: float,
                      levels: Optional[list[GridLevel]] = None) -> bool:
        """
        Decide whether a holding level may close at price.

        Exit requires price to reach the next level in the profitable
        direction, so every closed position spans at least one grid step.
        The boundary level (top for LONG, bottom for SHORT) never exits.
        """
        levels = levels if levels is not None else self._levels
        level = levels[index]
        if not level.has_position or level.exit_in_flight or level.entry_in_flight:
            return False

        if self.direction == Direction.LONG:
            if index >= self.top_index:
                return False
            return price >= levels[index + 1].price

        if index <= 0:
            return False
        return price <= levels[index - 1].price

    def restore(self, saved_levels: Iterable[GridLevel]) -> int:
        """
        Repopulate holding levels from persisted state.

        Only levels with has_position are restored; in-flight flags always
        start cleared. A holding level without a positive entry price and
        size cannot be closed and is skipped.

        Returns:
            Number of restored positions
        """
        restored = 0
        for saved in saved_levels:
            if not saved.has_position:
                continue
            if not (0 <= saved.index < len(self._levels)):
                logger.warning('Ignoring persisted level %d outside grid', saved.index)
                continue
            if saved.entry_price <= 0 or saved.size <= 0:
                logger.warning(
                    'Ignoring persisted level %d with entry price %s and size %s',
                    saved.index, saved.entry_price, saved.size,
                )
                continue
            level = self._levels[saved.index]
            level.has_position = True
            level.entry_price = saved.entry_price
            level.size = saved.size
            level.entry_in_flight = False
            level.exit_in_flight = False
            restored += 1
        return restored
