"""
Trade intent models for the grid engine.

Intents represent what the decision step wants to do at a given price
without performing it. GridEngine.evaluate() returns intents and the
execution step turns them into orders one at a time.

This separation keeps the eligibility rules pure and testable.
"""

from dataclasses import dataclass
from enum import StrEnum


class TradeAction(StrEnum):
    """Open a position at a level, or close it."""
    ENTRY = 'entry'
    EXIT = 'exit'


@dataclass(frozen=True)
class TradeIntent:
    """
    Intent to enter or exit one grid level.

    Attributes:
        action: ENTRY or EXIT
        level: Grid level index
        level_price: Price of the grid level
        price: Market price that triggered the intent (orders execute here)
        reason: 'bootstrap', 'chain' or 'boundary' for entries, 'take_profit' for exits
    """
    action: TradeAction
    level: int
    level_price: float
    price: float
    reason: str

    @property
    def is_entry(self) -> bool:
        return self.action == TradeAction.ENTRY
