"""
Append-only trade log.

Every executed order produces one TradeRecord, written as a single JSON line.
The engine never reads the log back; it exists for audit and history.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional

from gridengine.config import Direction
from gridengine.intents import TradeAction
from gridengine.persistence import file_stem

logger = logging.getLogger(__name__)


def trade_type(action: TradeAction, direction: Direction) -> str:
    """Map an action to the trade label used in the log ('BUY', 'SELL_SHORT', ...)."""
    if direction == Direction.LONG:
        return 'BUY' if action == TradeAction.ENTRY else 'SELL'
    return 'SELL_SHORT' if action == TradeAction.ENTRY else 'BUY_COVER'


@dataclass(frozen=True)
class TradeRecord:
    """One executed order. Exit-only fields stay None on entries."""
    symbol: str
    market_index: int
    direction: Direction
    action: TradeAction
    level: int
    price: float
    size: float
    order_id: Optional[str] = None
    order_status: Optional[str] = None
    order_margin: Optional[float] = None
    leverage: Optional[int] = None
    entry_price: Optional[float] = None
    profit: Optional[float] = None
    profit_percent: Optional[float] = None
    total_profit: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def trade_type(self) -> str:
        return trade_type(self.action, self.direction)

    def to_dict(self) -> dict:
        data = {
            'timestamp': self.timestamp.isoformat(),
            'timestampMs': int(self.timestamp.timestamp() * 1000),
            'symbol': self.symbol,
            'marketIndex': self.market_index,
            'direction': str(self.direction),
            'action': str(self.action),
            'type': self.trade_type,
            'gridLevel': self.level,
            'price': self.price,
            'size': self.size,
            'orderId': self.order_id,
            'orderStatus': self.order_status,
        }
        optional = {
            'orderMargin': self.order_margin,
            'leverage': self.leverage,
            'entryPrice': self.entry_price,
            'profit': self.profit,
            'profitPercent': self.profit_percent,
            'totalProfit': self.total_profit,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


class TradeLedger:
    """
    JSON-lines trade log for one engine.

    File name mirrors the state file: '.trade-log-BTCUSD-0.jsonl' for long
    grids and '.trade-log-short-BTCUSD-0.jsonl' for short grids.
    """

    def __init__(self, directory: str, symbol: str, market_index: int,
                 direction: Direction = Direction.LONG):
        self.symbol = symbol
        self.market_index = market_index
        self.direction = Direction(direction)
        self._path = os.path.join(
            directory, '.' + file_stem('trade-log', symbol, market_index, self.direction) + '.jsonl'
        )

    @property
    def path(self) -> str:
        return self._path

    def append(self, record: TradeRecord) -> bool:
        """
        Append one record as a JSON line.

        Failures are logged; the trade itself already happened, so the engine
        carries on.

        Returns:
            True if the line was written
        """
        try:
            dir_path = os.path.dirname(self._path)
            if dir_path and not os.path.exists(dir_path):
                os.makedirs(dir_path, exist_ok=True)
            line = json.dumps(record.to_dict())
            with open(self._path, 'a') as f:
                f.write(line + '\n')
        except (OSError, TypeError, ValueError) as e:
            logger.error('Failed to append trade to %s: %s', self._path, e)
            return False

        logger.debug('Trade recorded: %s level %d', record.trade_type, record.level)
        return True
