"""
Grid state persistence for keeping positions across restarts.

This module provides file-based persistence of the engine's level states and
cumulative statistics, one JSON file per symbol + market (+ direction), so
several engines can share a state directory.
"""

import hashlib
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Optional

from gridengine.config import Direction, GridConfig
from gridengine.grid import GridLevel

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.]+')


def safe_symbol(symbol: str) -> str:
    """
    Make a symbol usable in a file name.

    Symbols that need sanitizing get a short hash suffix so that two
    different symbols never map to the same file.
    """
    cleaned = _UNSAFE_CHARS.sub('-', symbol).strip('-')
    if cleaned == symbol:
        return symbol
    digest = hashlib.sha256(symbol.encode()).hexdigest()[:8]
    return f'{cleaned}-{digest}'


def file_stem(prefix: str, symbol: str, market_index: int, direction: Direction) -> str:
    """Deterministic '<prefix>[-short]-<symbol>-<market>' name shared by state and trade log."""
    kind = f'{prefix}-short' if direction == Direction.SHORT else prefix
    return f'{kind}-{safe_symbol(symbol)}-{market_index}'


@dataclass
class EngineState:
    """
    Persisted engine state.

    Only levels with has_position matter on restore; the rest default to
    empty when the grid is rebuilt.
    """
    symbol: str
    market_index: int
    direction: Direction
    fingerprint: dict
    total_profit: float = 0.0
    entry_count: int = 0
    exit_count: int = 0
    levels: list[GridLevel] = field(default_factory=list)
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def holding_levels(self) -> list[GridLevel]:
        return [level for level in self.levels if level.has_position]

    def to_dict(self) -> dict:
        return {
            'timestamp': self.timestamp,
            'symbol': self.symbol,
            'marketIndex': self.market_index,
            'direction': str(self.direction),
            'gridConfig': dict(self.fingerprint),
            'totalProfit': self.total_profit,
            'counts': {
                'entries': self.entry_count,
                'exits': self.exit_count,
            },
            'levels': [level.to_dict() for level in self.levels],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EngineState':
        """
        Parse a persisted state dict.

        Raises:
            KeyError, TypeError, ValueError: If the dict is malformed
        """
        counts = data.get('counts') or {}
        return cls(
            symbol=data['symbol'],
            market_index=data['marketIndex'],
            direction=Direction(data.get('direction', Direction.LONG)),
            fingerprint=dict(data['gridConfig']),
            total_profit=float(data.get('totalProfit', 0.0)),
            entry_count=int(counts.get('entries', 0)),
            exit_count=int(counts.get('exits', 0)),
            levels=[GridLevel.from_dict(level) for level in data.get('levels', [])],
            timestamp=int(data.get('timestamp', 0)),
        )


class GridStateStore:
    """
    File-based storage for one engine's state.

    The file path is derived from symbol, market index and direction:
    '.grid-state-BTCUSD-0.json' for long grids and
    '.grid-state-short-BTCUSD-0.json' for short grids.

    Operators may delete the file to force a cold start; the engine never does.
    """

    def __init__(self, directory: str, symbol: str, market_index: int,
                 direction: Direction = Direction.LONG):
        """
        Initialize state store.

        Args:
            directory: Directory holding state files
            symbol: Trading symbol
            market_index: Market identifier on the exchange
            direction: Grid direction
        """
        self.symbol = symbol
        self.market_index = market_index
        self.direction = Direction(direction)
        self.file_path = os.path.join(
            directory, '.' + file_stem('grid-state', symbol, market_index, self.direction) + '.json'
        )

    def exists(self) -> bool:
        return os.path.exists(self.file_path)

    def save(self, state: EngineState) -> bool:
        """
        Write state to disk, replacing any previous file atomically.

        Write failures are logged and reported through the return value; the
        engine keeps running on its in-memory state.

        Returns:
            True if the state was written
        """
        tmp_path = f'{self.file_path}.tmp'
        try:
            dir_path = os.path.dirname(self.file_path)
            if dir_path and not os.path.exists(dir_path):
                os.makedirs(dir_path, exist_ok=True)

            with open(tmp_path, 'w') as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.file_path)
        except (OSError, TypeError, ValueError) as e:
            logger.error('Failed to save state to %s: %s', self.file_path, e)
            return False

        logger.debug('State saved: %s', self.file_path)
        return True

    def load(self, config: GridConfig) -> Optional[EngineState]:
        """
        Load persisted state if it matches the live configuration.

        Args:
            config: Live grid configuration

        Returns:
            EngineState, or None if the file is absent, unreadable, malformed,
            or was written for a different symbol/market/direction/grid
        """
        if not os.path.exists(self.file_path):
            logger.info('No saved state at %s, starting fresh', self.file_path)
            return None

        try:
            with open(self.file_path, 'r') as f:
                data = json.load(f)
            state = EngineState.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error('Failed to load state from %s: %s; starting fresh', self.file_path, e)
            return None

        if not self._matches(state, config):
            logger.warning(
                'Saved state does not match configuration, starting fresh '
                '(saved: %s %s %s %s; current: %s %s %s %s)',
                state.symbol, state.market_index, state.direction, state.fingerprint,
                self.symbol, self.market_index, self.direction, config.fingerprint(),
            )
            return None

        return state

    def _matches(self, state: EngineState, config: GridConfig) -> bool:
        return (
            state.symbol == self.symbol
            and state.market_index == self.market_index
            and state.direction == self.direction
            and state.fingerprint == config.fingerprint()
        )

    def delete(self) -> bool:
        """
        Delete the state file.

        Returns:
            True if deleted, False if not found
        """
        if not os.path.exists(self.file_path):
            return False
        try:
            os.remove(self.file_path)
        except OSError as e:
            logger.error('Failed to delete state file %s: %s', self.file_path, e)
            return False
        return True
