"""
Tests for GridStateStore persistence functionality.
"""

import json
import os
from dataclasses import replace
from unittest.mock import patch

import pytest

from gridengine.config import Direction, GridConfig
from gridengine.grid import GridLevel
from gridengine.persistence import EngineState, GridStateStore, safe_symbol


def _state(config, symbol="BTCUSDT", market_index=0, direction=Direction.LONG):
    levels = [GridLevel(index=i, price=100.0 + 5.0 * i) for i in range(5)]
    levels[1] = GridLevel(index=1, price=105.0, has_position=True, entry_price=107.0, size=10.0)
    levels[3] = GridLevel(index=3, price=115.0, has_position=True, entry_price=114.0, size=10.0)
    return EngineState(
        symbol=symbol,
        market_index=market_index,
        direction=direction,
        fingerprint=config.fingerprint(),
        total_profit=1.25,
        entry_count=4,
        exit_count=2,
        levels=levels,
    )


class TestFilePath:
    """Deterministic per symbol/market/direction file names."""

    def test_long_path(self, tmp_path):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        assert store.file_path == os.path.join(str(tmp_path), ".grid-state-BTCUSDT-0.json")

    def test_short_path(self, tmp_path):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0, Direction.SHORT)
        assert store.file_path == os.path.join(str(tmp_path), ".grid-state-short-BTCUSDT-0.json")

    def test_distinct_pairs_do_not_collide(self, tmp_path):
        paths = {
            GridStateStore(str(tmp_path), "BTCUSDT", 0).file_path,
            GridStateStore(str(tmp_path), "BTCUSDT", 1).file_path,
            GridStateStore(str(tmp_path), "ETHUSDT", 0).file_path,
            GridStateStore(str(tmp_path), "BTC/USDT", 0).file_path,
            GridStateStore(str(tmp_path), "BTC-USDT", 0).file_path,
        }
        assert len(paths) == 5

    def test_safe_symbol(self):
        assert safe_symbol("SOL_USDC") == "SOL_USDC"
        assert "/" not in safe_symbol("BTC/USDT")
        assert safe_symbol("BTC/USDT") != safe_symbol("BTC:USDT")


class TestSaveAndLoad:
    """Round trip and validation on load."""

    def test_save_and_load(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        state = _state(grid_config)

        assert store.save(state) is True
        loaded = store.load(grid_config)

        assert loaded is not None
        assert loaded.total_profit == 1.25
        assert loaded.entry_count == 4
        assert loaded.exit_count == 2
        assert [(lv.index, lv.entry_price, lv.size) for lv in loaded.holding_levels] == [
            (1, 107.0, 10.0), (3, 114.0, 10.0),
        ]

    def test_json_layout(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        store.save(_state(grid_config))

        with open(store.file_path) as f:
            data = json.load(f)

        assert set(data) == {
            "timestamp", "symbol", "marketIndex", "direction", "gridConfig",
            "totalProfit", "counts", "levels",
        }
        assert data["gridConfig"] == {"lower": 100.0, "upper": 120.0, "count": 4, "sizePerGrid": 10.0}
        assert data["counts"] == {"entries": 4, "exits": 2}
        assert data["levels"][1] == {
            "index": 1, "price": 105.0, "hasPosition": True, "entryPrice": 107.0, "size": 10.0,
        }

    def test_save_creates_directory(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path / "nested" / "state"), "BTCUSDT", 0)

        assert store.save(_state(grid_config)) is True
        assert store.exists()

    def test_save_replaces_previous_file(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        store.save(_state(grid_config))
        store.save(replace(_state(grid_config), total_profit=9.0))

        assert store.load(grid_config).total_profit == 9.0
        assert not os.path.exists(store.file_path + ".tmp")

    def test_load_missing_file(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)

        assert store.load(grid_config) is None

    def test_load_corrupt_file(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        with open(store.file_path, "w") as f:
            f.write("{not json")

        assert store.load(grid_config) is None

    def test_load_malformed_structure(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        with open(store.file_path, "w") as f:
            json.dump({"symbol": "BTCUSDT"}, f)

        assert store.load(grid_config) is None

    @pytest.mark.parametrize("change", [
        {"grid_count": 5},
        {"lower": 95.0},
        {"upper": 125.0},
        {"size_per_grid": 20.0},
    ])
    def test_fingerprint_mismatch_discards_state(self, tmp_path, grid_config, change):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        store.save(_state(grid_config))

        changed = replace(grid_config, **change)

        assert store.load(changed) is None

    def test_non_fingerprint_change_keeps_state(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        store.save(_state(grid_config))

        assert store.load(replace(grid_config, leverage=3, check_interval=30.0)) is not None

    def test_symbol_mismatch_discards_state(self, tmp_path, grid_config):
        """A file written for another symbol (e.g. copied by hand) is ignored."""
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        store.save(_state(grid_config, symbol="ETHUSDT"))

        assert store.load(grid_config) is None

    def test_direction_mismatch_discards_state(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        store.save(_state(grid_config, direction=Direction.SHORT))

        assert store.load(grid_config) is None


class TestErrors:
    """I/O failures are logged, not raised."""

    def test_save_failure_returns_false(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)

        with patch("gridengine.persistence.open", side_effect=OSError("disk full"), create=True):
            assert store.save(_state(grid_config)) is False

        assert not store.exists()

    def test_delete(self, tmp_path, grid_config):
        store = GridStateStore(str(tmp_path), "BTCUSDT", 0)
        assert store.delete() is False

        store.save(_state(grid_config))
        assert store.delete() is True
        assert store.load(grid_config) is None


class TestEngineStateDict:

    def test_from_dict_defaults(self):
        state = EngineState.from_dict({
            "symbol": "BTCUSDT",
            "marketIndex": 2,
            "gridConfig": {"lower": 1.0, "upper": 2.0, "count": 1, "sizePerGrid": 1.0},
        })

        assert state.direction == Direction.LONG
        assert state.total_profit == 0.0
        assert state.levels == []

    def test_round_trip_config_equality(self, grid_config):
        data = json.loads(json.dumps(_state(grid_config).to_dict()))

        assert EngineState.from_dict(data).fingerprint == grid_config.fingerprint()
