"""Configuration models for gridrunner.

Loads strategy and account configuration from a YAML file with Pydantic
validation, and runtime settings from the environment (GRIDRUNNER_ prefix).
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gridengine import (
    Direction,
    GridConfig,
    MarginMode,
    OrderType,
    SizeMode,
    TimeInForce,
)


def is_placeholder(value: str) -> bool:
    """Whether a credential still holds a template value like 'your_api_key_here'."""
    stripped = value.strip()
    return not stripped or stripped.lower().startswith("your_")


class AccountConfig(BaseModel):
    """Exchange account configuration."""

    name: str = Field(..., description="Unique account identifier")
    api_key: str = Field(..., description="Bybit API key")
    api_secret: str = Field(..., description="Bybit API secret")
    testnet: bool = Field(default=True, description="Use testnet endpoints")
    hedge_mode: bool = Field(default=True, description="Account uses hedge position mode")

    @field_validator("api_key", "api_secret")
    @classmethod
    def reject_placeholder(cls, v: str, info):
        """Refuse template credentials copied from the example config."""
        if is_placeholder(v):
            raise ValueError(f"{info.field_name} is not configured")
        return v


class StrategyConfig(BaseModel):
    """Grid strategy configuration."""

    name: str = Field(default="", description="Strategy name (filled from the mapping key)")
    description: Optional[str] = Field(default=None, description="Free-form note")
    account: str = Field(..., description="Account name reference")
    symbol: str = Field(..., min_length=1, description="Trading pair (e.g., BTCUSDT)")
    market_index: int = Field(..., ge=0, description="Market identifier on the exchange")
    direction: Direction = Field(default=Direction.LONG, description="long or short grid")

    # Grid parameters
    grid_lower: float = Field(..., gt=0, description="Lowest grid price")
    grid_upper: float = Field(..., gt=0, description="Highest grid price")
    grid_count: int = Field(..., ge=1, description="Number of grid intervals")

    # Position sizing
    size_per_grid: float = Field(..., gt=0, description="Size per level, see size_mode")
    size_mode: SizeMode = Field(default=SizeMode.NOTIONAL, description="notional (USDT) or quantity (base)")
    qty_step: Optional[str] = Field(default=None, description="Lot size override; fetched from the exchange if unset")

    # Orders
    order_type: OrderType = Field(default=OrderType.MARKET)
    time_in_force: TimeInForce = Field(default=TimeInForce.GTC)
    leverage: int = Field(default=10, ge=1)
    margin_mode: MarginMode = Field(default=MarginMode.PORTFOLIO)
    take_profit_rate: float = Field(default=1.0, gt=0)
    min_margin: float = Field(default=5.0, ge=0, description="Minimum order margin in USDT")
    treat_pending_as_filled: bool = Field(default=True)

    # Timing and risk
    check_interval: float = Field(default=10.0, gt=0, description="Seconds between price checks")
    stop_loss_percent: float = Field(default=0.05, gt=0, lt=1, description="Reported, not enforced")

    enabled: bool = Field(default=True, description="Included when running 'all'")

    @field_validator("direction", "size_mode", "margin_mode", mode="before")
    @classmethod
    def lowercase_enum(cls, v):
        """Accept LONG/SHORT style values."""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("qty_step", mode="before")
    @classmethod
    def qty_step_to_str(cls, v):
        """YAML may parse 0.001 as a float; keep the exact text."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @model_validator(mode="after")
    def validate_bounds(self):
        """Ensure grid_lower < grid_upper."""
        if self.grid_lower >= self.grid_upper:
            raise ValueError(
                f"grid_lower ({self.grid_lower}) must be below grid_upper ({self.grid_upper})"
            )
        return self

    @property
    def total_investment(self) -> float:
        """Notional committed if every interval holds a position (notional sizing only)."""
        return self.size_per_grid * self.grid_count

    def to_grid_config(self) -> GridConfig:
        """Build the engine configuration."""
        return GridConfig(
            lower=self.grid_lower,
            upper=self.grid_upper,
            grid_count=self.grid_count,
            size_per_grid=self.size_per_grid,
            direction=self.direction,
            size_mode=self.size_mode,
            leverage=self.leverage,
            margin_mode=self.margin_mode,
            order_type=self.order_type,
            time_in_force=self.time_in_force,
            check_interval=self.check_interval,
            stop_loss_percent=self.stop_loss_percent,
            take_profit_rate=self.take_profit_rate,
            min_margin=self.min_margin,
            treat_pending_as_filled=self.treat_pending_as_filled,
        )


class RunnerConfig(BaseModel):
    """Root configuration for gridrunner."""

    accounts: list[AccountConfig] = Field(default_factory=list)
    strategies: dict[str, StrategyConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_references(self):
        """Name strategies after their keys and check account references."""
        account_names = [acc.name for acc in self.accounts]
        if len(account_names) != len(set(account_names)):
            raise ValueError("Account names must be unique")

        for key, strategy in self.strategies.items():
            if not strategy.name:
                strategy.name = key
            if strategy.account not in account_names:
                raise ValueError(
                    f"Strategy '{key}' references unknown account '{strategy.account}'"
                )
        return self

    def get_account(self, name: str) -> Optional[AccountConfig]:
        """Get account config by name."""
        for acc in self.accounts:
            if acc.name == name:
                return acc
        return None

    def select(self, names: list[str]) -> tuple[list[StrategyConfig], list[str]]:
        """Resolve strategy names given on the command line.

        Args:
            names: Strategy keys, or ["all"] for every enabled strategy.

        Returns:
            Tuple of (strategies in the requested order, unknown names)
        """
        if "all" in names:
            return [s for s in self.strategies.values() if s.enabled], []

        selected, unknown = [], []
        for name in dict.fromkeys(names):
            if name in self.strategies:
                selected.append(self.strategies[name])
            else:
                unknown.append(name)
        return selected, unknown


class RunnerSettings(BaseSettings):
    """Runtime settings for gridrunner.

    Environment variables:
    - GRIDRUNNER_CONFIG_PATH: YAML config path (default: search conf/gridrunner.yaml, gridrunner.yaml)
    - GRIDRUNNER_STATE_DIR: Directory for state files and trade logs (default: state)
    - GRIDRUNNER_MIN_REQUEST_INTERVAL: Seconds between API requests across all engines (default: 5.0)
    - GRIDRUNNER_RETRY_ATTEMPTS: Attempts per price/account request (default: 3)
    - GRIDRUNNER_RETRY_DELAY: Seconds between attempts (default: 5.0)
    - GRIDRUNNER_ORDER_PAUSE: Seconds between orders within a cycle (default: 1.0)
    - GRIDRUNNER_START_GAP: Seconds between starting strategies (default: 3.0)
    - GRIDRUNNER_STATUS_INTERVAL: Seconds between status reports (default: 300)
    """

    config_path: Optional[str] = None
    state_dir: str = "state"

    # API pacing
    min_request_interval: float = Field(default=5.0, ge=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=5.0, ge=0)
    order_pause: float = Field(default=1.0, ge=0)

    # Supervisor timing
    start_gap: float = Field(default=3.0, ge=0)
    status_interval: float = Field(default=300.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="GRIDRUNNER_",
        env_file=".env",
        extra="ignore",
    )


def load_config(config_path: Optional[str] = None) -> RunnerConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, checks:
            1. GRIDRUNNER_CONFIG_PATH environment variable
            2. conf/gridrunner.yaml
            3. gridrunner.yaml

    Returns:
        Validated RunnerConfig

    Raises:
        FileNotFoundError: If no config file found
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = os.environ.get("GRIDRUNNER_CONFIG_PATH")

    if config_path is None:
        # Search default locations
        search_paths = [
            Path("conf/gridrunner.yaml"),
            Path("gridrunner.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    if config_path is None:
        raise FileNotFoundError(
            "No config file found. Set GRIDRUNNER_CONFIG_PATH or create conf/gridrunner.yaml"
        )

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    return RunnerConfig(**data)
