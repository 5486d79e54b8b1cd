"""Supervisor for running several grid engines in one process.

The supervisor is the main entry point for gridrunner. It:
- Creates one REST client per account
- Builds a GridEngine per selected strategy
- Checks account access and sets leverage before starting each engine
- Staggers engine start times so their polls do not line up
- Logs a periodic status report for every running engine
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

from bybit_adapter.exchange_client import BybitExchangeClient
from bybit_adapter.rest_client import BybitRestClient
from gridengine import (
    GridEngine,
    GridStateStore,
    RateLimiter,
    RepeatingTask,
    RetryPolicy,
    TradeLedger,
)

from gridrunner.config import AccountConfig, RunnerConfig, RunnerSettings, StrategyConfig

_FIRST_STATUS_DELAY = 10.0  # seconds


logger = logging.getLogger(__name__)


def default_client_factory(account: AccountConfig) -> BybitRestClient:
    """Create the REST client for an account."""
    return BybitRestClient(
        api_key=account.api_key,
        api_secret=account.api_secret,
        testnet=account.testnet,
    )


class Supervisor:
    """Starts, monitors and stops the engines of the selected strategies.

    All engines share one RateLimiter and one RetryPolicy, so the request
    spacing holds across the whole process rather than per engine.

    Example:
        config = load_config("conf/gridrunner.yaml")
        supervisor = Supervisor(config, RunnerSettings())

        strategies, _ = config.select(["btc_long"])
        await supervisor.start(strategies)
        ...
        await supervisor.stop()
    """

    def __init__(
        self,
        config: RunnerConfig,
        settings: Optional[RunnerSettings] = None,
        client_factory: Callable[[AccountConfig], BybitRestClient] = default_client_factory,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize supervisor.

        Args:
            config: Accounts and strategies.
            settings: Runtime settings (defaults from the environment).
            client_factory: Builds the REST client for an account.
            sleep: Async sleep function, used for the gap between starts.
        """
        self._config = config
        self._settings = settings or RunnerSettings()
        self._client_factory = client_factory
        self._sleep = sleep

        self._rate_limiter = RateLimiter(min_interval=self._settings.min_request_interval)
        self._retry_policy = RetryPolicy(
            max_attempts=self._settings.retry_attempts,
            delay=self._settings.retry_delay,
        )

        self._rest_clients: dict[str, BybitRestClient] = {}  # account_name -> client
        self._engines: dict[str, GridEngine] = {}  # strategy name -> engine
        self._status_task: Optional[RepeatingTask] = None
        self._running = False

    @property
    def running(self) -> bool:
        """Whether the supervisor has running engines."""
        return self._running

    @property
    def engines(self) -> dict[str, GridEngine]:
        """Started engines by strategy name."""
        return dict(self._engines)

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def _get_rest_client(self, account_name: str) -> BybitRestClient:
        client = self._rest_clients.get(account_name)
        if client is None:
            account = self._config.get_account(account_name)
            if account is None:
                raise ValueError(f"Unknown account: {account_name}")
            client = self._client_factory(account)
            self._rest_clients[account_name] = client
            logger.info(f"Initialized account: {account_name} (testnet={account.testnet})")
        return client

    def build_engine(self, strategy: StrategyConfig) -> GridEngine:
        """Create the engine for a strategy, restoring any saved state.

        Raises:
            ConfigurationError: If the strategy does not form a valid grid.
        """
        account = self._config.get_account(strategy.account)
        exchange = BybitExchangeClient(
            self._get_rest_client(strategy.account),
            qty_step=strategy.qty_step,
            hedge_mode=account.hedge_mode,
            rate_limiter=self._rate_limiter,
        )
        state_dir = self._settings.state_dir
        return GridEngine(
            symbol=strategy.symbol,
            market_index=strategy.market_index,
            config=strategy.to_grid_config(),
            exchange=exchange,
            rate_limiter=self._rate_limiter,
            retry_policy=self._retry_policy,
            state_store=GridStateStore(
                state_dir, strategy.symbol, strategy.market_index, strategy.direction
            ),
            ledger=TradeLedger(
                state_dir, strategy.symbol, strategy.market_index, strategy.direction
            ),
            order_pause=self._settings.order_pause,
        )

    async def start_strategy(self, strategy: StrategyConfig, index: int = 0, total: int = 1) -> bool:
        """Build, check and start one strategy.

        Args:
            strategy: Strategy to start.
            index: Position of the strategy in the start order.
            total: Number of strategies being started.

        Returns:
            True if the engine is running.
        """
        if strategy.name in self._engines:
            logger.warning(f"{strategy.name}: already running")
            return True

        try:
            engine = self.build_engine(strategy)
        except Exception as e:
            logger.error(f"{strategy.name}: failed to create engine: {e}")
            return False

        account_info = await engine.get_account_info()
        if account_info is None:
            logger.error(f"{strategy.name}: cannot access account '{strategy.account}', not starting")
            return False
        logger.info(
            f"{strategy.name}: account '{strategy.account}' equity "
            f"{account_info.get('totalEquity', 'n/a')}"
        )

        try:
            await self._rate_limiter.throttle()
            changed = await engine.exchange.set_leverage(strategy.symbol, strategy.leverage)
            if changed:
                logger.info(f"{strategy.name}: leverage set to {strategy.leverage}x")
        except Exception as e:
            logger.warning(f"{strategy.name}: failed to set leverage {strategy.leverage}x: {e}")

        initial_delay = strategy.check_interval / total * index if total else 0.0
        await engine.start(initial_delay=initial_delay)
        self._engines[strategy.name] = engine

        logger.info(
            f"{strategy.name}: started {engine.name} "
            f"({strategy.grid_lower}-{strategy.grid_upper}, {strategy.grid_count} intervals, "
            f"first check in {initial_delay:.1f}s)"
        )
        return True

    async def start(self, strategies: list[StrategyConfig]) -> int:
        """Start strategies one after another.

        Strategies trading the same symbol, market and direction would share
        state files; only the first of them is started.

        Returns:
            Number of strategies started.
        """
        os.makedirs(self._settings.state_dir, exist_ok=True)

        seen: dict[tuple, str] = {}
        unique: list[StrategyConfig] = []
        for strategy in strategies:
            key = (strategy.symbol, strategy.market_index, strategy.direction)
            if key in seen:
                logger.error(
                    f"{strategy.name}: same symbol, market and direction as "
                    f"'{seen[key]}', skipping"
                )
                continue
            seen[key] = strategy.name
            unique.append(strategy)

        logger.info(f"Starting {len(unique)} strategies")
        total = len(unique)
        for index, strategy in enumerate(unique):
            if index > 0 and self._settings.start_gap > 0:
                await self._sleep(self._settings.start_gap)
            await self.start_strategy(strategy, index, total)

        started = len(self._engines)
        if started:
            self._running = True
            if self._status_task is None:
                self._status_task = RepeatingTask(
                    self._report_status,
                    interval=self._settings.status_interval,
                    initial_delay=_FIRST_STATUS_DELAY,
                    name="status-report",
                )
                await self._status_task.start()
        logger.info(f"Started {started}/{len(strategies)} strategies")
        return started

    async def _report_status(self) -> None:
        self.log_status()

    def log_status(self) -> None:
        """Log one status line per engine plus totals."""
        total_profit = 0.0
        total_positions = 0
        for name, engine in self._engines.items():
            s = engine.status()
            total_profit += s.total_profit
            total_positions += s.active_positions
            price = f"{s.price:.2f}" if s.price is not None else "n/a"
            logger.info(
                f"[{name}] {engine.name} price={price} "
                f"positions={s.active_positions}/{s.total_levels} invested={s.invested:.2f} "
                f"profit={s.total_profit:.4f} entries={s.entry_count} exits={s.exit_count} "
                f"running={s.running}"
            )
        logger.info(
            f"Status: {len(self._engines)} engines, {total_positions} positions, "
            f"total profit {total_profit:.4f}"
        )

    async def stop(self) -> None:
        """Stop every engine. Idempotent."""
        if not self._running:
            return

        logger.info("Stopping supervisor")
        self._running = False

        if self._status_task is not None:
            await self._status_task.stop()
            self._status_task = None

        for name, engine in self._engines.items():
            try:
                await engine.stop()
            except Exception as e:
                logger.error(f"{name}: error while stopping: {e}")

        self.log_status()
        logger.info("Supervisor stopped")
