"""
Grid level trading engine.

GridEngine polls the exchange for the current price, decides which grid
levels should open or close a position, and submits the resulting orders one
at a time. Every committed order updates the level state, the running
counters, the trade ledger and the persisted state file.

The decision step (evaluate) is pure; everything that talks to the exchange
goes through the shared RateLimiter.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from gridengine.config import ConfigurationError, Direction, GridConfig
from gridengine.exchange import (
    ExchangeClient,
    OrderRequest,
    OrderResult,
    OrderSide,
    OrderStatus,
)
from gridengine.grid import Grid, GridLevel
from gridengine.intents import TradeAction, TradeIntent
from gridengine.ledger import TradeLedger, TradeRecord
from gridengine.persistence import EngineState, GridStateStore
from gridengine.pnl import calc_notional, calc_order_margin, calc_profit, calc_profit_pct
from gridengine.rate_limiter import RateLimiter
from gridengine.retry import RetryPolicy
from gridengine.scheduler import RepeatingTask

logger = logging.getLogger(__name__)

# Exchange order statuses of an order that may still fill
RESTING_ORDER_STATUSES = frozenset({'New', 'PartiallyFilled', 'Untriggered', 'Created'})


@dataclass
class CycleResult:
    """Outcome of processing one price."""
    price: float
    intents: list[TradeIntent] = field(default_factory=list)
    entries: int = 0
    exits: int = 0
    failures: int = 0
    out_of_range: bool = False

    @property
    def executed(self) -> int:
        return self.entries + self.exits


@dataclass(frozen=True)
class EngineStatus:
    """Observational summary of an engine."""
    symbol: str
    market_index: int
    direction: Direction
    price: Optional[float]
    active_positions: int
    total_levels: int
    invested: float
    total_profit: float
    entry_count: int
    exit_count: int
    running: bool


class GridEngine:
    """
    Fixed-range grid engine for one symbol on one market.

    Long grids buy as price falls through the levels and sell one level
    higher; short grids sell short as price rises and cover one level lower.

    Example:
        limiter = RateLimiter(min_interval=5.0)
        engine = GridEngine('BTCUSDT', 0, config, client, limiter,
                            state_store=GridStateStore('state', 'BTCUSDT', 0))
        await engine.start()
        ...
        await engine.stop()
    """

    def __init__(
        self,
        symbol: str,
        market_index: int,
        config: GridConfig,
        exchange: ExchangeClient,
        rate_limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        state_store: Optional[GridStateStore] = None,
        ledger: Optional[TradeLedger] = None,
        order_pause: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize grid engine.

        Args:
            symbol: Trading symbol (e.g. 'BTCUSDT')
            market_index: Market identifier on the exchange
            config: Grid configuration
            exchange: Exchange client used for prices and orders
            rate_limiter: Throttle shared by every engine in the process
            retry_policy: Retry wrapper for price and account requests
            state_store: Persisted state; restored here if it matches config
            ledger: Trade log; trades are not recorded when omitted
            order_pause: Seconds to wait between order submissions in a cycle
            sleep: Async sleep function

        Raises:
            ConfigurationError: If a required argument is missing or invalid
        """
        if not symbol or not isinstance(symbol, str):
            raise ConfigurationError(f"symbol is required, got {symbol!r}")
        if not isinstance(config, GridConfig):
            raise ConfigurationError(f"config must be a GridConfig, got {type(config).__name__}")
        if exchange is None:
            raise ConfigurationError("exchange client is required")
        if rate_limiter is None:
            raise ConfigurationError("rate_limiter is required")
        if order_pause < 0:
            raise ConfigurationError(f"order_pause must not be negative, got {order_pause}")

        self.symbol = symbol
        self.market_index = market_index
        self.config = config
        self.direction = config.direction
        self.exchange = exchange
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.state_store = state_store
        self.ledger = ledger
        self.order_pause = order_pause
        self._sleep = sleep

        self.grid = Grid(config)
        self.total_profit = 0.0
        self.entry_count = 0
        self.exit_count = 0
        self.current_price: Optional[float] = None

        self._cycle_in_progress = False
        self._stop_requested = False
        self._task: Optional[RepeatingTask] = None

        self._restore_state()

    @property
    def name(self) -> str:
        """Identifier used in logs, e.g. 'BTCUSDT-0' or 'BTCUSDT-0-short'."""
        suffix = '-short' if self.direction == Direction.SHORT else ''
        return f'{self.symbol}-{self.market_index}{suffix}'

    @property
    def levels(self) -> list[GridLevel]:
        """Copies of the current level states."""
        return self.grid.snapshot()

    @property
    def running(self) -> bool:
        return self._task is not None and self._task.running

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_in_progress

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def evaluate(self, price: float) -> list[TradeIntent]:
        """
        Decide which levels should enter or exit at price.

        Pure: reads a snapshot of the grid taken up front and never mutates
        the engine. All intents of a cycle are decided from that snapshot, so
        an exit never makes room for a bootstrap entry in the same cycle.

        A chain entry needs its neighbour to hold at the start of the cycle,
        so when price jumps several levels the chain advances one level per
        cycle in either direction. Only the boundary level (0 for LONG, the
        top for SHORT) can enter out of turn. A SHORT grid holding level 1
        that sees 120 enters level 2 by chain and level 4 as the boundary;
        level 3 waits for the next cycle.

        Args:
            price: Current market price

        Returns:
            Intents in level order; empty when price is outside the grid
        """
        if not self.grid.contains(price):
            return []

        snapshot = self.grid.snapshot()
        intents = []
        for level in snapshot:
            reason = self.grid.entry_reason(level.index, price, snapshot)
            if reason is not None:
                intents.append(TradeIntent(
                    action=TradeAction.ENTRY,
                    level=level.index,
                    level_price=level.price,
                    price=price,
                    reason=reason,
                ))
            elif self.grid.exit_eligible(level.index, price, snapshot):
                intents.append(TradeIntent(
                    action=TradeAction.EXIT,
                    level=level.index,
                    level_price=level.price,
                    price=price,
                    reason='take_profit',
                ))
        return intents

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _call(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        """Throttle each attempt, retry failures per the retry policy."""
        async def attempt():
            await self.rate_limiter.throttle()
            return await operation()

        return await self.retry_policy.execute(attempt)

    async def fetch_price(self) -> Optional[float]:
        """
        Fetch the current price.

        Returns:
            Price, or None if every attempt failed or the price is unusable
        """
        try:
            price = await self._call(lambda: self.exchange.get_price(self.symbol))
        except Exception as e:
            logger.warning('%s: failed to fetch price, skipping cycle: %s', self.name, e)
            return None

        try:
            price = float(price)
        except (TypeError, ValueError):
            logger.warning('%s: invalid price %r, skipping cycle', self.name, price)
            return None
        if price <= 0:
            logger.warning('%s: non-positive price %s, skipping cycle', self.name, price)
            return None
        return price

    async def process_price(self, price: float) -> CycleResult:
        """
        Run the decision step at price and execute its intents in order.

        Orders are submitted one at a time with order_pause between them.
        If stop() is requested mid-cycle, the current order completes and the
        remaining intents are dropped.

        Args:
            price: Current market price

        Returns:
            CycleResult describing what was executed
        """
        self.current_price = price
        result = CycleResult(price=price)

        if not self.grid.contains(price):
            logger.info(
                '%s: price %.2f outside grid [%s - %s], skipping',
                self.name, price, self.config.lower, self.config.upper,
            )
            result.out_of_range = True
            return result

        result.intents = self.evaluate(price)
        for n, intent in enumerate(result.intents):
            if self._stop_requested:
                logger.info('%s: stop requested, dropping %d remaining intent(s)',
                            self.name, len(result.intents) - n)
                break
            if n > 0 and self.order_pause > 0:
                await self._sleep(self.order_pause)

            if intent.is_entry:
                ok = await self._execute_entry(intent)
                result.entries += int(ok)
            else:
                ok = await self._execute_exit(intent)
                result.exits += int(ok)
            if not ok:
                result.failures += 1

        self._log_status()
        return result

    async def run_cycle(self) -> Optional[CycleResult]:
        """
        One polling cycle: resolve pending orders, fetch price, then process it.

        Returns:
            CycleResult, or None if the cycle was skipped
        """
        if self._cycle_in_progress:
            logger.warning('%s: previous cycle still running, skipping', self.name)
            return None

        self._cycle_in_progress = True
        try:
            await self.reconcile_pending()
            price = await self.fetch_price()
            if price is None:
                return None
            return await self.process_price(price)
        finally:
            self._cycle_in_progress = False

    # ------------------------------------------------------------------
    # Order execution
    # ------------------------------------------------------------------

    def _entry_side(self) -> OrderSide:
        return OrderSide.BUY if self.direction == Direction.LONG else OrderSide.SELL

    def _exit_side(self) -> OrderSide:
        return OrderSide.SELL if self.direction == Direction.LONG else OrderSide.BUY

    def _order_request(self, side: OrderSide, size: float, price: float,
                       reduce_only: bool, order_margin: float,
                       entry_price: Optional[float] = None) -> OrderRequest:
        config = self.config
        return OrderRequest(
            symbol=self.symbol,
            market_index=self.market_index,
            side=side,
            size=size,
            price=price,
            reduce_only=reduce_only,
            size_mode=config.size_mode,
            order_type=config.order_type,
            time_in_force=config.time_in_force,
            order_margin=order_margin,
            leverage=config.leverage,
            margin_mode=config.margin_mode,
            take_profit_rate=config.take_profit_rate,
            client_order_id=uuid.uuid4().hex,
            entry_price=entry_price,
        )

    async def _submit(self, request: OrderRequest) -> Optional[OrderResult]:
        """Place an order once. Exceptions are logged and reported as None."""
        try:
            await self.rate_limiter.throttle()
            return await self.exchange.place_order(request)
        except Exception as e:
            logger.error('%s: order submission failed: %s', self.name, e)
            return None

    def _awaits_fill(self, result: Optional[OrderResult]) -> bool:
        """Whether result rests on the book and must be confirmed before committing."""
        return (
            result is not None
            and result.status == OrderStatus.PENDING
            and not self.config.treat_pending_as_filled
        )

    def _is_committed(self, result: Optional[OrderResult], intent: TradeIntent) -> bool:
        """Whether result should be treated as an executed order."""
        if result is None:
            return False
        if not result.accepted:
            logger.error('%s: level %d %s order rejected: %s',
                         self.name, intent.level, intent.action, result.error)
            return False
        if result.status == OrderStatus.PENDING:
            logger.info('%s: level %d %s order %s pending, treating as filled',
                        self.name, intent.level, intent.action, result.order_id)
        return True

    def _hold_pending(self, level: GridLevel, result: OrderResult,
                      intent: TradeIntent) -> None:
        if result.order_id is None:
            logger.warning('%s: level %d %s order pending without an id, treating as not executed',
                           self.name, level.index, intent.action)
            return
        level.hold_pending(result.order_id, intent.price)
        logger.warning('%s: level %d %s order %s pending, waiting for fill',
                       self.name, level.index, intent.action, result.order_id)

    def _entry_margin(self, price: float) -> float:
        notional = calc_notional(self.config.size_mode, self.config.size_per_grid, price)
        return calc_order_margin(notional, price, self.config.leverage, self.config.min_margin)

    async def _execute_entry(self, intent: TradeIntent) -> bool:
        """
        Open a position at intent.level.

        Returns:
            True if the entry was committed
        """
        level = self.grid[intent.level]
        if level.has_position or level.entry_in_flight or level.exit_in_flight:
            logger.warning('%s: level %d busy, skipping entry', self.name, level.index)
            return False

        level.entry_in_flight = True
        try:
            price = intent.price
            size = self.config.size_per_grid
            margin = self._entry_margin(price)

            logger.info(
                '%s: %s entry at level %d (%.2f), price %.2f, size %s, margin %.8f',
                self.name, intent.reason, level.index, level.price, price, size, margin,
            )
            request = self._order_request(self._entry_side(), size, price,
                                          reduce_only=False, order_margin=margin)
            result = await self._submit(request)
            if self._awaits_fill(result):
                self._hold_pending(level, result, intent)
                return False
            if not self._is_committed(result, intent):
                return False

            self._commit_entry(level, price, result.order_id, str(result.status))
            return True
        finally:
            if not level.awaiting_fill:
                level.entry_in_flight = False

    def _commit_entry(self, level: GridLevel, price: float,
                      order_id: Optional[str], order_status: str) -> None:
        size = self.config.size_per_grid
        level.open(entry_price=price, size=size, order_id=order_id)
        self.entry_count += 1
        logger.info('%s: entry filled at level %d, order %s', self.name, level.index, order_id)

        self._record(TradeRecord(
            symbol=self.symbol,
            market_index=self.market_index,
            direction=self.direction,
            action=TradeAction.ENTRY,
            level=level.index,
            price=price,
            size=size,
            order_id=order_id,
            order_status=order_status,
            order_margin=self._entry_margin(price),
            leverage=self.config.leverage,
        ))
        self._save_state()

    async def _execute_exit(self, intent: TradeIntent) -> bool:
        """
        Close the position held at intent.level.

        Returns:
            True if the exit was committed
        """
        level = self.grid[intent.level]
        if not level.has_position or level.entry_in_flight or level.exit_in_flight:
            logger.warning('%s: level %d not closable, skipping exit', self.name, level.index)
            return False

        level.exit_in_flight = True
        try:
            price = intent.price
            size = level.size
            entry_price = level.entry_price
            profit = calc_profit(self.direction, self.config.size_mode, size, entry_price, price)
            profit_pct = calc_profit_pct(self.direction, entry_price, price)

            logger.info(
                '%s: exit at level %d, entry %.2f, price %.2f, size %s, expected profit %.4f (%.2f%%)',
                self.name, level.index, entry_price, price, size, profit, profit_pct,
            )
            request = self._order_request(self._exit_side(), size, price,
                                          reduce_only=True, order_margin=0.0,
                                          entry_price=entry_price)
            result = await self._submit(request)
            if self._awaits_fill(result):
                self._hold_pending(level, result, intent)
                return False
            if not self._is_committed(result, intent):
                return False

            self._commit_exit(level, price, result.order_id, str(result.status))
            return True
        finally:
            if not level.awaiting_fill:
                level.exit_in_flight = False

    def _commit_exit(self, level: GridLevel, price: float,
                     order_id: Optional[str], order_status: str) -> None:
        size = level.size
        entry_price = level.entry_price
        profit = calc_profit(self.direction, self.config.size_mode, size, entry_price, price)
        profit_pct = calc_profit_pct(self.direction, entry_price, price)

        level.close(order_id=order_id)
        self.total_profit += profit
        self.exit_count += 1
        logger.info('%s: exit filled at level %d, order %s, total profit %.4f',
                    self.name, level.index, order_id, self.total_profit)

        self._record(TradeRecord(
            symbol=self.symbol,
            market_index=self.market_index,
            direction=self.direction,
            action=TradeAction.EXIT,
            level=level.index,
            price=price,
            size=size,
            order_id=order_id,
            order_status=order_status,
            leverage=self.config.leverage,
            entry_price=entry_price,
            profit=profit,
            profit_percent=profit_pct,
            total_profit=self.total_profit,
        ))
        self._save_state()

    async def reconcile_pending(self) -> int:
        """
        Resolve levels whose order was left resting on the book.

        An order still listed as open keeps its level in flight. A Filled
        order commits the entry or exit at the price it was submitted at.
        Any other outcome, including an order no longer listed, releases
        the level without changing its position.

        Returns:
            Number of levels resolved
        """
        pending = self.grid.pending_levels()
        if not pending:
            return 0

        try:
            orders = await self._call(lambda: self.exchange.get_open_orders(self.symbol))
        except Exception as e:
            logger.warning('%s: failed to fetch open orders, %d level(s) stay pending: %s',
                           self.name, len(pending), e)
            return 0

        by_id = {}
        for order in orders or []:
            for key in ('orderId', 'orderLinkId'):
                if order.get(key):
                    by_id[order[key]] = order

        resolved = 0
        for level in pending:
            order = by_id.get(level.pending_order_id)
            status = order.get('orderStatus') if order is not None else None
            if order is not None and (status is None or status in RESTING_ORDER_STATUSES):
                continue

            order_id = level.pending_order_id
            if status == str(OrderStatus.FILLED):
                if level.entry_in_flight:
                    self._commit_entry(level, level.pending_price, order_id, status)
                else:
                    self._commit_exit(level, level.pending_price, order_id, status)
            else:
                logger.warning('%s: level %d order %s %s, releasing level',
                               self.name, level.index, order_id,
                               status or 'no longer open')
                level.release()
            resolved += 1
        return resolved

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def to_state(self) -> EngineState:
        return EngineState(
            symbol=self.symbol,
            market_index=self.market_index,
            direction=self.direction,
            fingerprint=self.config.fingerprint(),
            total_profit=self.total_profit,
            entry_count=self.entry_count,
            exit_count=self.exit_count,
            levels=self.grid.snapshot(),
        )

    def _record(self, record: TradeRecord) -> None:
        if self.ledger is not None:
            self.ledger.append(record)

    def _save_state(self) -> None:
        if self.state_store is not None:
            self.state_store.save(self.to_state())

    def _restore_state(self) -> None:
        if self.state_store is None:
            return
        state = self.state_store.load(self.config)
        if state is None:
            return

        restored = self.grid.restore(state.levels)
        self.total_profit = state.total_profit
        self.entry_count = state.entry_count
        self.exit_count = state.exit_count
        logger.info(
            '%s: restored %d position(s), total profit %.4f, entries %d, exits %d',
            self.name, restored, self.total_profit, self.entry_count, self.exit_count,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def status(self) -> EngineStatus:
        holding = self.grid.holding_levels()
        invested = sum(
            calc_notional(self.config.size_mode, level.size, level.entry_price)
            for level in holding
        )
        return EngineStatus(
            symbol=self.symbol,
            market_index=self.market_index,
            direction=self.direction,
            price=self.current_price,
            active_positions=len(holding),
            total_levels=len(self.grid),
            invested=invested,
            total_profit=self.total_profit,
            entry_count=self.entry_count,
            exit_count=self.exit_count,
            running=self.running,
        )

    def _log_status(self) -> None:
        s = self.status()
        logger.info(
            '%s: price %s, positions %d/%d, invested %.2f, profit %.4f, entries %d, exits %d',
            self.name, f'{s.price:.2f}' if s.price is not None else 'n/a',
            s.active_positions, s.total_levels, s.invested, s.total_profit,
            s.entry_count, s.exit_count,
        )

    async def get_account_info(self) -> Optional[dict]:
        """
        Fetch account balances.

        Returns:
            Account info dict, or None if the request failed
        """
        try:
            return await self._call(self.exchange.get_account_info)
        except Exception as e:
            logger.error('%s: failed to fetch account info: %s', self.name, e)
            return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, initial_delay: float = 0.0) -> None:
        """
        Start polling: one cycle after initial_delay, then every check_interval.

        Calling start on a running engine is a no-op.
        """
        if self._task is not None:
            return

        self._stop_requested = False
        self._task = RepeatingTask(
            self.run_cycle,
            interval=self.config.check_interval,
            initial_delay=initial_delay,
            name=self.name,
        )
        logger.info(
            '%s: starting %s grid %s-%s, %d levels, size %s (%s), check every %ss, stop loss %.1f%% (not enforced)',
            self.name, self.direction, self.config.lower, self.config.upper,
            self.config.level_count, self.config.size_per_grid, self.config.size_mode,
            self.config.check_interval, self.config.stop_loss_percent * 100,
        )
        await self._task.start()

    async def stop(self) -> None:
        """
        Stop polling. No new cycle starts; an in-progress cycle finishes its
        current order first. Idempotent.
        """
        task = self._task
        if task is None:
            return

        self._stop_requested = True
        self._task = None
        await task.stop()

        s = self.status()
        logger.info(
            '%s: stopped. positions %d, invested %.2f, total profit %.4f, entries %d, exits %d',
            self.name, s.active_positions, s.invested, s.total_profit, s.entry_count, s.exit_count,
        )
