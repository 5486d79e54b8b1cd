"""Main entry point for gridrunner.

Usage:
    gridrunner                       # list configured strategies
    gridrunner btc_long eth_short    # run the named strategies
    gridrunner all                   # run every enabled strategy
    gridrunner all --config path/to/config.yaml
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Optional

from gridrunner.config import RunnerConfig, RunnerSettings, load_config
from gridrunner.supervisor import Supervisor


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record):
        log_dict = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict)


def setup_logging(json_file: Optional[str] = None, debug: bool = False) -> None:
    """Set up logging with both console and optional JSON file output.

    Args:
        json_file: Path to JSON log file (optional).
        debug: Log DEBUG records from gridrunner and gridengine.
    """
    # Console handler (human-readable)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)

    # JSON file handler (if specified)
    if json_file:
        try:
            file_handler = logging.FileHandler(json_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JsonFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.warning(f"Failed to set up JSON logging: {e}")

    if debug:
        root_logger.setLevel(logging.DEBUG)
        for name in ("gridrunner", "gridengine", "bybit_adapter"):
            logging.getLogger(name).setLevel(logging.DEBUG)

    # Reduce noise from libraries
    logging.getLogger("pybit").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def list_strategies(config: RunnerConfig) -> None:
    """Log the configured strategies and how to run them."""
    logger.info("Available strategies:")
    for name, strategy in config.strategies.items():
        state = "" if strategy.enabled else " [disabled]"
        description = f" - {strategy.description}" if strategy.description else ""
        logger.info(
            f"  {name}: {strategy.symbol}-{strategy.market_index} {strategy.direction} "
            f"{strategy.grid_lower}-{strategy.grid_upper} x{strategy.grid_count} "
            f"(account {strategy.account}){state}{description}"
        )
    logger.info("Run with: gridrunner <name> [<name> ...] or gridrunner all")


async def main(
    names: Optional[list[str]] = None,
    config_path: Optional[str] = None,
    settings: Optional[RunnerSettings] = None,
) -> int:
    """Main async entry point.

    Args:
        names: Strategy names to run; lists strategies when empty.
        config_path: Path to configuration file.
        settings: Runtime settings (defaults from the environment).

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    settings = settings or RunnerSettings()

    # Load configuration
    try:
        config = load_config(config_path or settings.config_path)
        logger.info(f"Loaded configuration with {len(config.strategies)} strategies")
    except FileNotFoundError as e:
        logger.error(f"Configuration file not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if not names:
        list_strategies(config)
        return 0

    strategies, unknown = config.select(names)
    for name in unknown:
        logger.error(f"Unknown strategy: {name}")
    if not strategies:
        logger.error("No strategies to run")
        return 1

    supervisor = Supervisor(config, settings)

    # Set up signal handlers
    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, initiating shutdown")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        started = await supervisor.start(strategies)
        if started == 0:
            logger.error("No strategies started")
            return 1
        logger.info(f"Gridrunner running {started} strategies, press Ctrl+C to stop")

        # Wait for shutdown signal
        await shutdown_event.wait()

    except Exception as e:
        logger.error(f"Error during startup: {e}")
        return 1

    finally:
        logger.info("Shutting down gridrunner")
        await supervisor.stop()

    logger.info("Gridrunner stopped")
    return 0


def cli(argv: Optional[list[str]] = None) -> None:
    """Command-line interface entry point."""
    parser = argparse.ArgumentParser(
        description="Gridrunner - fixed-range grid trading engines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "strategies",
        nargs="*",
        help="Strategy names to run, or 'all' (lists strategies when omitted)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to configuration file (default: conf/gridrunner.yaml)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Path to JSON log file (optional)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    setup_logging(json_file=args.log_file, debug=args.debug)

    try:
        exit_code = asyncio.run(main(args.strategies, args.config))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    cli()
