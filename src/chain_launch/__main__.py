"""
Local test network launcher CLI entry point.

Start a relay chain with its parachains from one configuration file, and keep
them running until interrupted. Every node process is killed when the launcher
exits, however it exits.

Usage::

    python -m chain_launch config.yaml
    python -m chain_launch config.json --workdir ./network -v
    python -m chain_launch config.yaml --purge

Options:
    config          Path to the launch configuration (YAML or JSON)
    --workdir       Directory for chain specs, genesis artifacts and logs
    --purge         Purge the relay chain database and exit
    -v, --verbose   Enable debug logging and print every node command line
    --no-color      Disable colored logging output
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from chain_launch.launch import LaunchConfig, Launcher, load_launch_config
from chain_launch.orchestration import Orchestrator
from chain_launch.types import LaunchError

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors for better readability."""

    # ANSI color codes
    GREY = "\x1b[38;5;244m"
    BLUE = "\x1b[38;5;39m"
    GREEN = "\x1b[38;5;40m"
    YELLOW = "\x1b[38;5;220m"
    RED = "\x1b[38;5;196m"
    BOLD_RED = "\x1b[38;5;196;1m"
    CYAN = "\x1b[38;5;51m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)

        timestamp = self.formatTime(record, self.datefmt)
        colored_time = f"{self.CYAN}{timestamp}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"
        message = record.getMessage()

        formatted = f"{colored_time} {levelname} {name}: {message}"
        if record.exc_info:
            formatted = f"{formatted}\n{self.formatException(record.exc_info)}"
        return formatted


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure logging for the launcher with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


async def run_network(config: LaunchConfig, workdir: Path) -> None:
    """
    Launch the network and keep it up until SIGINT or SIGTERM.

    Every spawned process is killed on the way out, whether the launch
    succeeded, failed, or was interrupted.
    """
    orchestrator = Orchestrator(workdir)
    orchestrator.install_exit_handlers()
    await orchestrator.run_until_shutdown(Launcher(config, orchestrator).run())


async def purge(config: LaunchConfig, workdir: Path) -> None:
    """Purge the relay chain database of the configured network."""
    orchestrator = Orchestrator(workdir)
    orchestrator.install_exit_handlers()
    relay = config.relaychain
    try:
        await orchestrator.purge_chain(relay.bin, f"{relay.chain}-raw.json")
    finally:
        await orchestrator.aclose()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="chain-launch",
        description="Local relay chain and parachain test network launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "config",
        type=Path,
        help="Path to the launch configuration (YAML or JSON)",
    )
    parser.add_argument(
        "--workdir",
        type=Path,
        default=Path("."),
        help="Directory for chain specs, genesis artifacts and logs (default: .)",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Purge the relay chain database and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging and print every node command line",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )

    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.no_color)

    try:
        config = load_launch_config(args.config)
    except (OSError, LaunchError) as e:
        logger.error("%s", e)
        return 1

    args.workdir.mkdir(parents=True, exist_ok=True)
    entry = purge if args.purge else run_network

    try:
        asyncio.run(entry(config, args.workdir))
    except KeyboardInterrupt:
        # asyncio.run() cancels the launch; the finally blocks kill the nodes.
        logger.info("Shutting down...")
    except (LaunchError, TimeoutError) as e:
        logger.error("Launch failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
