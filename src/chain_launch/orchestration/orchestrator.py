"""
Process orchestrator for a local test network.

Owns the process registry and exposes one operation per node binary
invocation the launcher performs. Every process it starts is killed by
`kill_all`, which runs on deliberate teardown, on SIGINT/SIGTERM, and as an
`atexit` hook.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import signal
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, Final

from .args import (
    CollatorConfig,
    RelayNodeConfig,
    SimpleCollatorConfig,
    build_chain_spec_args,
    build_collator_args,
    build_export_genesis_state_args,
    build_export_genesis_wasm_args,
    build_purge_args,
    build_raw_chain_spec_args,
    build_relay_node_args,
    build_simple_collator_args,
    build_spec_query_args,
)
from .chain_spec import parse_parachain_id
from .readiness import (
    COLLATOR_READY_PATTERNS,
    SIMPLE_COLLATOR_READY_PATTERNS,
    ReadinessDetector,
)
from .registry import ProcessRegistry
from .spawner import Spawner

logger = logging.getLogger(__name__)

SPEC_KEY: Final = "spec"
"""Registry label shared by the chain spec generation steps."""

PURGE_KEY: Final = "purge"
"""Registry label for database purges."""

GENESIS_WASM_KEY: Final = "genesis-wasm"
"""Registry label for genesis runtime exports."""

GENESIS_STATE_KEY: Final = "genesis-state"
"""Registry label for genesis head exports."""

GENESIS_WASM_MAX_BUFFER: Final = 10 * 1024 * 1024
"""Default stdout bound for genesis runtime exports. Runtimes are large."""

GENESIS_STATE_MAX_BUFFER: Final = 5 * 1024 * 1024
"""Default stdout bound for genesis head exports."""

CHAIN_SPEC_MAX_BUFFER: Final = 64 * 1024 * 1024
"""Default stdout bound for chain spec dumps, which embed the runtime."""

TERMINATE_GRACE: Final = 10.0
"""Seconds a node gets to exit after SIGTERM before it is sent SIGKILL."""


class Orchestrator:
    """
    Launches node binary processes and guarantees they are torn down.

    Several orchestrators may coexist; each owns its own registry and working
    directory. Chain spec files and log files are written into `workdir`,
    which is also the working directory of every child.
    """

    def __init__(self, workdir: Path | str = ".") -> None:
        self.workdir = Path(workdir)
        self.registry = ProcessRegistry()
        self.spawner = Spawner(self.registry, self.workdir)
        self._shutdown = asyncio.Event()
        self._atexit_installed = False

    async def generate_chain_spec(self, binary: str, chain: str) -> Path:
        """
        Write the plain chain spec of `chain` to `<chain>.json`.

        Returns:
            Path of the written spec file.
        """
        path = Path(f"{chain}.json")
        await self.spawner.run_to_completion(
            SPEC_KEY, binary, build_chain_spec_args(chain), output=path
        )
        return self.workdir / path

    async def generate_chain_spec_raw(self, binary: str, chain: str) -> Path:
        """
        Convert `<chain>.json` into the raw spec `<chain>-raw.json`.

        Returns:
            Path of the written raw spec file.
        """
        path = Path(f"{chain}-raw.json")
        await self.spawner.run_to_completion(
            SPEC_KEY, binary, build_raw_chain_spec_args(chain), output=path
        )
        return self.workdir / path

    async def get_parachain_id_from_spec(
        self,
        binary: str,
        chain: str | None = None,
        *,
        max_buffer: int = CHAIN_SPEC_MAX_BUFFER,
    ) -> int:
        """
        Read the parachain id out of the collator's chain spec.

        Raises:
            SpawnFailure: If the chain spec cannot be produced.
            MalformedArtifact: If the chain spec carries no parachain id.
        """
        output = await self.spawner.capture(
            SPEC_KEY, binary, build_spec_query_args(chain), max_buffer=max_buffer
        )
        return parse_parachain_id(output)

    async def export_genesis_wasm(
        self,
        binary: str,
        chain: str | None = None,
        *,
        max_buffer: int = GENESIS_WASM_MAX_BUFFER,
    ) -> str:
        """Export the parachain genesis runtime as a `0x`-prefixed hex string."""
        return await self.spawner.capture(
            GENESIS_WASM_KEY,
            binary,
            build_export_genesis_wasm_args(chain),
            max_buffer=max_buffer,
        )

    async def export_genesis_state(
        self,
        binary: str,
        chain: str | None = None,
        *,
        max_buffer: int = GENESIS_STATE_MAX_BUFFER,
    ) -> str:
        """Export the parachain genesis head as a hex string."""
        return await self.spawner.capture(
            GENESIS_STATE_KEY,
            binary,
            build_export_genesis_state_args(chain),
            max_buffer=max_buffer,
        )

    async def start_node(self, config: RelayNodeConfig) -> asyncio.subprocess.Process:
        """
        Start a relay chain validator.

        Returns once the process is running; relay nodes are not awaited for
        readiness. Output goes to `<name>.log`.
        """
        return await self.spawner.start_detached(
            config.process_key,
            config.binary,
            build_relay_node_args(config),
            log_path=Path(f"{config.name}.log"),
        )

    async def start_collator(self, config: CollatorConfig) -> asyncio.subprocess.Process:
        """
        Start a parachain collator and wait until its RPC server is listening.

        Output goes to `<process key>.log`.
        """
        return await self.spawner.start_until_ready(
            config.process_key,
            config.binary,
            build_collator_args(config),
            log_path=Path(f"{config.process_key}.log"),
            detector=ReadinessDetector(COLLATOR_READY_PATTERNS),
        )

    async def start_simple_collator(
        self, config: SimpleCollatorConfig
    ) -> asyncio.subprocess.Process:
        """
        Start a legacy test collator and wait until it is listening.

        Output goes to `<port>.log`.
        """
        return await self.spawner.start_until_ready(
            config.process_key,
            config.binary,
            build_simple_collator_args(config),
            log_path=Path(f"{config.process_key}.log"),
            detector=ReadinessDetector(SIMPLE_COLLATOR_READY_PATTERNS),
        )

    async def purge_chain(self, binary: str, spec: str | None = None) -> None:
        """
        Remove a node's database.

        Only needed for nodes started with a base path; `--tmp` nodes leave
        nothing behind. Output is passed through to the launcher's console.
        """
        logger.info("Purging chain...")
        await self.spawner.run_to_completion(PURGE_KEY, binary, build_purge_args(spec))

    def kill_all(self) -> int:
        """
        Terminate every tracked process.

        Safe to call any number of times, including from an `atexit` hook.

        Returns:
            Number of processes signalled.
        """
        return self.registry.kill_all()

    async def aclose(self, grace: float = TERMINATE_GRACE) -> None:
        """
        Kill all processes and wait for their output pumps to finish.

        Processes still running `grace` seconds after SIGTERM get SIGKILL.
        If even that is not observed within another `grace` seconds, their
        reapers are abandoned so teardown always completes.
        """
        self.kill_all()
        if await self.spawner.aclose(timeout=grace):
            return

        logger.warning("Processes still running %.1fs after SIGTERM, sending SIGKILL", grace)
        self.registry.kill_all(force=True)
        if not await self.spawner.aclose(timeout=grace):
            logger.error("Abandoning %d processes that did not exit", len(self.registry))
            self.spawner.cancel_background()

    async def run_until_shutdown(self, launch: Coroutine[Any, Any, object]) -> None:
        """
        Run `launch`, keep the network up until shutdown, then tear it down.

        A shutdown request cancels a launch still in progress, so a signal
        that arrives during a readiness wait is honoured. Every process is
        killed on the way out, whether the launch succeeded, failed, or was
        interrupted.

        Raises:
            Whatever `launch` raised.
        """
        launch_task = asyncio.create_task(launch)
        shutdown_task = asyncio.create_task(self.wait_shutdown())
        try:
            await asyncio.wait(
                {launch_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if launch_task.done():
                launch_task.result()
                logger.info("All nodes running. Press Ctrl+C to stop.")
                await shutdown_task
            else:
                logger.info("Shutdown requested during launch")
        finally:
            launch_task.cancel()
            shutdown_task.cancel()
            await asyncio.gather(launch_task, shutdown_task, return_exceptions=True)
            await self.aclose()

    def install_exit_handlers(self) -> None:
        """
        Make sure children die with the launcher.

        Registers `kill_all` with `atexit` and routes SIGINT/SIGTERM to the
        shutdown event watched by `run_until_shutdown`. Signal handlers need
        a running loop in the main thread; elsewhere only the `atexit` hook is
        installed.
        """
        if not self._atexit_installed:
            atexit.register(self.kill_all)
            self._atexit_installed = True

        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.stop)
        except (ValueError, RuntimeError, NotImplementedError):
            # Cannot add handlers outside the main thread or on this platform.
            logger.debug("Signal handlers not installed")

    def stop(self) -> None:
        """Request shutdown of the network."""
        self._shutdown.set()

    async def wait_shutdown(self) -> None:
        """Block until shutdown is requested."""
        await self._shutdown.wait()

    @property
    def is_running(self) -> bool:
        """Check if shutdown has not been requested yet."""
        return not self._shutdown.is_set()
