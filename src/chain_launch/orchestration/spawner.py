"""
Child process spawning with the completion contracts the launcher needs.

Four contracts are supported:

- run to completion, stdout written to a file or passed through
- run to completion, stdout captured in memory up to a size bound
- start and wait for a readiness line on stderr
- start and return immediately

Every process is registered under its key before the call returns, so the
shutdown routine always sees it.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from collections.abc import Coroutine, Sequence
from pathlib import Path
from typing import IO, Any, Final

from chain_launch import metrics
from chain_launch.config import is_verbose
from chain_launch.types import ProcessKeyConflict, SpawnFailure

from .args import ProcessKey
from .readiness import ReadinessDetector
from .registry import ProcessRegistry

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE: Final = 64 * 1024
"""Bytes requested per read from a child's pipe."""

_STDERR_TAIL: Final = 500
"""Characters of captured stderr kept in a SpawnFailure message."""


def echo_command(binary: str, args: Sequence[str]) -> None:
    """Print the composed command line in yellow when tracing is enabled."""
    if is_verbose():
        print(f"\x1b[33m {' '.join([binary, *args])} \x1b[0m", flush=True)


class Spawner:
    """
    Starts child processes and records them in a registry.

    All children run with `cwd` as their working directory, so relative chain
    spec names such as `rococo-local.json` resolve next to the files this
    launcher writes.
    """

    def __init__(self, registry: ProcessRegistry, cwd: Path | str = ".") -> None:
        self.registry = registry
        self.cwd = Path(cwd)
        self._background: set[asyncio.Task[None]] = set()

    async def run_to_completion(
        self,
        key: ProcessKey,
        binary: str,
        args: Sequence[str],
        *,
        output: Path | None = None,
        merge_stderr: bool = False,
    ) -> int:
        """
        Run a process and wait for it to exit.

        The child writes straight into the output file, so once the exit has
        been observed and the file closed, everything it printed is on disk.

        Args:
            key: Registry key for the duration of the run.
            binary: Executable to run.
            args: Argument vector.
            output: File receiving stdout. If None, stdout goes to the
                launcher's own stdout.
            merge_stderr: Send stderr to the same file. Otherwise stderr goes
                to the launcher's own stderr.

        Returns:
            The exit status (always 0).

        Raises:
            SpawnFailure: If the process cannot start or exits non-zero.
        """
        self._ensure_free(key)
        if output is None:
            process = await self._start(key, binary, args, stdout=None, stderr=None)
            returncode = await self._wait_and_release(key, process)
        else:
            with open(self.cwd / output, "wb") as sink:
                stderr = sink if merge_stderr else None
                process = await self._start(key, binary, args, stdout=sink, stderr=stderr)
                returncode = await self._wait_and_release(key, process)

        if returncode != 0:
            metrics.spawn_failures.inc()
            raise SpawnFailure(binary, args, returncode=returncode)
        return returncode

    async def capture(
        self,
        key: ProcessKey,
        binary: str,
        args: Sequence[str],
        *,
        max_buffer: int,
    ) -> str:
        """
        Run a process and return its stdout with surrounding whitespace removed.

        Anything the process printed on stderr is forwarded to the launcher's
        own stderr once it exits.

        Args:
            key: Registry key for the duration of the run.
            binary: Executable to run.
            args: Argument vector.
            max_buffer: Largest stdout accepted, in bytes. A process that
                prints more is killed.

        Raises:
            SpawnFailure: If the process cannot start, overflows the buffer,
                or exits non-zero.
        """
        process = await self._start(
            key, binary, args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
        assert process.stdout is not None and process.stderr is not None

        stdout, stderr = await asyncio.gather(
            _read_bounded(process, process.stdout, max_buffer),
            process.stderr.read(),
        )
        returncode = await self._wait_and_release(key, process)

        stderr_text = stderr.decode(errors="replace")
        if stderr_text:
            sys.stderr.write(stderr_text)
            sys.stderr.flush()

        if stdout is None:
            metrics.spawn_failures.inc()
            raise SpawnFailure(binary, args, detail=f"stdout exceeded {max_buffer} bytes")
        if returncode != 0:
            metrics.spawn_failures.inc()
            raise SpawnFailure(
                binary,
                args,
                returncode=returncode,
                detail=stderr_text.strip()[-_STDERR_TAIL:] or None,
            )
        return stdout.decode(errors="replace").strip()

    async def start_until_ready(
        self,
        key: ProcessKey,
        binary: str,
        args: Sequence[str],
        *,
        log_path: Path,
        detector: ReadinessDetector,
    ) -> asyncio.subprocess.Process:
        """
        Start a long-running node and wait until it reports it is listening.

        Stdout goes straight to the log file. Stderr is read here, fed to the
        detector and appended to the same log file, matched or not.

        There is no timeout. Wrap the call in `asyncio.wait_for` to bound it.

        Raises:
            SpawnFailure: If the process cannot start.
        """
        self._ensure_free(key)
        # Unbuffered so stderr chunks and the child's own stdout writes
        # interleave in arrival order.
        log = open(self.cwd / log_path, "wb", buffering=0)
        try:
            process = await self._start(
                key, binary, args, stdout=log, stderr=asyncio.subprocess.PIPE
            )
        except BaseException:
            log.close()
            raise

        started = time.monotonic()
        self._spawn_background(self._pump_stderr(key, process, log, detector))
        self._spawn_background(self._reap(key, process))

        await detector.wait()
        metrics.readiness_wait_time.observe(time.monotonic() - started)
        logger.info("Process %r is ready: %s", key, detector.matched_line)
        return process

    async def start_detached(
        self,
        key: ProcessKey,
        binary: str,
        args: Sequence[str],
        *,
        log_path: Path,
    ) -> asyncio.subprocess.Process:
        """
        Start a long-running node with stdout and stderr in one log file.

        Returns as soon as the process has been started.

        Raises:
            SpawnFailure: If the process cannot start.
        """
        self._ensure_free(key)
        with open(self.cwd / log_path, "wb") as log:
            process = await self._start(key, binary, args, stdout=log, stderr=log)
        self._spawn_background(self._reap(key, process))
        return process

    async def aclose(self, timeout: float | None = None) -> bool:
        """
        Wait for the background pumps and reapers of exited processes.

        Args:
            timeout: Seconds to wait. None waits for as long as it takes.

        Returns:
            True if every background task finished in time. Tasks still
            running after the timeout are left running.
        """
        if not self._background:
            return True
        _, pending = await asyncio.wait(set(self._background), timeout=timeout)
        return not pending

    def cancel_background(self) -> None:
        """Abandon the pumps and reapers of processes that never exited."""
        for task in list(self._background):
            task.cancel()

    def _ensure_free(self, key: ProcessKey) -> None:
        # Refuse a live key before anything is forked or any log is truncated,
        # so a conflict never leaves an untracked child or clobbers a log.
        current = self.registry.get(key)
        if current is not None and current.returncode is None:
            raise ProcessKeyConflict(key)

    async def _start(
        self,
        key: ProcessKey,
        binary: str,
        args: Sequence[str],
        *,
        stdout: IO[bytes] | int | None,
        stderr: IO[bytes] | int | None,
    ) -> asyncio.subprocess.Process:
        self._ensure_free(key)
        echo_command(binary, args)
        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                cwd=self.cwd,
            )
        except OSError as e:
            metrics.spawn_failures.inc()
            raise SpawnFailure(binary, args, detail=str(e)) from e

        self.registry.register(key, process)
        metrics.processes_spawned.inc()
        metrics.processes_tracked.set(len(self.registry))
        logger.debug("Spawned %s as %r (pid %d)", binary, key, process.pid)
        return process

    async def _wait_and_release(self, key: ProcessKey, process: asyncio.subprocess.Process) -> int:
        try:
            return await process.wait()
        finally:
            self._release(key, process)

    def _release(self, key: ProcessKey, process: asyncio.subprocess.Process) -> None:
        self.registry.unregister(key, process)
        metrics.processes_tracked.set(len(self.registry))

    async def _reap(self, key: ProcessKey, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        self._release(key, process)
        log = logger.info if returncode in (0, -signal.SIGTERM) else logger.warning
        log("Process %r (pid %d) exited with status %d", key, process.pid, returncode)

    async def _pump_stderr(
        self,
        key: ProcessKey,
        process: asyncio.subprocess.Process,
        log: IO[bytes],
        detector: ReadinessDetector,
    ) -> None:
        assert process.stderr is not None
        try:
            while chunk := await process.stderr.read(READ_CHUNK_SIZE):
                detector.feed(chunk)
                log.write(chunk)
            detector.finish()
        finally:
            log.close()

        if not detector.is_ready:
            logger.warning("Process %r closed its output before reporting readiness", key)

    def _spawn_background(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background process task failed", exc_info=task.exception())


async def _read_bounded(
    process: asyncio.subprocess.Process,
    stream: asyncio.StreamReader,
    limit: int,
) -> bytes | None:
    """
    Read a stream to EOF, killing the process if it exceeds `limit` bytes.

    Returns:
        The bytes read, or None on overflow.
    """
    buffer = bytearray()
    while chunk := await stream.read(READ_CHUNK_SIZE):
        buffer.extend(chunk)
        if len(buffer) > limit:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            # Drain so the stderr reader and the exit wait can finish.
            while await stream.read(READ_CHUNK_SIZE):
                pass
            return None
    return bytes(buffer)
