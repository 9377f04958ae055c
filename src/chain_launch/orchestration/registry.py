"""
Registry of running child processes and the shutdown routine that drains it.

The registry is the single source of truth for what the launcher has started.
Teardown only ever needs this table: it terminates every entry and returns.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Protocol

from chain_launch.types import ProcessKeyConflict

from .args import ProcessKey

logger = logging.getLogger(__name__)


class ProcessHandle(Protocol):
    """The subset of `asyncio.subprocess.Process` the registry relies on."""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

class ProcessRegistry:
    """
    Mapping from process key to live process handle.

    Entries are added at spawn time and removed when the spawner observes the
    process exiting. A key may be reused once its previous holder has exited.

    Mutation is guarded by a re-entrant lock so `kill_all` stays safe when
    called from an `atexit` hook or a signal path on the loop thread.
    """

    def __init__(self) -> None:
        self._processes: dict[ProcessKey, ProcessHandle] = {}
        self._lock = threading.RLock()

    def register(self, key: ProcessKey, handle: ProcessHandle) -> None:
        """
        Track a freshly spawned process.

        An entry whose process has already exited is replaced silently.

        Raises:
            ProcessKeyConflict: If `key` is held by a process still running.
        """
        with self._lock:
            current = self._processes.get(key)
            if current is not None and current is not handle and current.returncode is None:
                raise ProcessKeyConflict(key)
            self._processes[key] = handle
        logger.debug("Registered process %r (pid %d)", key, handle.pid)

    def unregister(self, key: ProcessKey, handle: ProcessHandle | None = None) -> bool:
        """
        Stop tracking a process.

        Args:
            key: Key to remove.
            handle: If given, only remove the entry while it still points at
                this handle. A newer process registered under the same key is
                left alone.

        Returns:
            True if an entry was removed.
        """
        with self._lock:
            current = self._processes.get(key)
            if current is None or (handle is not None and current is not handle):
                return False
            del self._processes[key]
        logger.debug("Unregistered process %r", key)
        return True

    def get(self, key: ProcessKey) -> ProcessHandle | None:
        """Look up the handle registered under `key`."""
        with self._lock:
            return self._processes.get(key)

    def keys(self) -> list[ProcessKey]:
        """Snapshot of the registered keys."""
        with self._lock:
            return list(self._processes)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._processes

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def __iter__(self) -> Iterator[ProcessKey]:
        return iter(self.keys())

    def kill_all(self, *, force: bool = False) -> int:
        """
        Send a termination signal to every registered process.

        Does not wait for the processes to exit and does not remove entries;
        each entry disappears when its exit is observed. Handles that have
        already exited are skipped, so calling this repeatedly is harmless.

        Args:
            force: Send SIGKILL instead of SIGTERM, for processes that
                ignored an earlier request.

        Returns:
            Number of processes signalled.
        """
        with self._lock:
            snapshot = list(self._processes.items())

        if snapshot:
            logger.info("Killing all processes...")

        signalled = 0
        for key, handle in snapshot:
            if handle.returncode is not None:
                continue
            try:
                if force:
                    handle.kill()
                else:
                    handle.terminate()
            except ProcessLookupError:
                # Exited between the check and the signal.
                continue
            action = "kill" if force else "terminate"
            logger.debug("Sent %s to %r (pid %d)", action, key, handle.pid)
            signalled += 1
        return signalled
