"""Exception hierarchy for process orchestration."""

from __future__ import annotations

from collections.abc import Sequence


class LaunchError(Exception):
    """
    Base exception for all launcher errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class ConfigurationError(LaunchError):
    """
    Raised when a node configuration cannot be turned into a command line.

    Always raised before any process is spawned.

    Attributes:
        detail: Description of what is wrong with the configuration.
    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid configuration: {detail}")


class ProcessKeyConflict(ConfigurationError):
    """
    Raised when a process key is already held by a running process.

    Attributes:
        key: The process key that is still in use.
    """

    def __init__(self, key: str | int) -> None:
        self.key = key
        super().__init__(f"process key {key!r} is already held by a running process")


class SpawnFailure(LaunchError):
    """
    Raised when a child process cannot be started or reports a failure.

    Attributes:
        binary: The executable that was invoked.
        args: The argument vector passed to it.
        returncode: Exit status, if the process ran and exited.
        detail: Additional context about the failure.

    The underlying OS error, when there is one, is chained as ``__cause__``.
    """

    def __init__(
        self,
        binary: str,
        args: Sequence[str],
        *,
        returncode: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.binary = binary
        self.args_vector = list(args)
        self.returncode = returncode
        self.detail = detail

        if returncode is not None:
            msg = f"{binary} exited with status {returncode}"
        else:
            msg = f"Failed to run {binary}"
        if detail:
            msg = f"{msg}: {detail}"

        super().__init__(msg)


class MalformedArtifact(LaunchError):
    """
    Raised when an artifact produced by the node binary cannot be interpreted.

    Attributes:
        artifact: Name of the artifact being read (e.g. "chain spec").
        detail: Description of what was missing or invalid.
    """

    def __init__(self, artifact: str, detail: str) -> None:
        self.artifact = artifact
        self.detail = detail
        super().__init__(f"Malformed {artifact}: {detail}")
