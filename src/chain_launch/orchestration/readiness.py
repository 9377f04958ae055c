"""
Readiness detection from unstructured node output.

Nodes do not report readiness through any API. They print a log line once their
client-facing server is listening. The detector watches the error stream for
one of a known set of phrases and fires a one-shot signal on the first match.
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import Iterable
from enum import Enum
from typing import Final

COLLATOR_READY_PATTERNS: Final[frozenset[str]] = frozenset(
    {
        "Running JSON-RPC WS server:",
        "Listening for new connections",
        "Running JSON-RPC server:",
    }
)
"""Phrases a collator prints once its RPC server accepts connections."""

SIMPLE_COLLATOR_READY_PATTERNS: Final[frozenset[str]] = frozenset(
    {
        "Running JSON-RPC WS server:",
        "Listening for new connections",
    }
)
"""Phrases recognised for legacy test collators."""


class ReadinessState(Enum):
    """Detector lifecycle. PENDING moves to READY once and never back."""

    PENDING = "pending"
    READY = "ready"


class ReadinessDetector:
    """
    Single-fire readiness signal driven by output chunks.

    Chunks are decoded incrementally so a multi-byte character or a phrase
    split across two reads is still recognised. Matching happens on complete
    lines; `finish` tests whatever partial line is left when the stream ends.

    No timeout is applied. A node that never prints a matching line leaves
    `wait` pending; bounding the wait is up to the caller.
    """

    def __init__(self, patterns: Iterable[str] = COLLATOR_READY_PATTERNS) -> None:
        self.patterns = frozenset(patterns)
        if not self.patterns:
            raise ValueError("ReadinessDetector needs at least one pattern")

        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""
        self._ready = asyncio.Event()
        self.matched_line: str | None = None
        """The line that triggered readiness, if any."""

    @property
    def state(self) -> ReadinessState:
        """Current state of the detector."""
        return ReadinessState.READY if self._ready.is_set() else ReadinessState.PENDING

    @property
    def is_ready(self) -> bool:
        """Check if readiness has been observed."""
        return self._ready.is_set()

    def matches(self, line: str) -> bool:
        """Check a decoded line against the pattern set."""
        return any(pattern in line for pattern in self.patterns)

    def feed(self, chunk: bytes) -> bool:
        """
        Consume one chunk of output.

        Returns:
            True only for the chunk that caused the PENDING -> READY transition.
        """
        if self._ready.is_set():
            return False
        text = self._partial + self._decoder.decode(chunk)
        *lines, self._partial = text.split("\n")
        return self._scan(lines)

    def finish(self) -> bool:
        """
        Flush the decoder at end of stream and test the trailing partial line.

        Returns:
            True if this final line caused the transition.
        """
        tail = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return self._scan([tail]) if tail else False

    async def wait(self) -> None:
        """Block until the detector is ready."""
        await self._ready.wait()

    def _scan(self, lines: list[str]) -> bool:
        if self._ready.is_set():
            return False
        for line in lines:
            if self.matches(line):
                self.matched_line = line.rstrip("\r")
                self._ready.set()
                return True
        return False
