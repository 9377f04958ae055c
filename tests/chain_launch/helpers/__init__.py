"""Test helpers for chain_launch unit tests."""

from __future__ import annotations

from .fake_node import (
    FakeProcess,
    read_invocations,
    wait_for_text,
    write_fake_node,
)

__all__ = [
    "FakeProcess",
    "read_invocations",
    "wait_for_text",
    "write_fake_node",
]
