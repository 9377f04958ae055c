"""Shared fixtures for launcher tests that run real child processes."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from chain_launch.orchestration import Orchestrator
from tests.chain_launch.helpers import write_fake_node


@pytest.fixture
def fake_node(tmp_path: Path) -> Path:
    """Executable standing in for the node binary."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return write_fake_node(bin_dir)


@pytest.fixture
def record(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """File collecting the argv of every fake node invocation."""
    path = tmp_path / "invocations.jsonl"
    monkeypatch.setenv("FAKE_NODE_RECORD", str(path))
    return path


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Working directory for specs and logs."""
    path = tmp_path / "network"
    path.mkdir()
    return path


@pytest.fixture
async def orchestrator(workdir: Path) -> AsyncGenerator[Orchestrator]:
    """
    Provide an orchestrator with automatic teardown.

    Teardown kills every process the test left running and waits for their
    output pumps, so no child outlives its test.
    """
    orch = Orchestrator(workdir)
    yield orch
    await orch.aclose()
