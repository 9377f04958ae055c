"""Tests for the orchestrator's node binary operations."""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path

import pytest

from chain_launch.orchestration import (
    CollatorConfig,
    Orchestrator,
    RelayNodeConfig,
    SimpleCollatorConfig,
    build_collator_args,
    build_relay_node_args,
    build_simple_collator_args,
)
from chain_launch.types import MalformedArtifact, ProcessKeyConflict, SpawnFailure
from tests.chain_launch.helpers import FakeProcess, read_invocations, wait_for_text


def relay_node(binary: Path, name: str = "alice", port: int = 30444) -> RelayNodeConfig:
    """Validator with ephemeral storage and a fixed node key."""
    return RelayNodeConfig(
        binary=str(binary),
        name=name,
        spec="rococo-local-raw.json",
        port=port,
        node_key="01" * 32,
    )


class TestChainSpec:
    """Tests for chain spec generation."""

    async def test_plain_and_raw_spec_files(
        self, orchestrator: Orchestrator, fake_node: Path, workdir: Path, record: Path
    ) -> None:
        """Both files land in the working directory under the chain name."""
        plain = await orchestrator.generate_chain_spec(str(fake_node), "rococo-local")
        raw = await orchestrator.generate_chain_spec_raw(str(fake_node), "rococo-local")

        assert plain == workdir / "rococo-local.json"
        assert raw == workdir / "rococo-local-raw.json"
        assert json.loads(plain.read_text())["id"] == "local_testnet"
        assert "raw" in json.loads(raw.read_text())["genesis"]

        assert read_invocations(record) == [
            ["build-spec", "--chain=rococo-local", "--disable-default-bootnode"],
            ["build-spec", "--chain=rococo-local.json", "--raw"],
        ]
        assert len(orchestrator.registry) == 0

    async def test_failed_generation(
        self, orchestrator: Orchestrator, fake_node: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failing build-spec aborts instead of leaving a half-written spec unnoticed."""
        monkeypatch.setenv("FAKE_NODE_EXIT", "1")
        with pytest.raises(SpawnFailure):
            await orchestrator.generate_chain_spec(str(fake_node), "rococo-local")


class TestParachainId:
    """Tests for reading the parachain id from the collator's spec."""

    async def test_camel_case_id(
        self, orchestrator: Orchestrator, fake_node: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The id is parsed from the dumped spec."""
        monkeypatch.setenv("FAKE_NODE_PARA_ID", "2000")
        assert await orchestrator.get_parachain_id_from_spec(str(fake_node)) == 2000

    async def test_snake_case_id_with_chain(
        self,
        orchestrator: Orchestrator,
        fake_node: Path,
        record: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The legacy key is read and the chain is passed through."""
        monkeypatch.setenv("FAKE_NODE_PARA_ID", "1000")
        monkeypatch.setenv("FAKE_NODE_PARA_KEY", "para_id")

        para_id = await orchestrator.get_parachain_id_from_spec(str(fake_node), "statemint-dev")

        assert para_id == 1000
        assert read_invocations(record) == [["build-spec", "--chain=statemint-dev"]]

    async def test_missing_id(self, orchestrator: Orchestrator, fake_node: Path) -> None:
        """A spec without an id is reported as malformed."""
        with pytest.raises(MalformedArtifact):
            await orchestrator.get_parachain_id_from_spec(str(fake_node))


class TestGenesisExports:
    """Tests for the genesis runtime and head exports."""

    async def test_exports(
        self, orchestrator: Orchestrator, fake_node: Path, record: Path
    ) -> None:
        """Both exports return trimmed hex strings."""
        wasm = await orchestrator.export_genesis_wasm(str(fake_node), "dev")
        state = await orchestrator.export_genesis_state(str(fake_node))

        assert wasm.startswith("0x") and wasm == wasm.strip()
        assert state == "0x" + "00" * 32
        assert read_invocations(record) == [
            ["export-genesis-wasm", "--chain=dev"],
            ["export-genesis-state"],
        ]

    async def test_wasm_bound_is_configurable(
        self, orchestrator: Orchestrator, fake_node: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A runtime larger than the bound is refused."""
        monkeypatch.setenv("FAKE_NODE_OUTPUT_BYTES", "4096")
        with pytest.raises(SpawnFailure, match="exceeded"):
            await orchestrator.export_genesis_wasm(str(fake_node), max_buffer=1024)


class TestNodes:
    """Tests for starting long-running nodes."""

    async def test_start_node(
        self, orchestrator: Orchestrator, fake_node: Path, workdir: Path, record: Path
    ) -> None:
        """Relay nodes log to `<name>.log` and are tracked by name."""
        config = RelayNodeConfig(
            binary=str(fake_node),
            name="alice",
            spec="rococo-local-raw.json",
            port=30444,
            node_key="01" * 32,
            ws_port=9944,
        )

        process = await orchestrator.start_node(config)

        assert orchestrator.registry.get("alice") is process
        await wait_for_text(workdir / "alice.log", "stdout: node starting")
        assert read_invocations(record) == [build_relay_node_args(config)]

    async def test_start_collator(
        self, orchestrator: Orchestrator, fake_node: Path, workdir: Path, record: Path
    ) -> None:
        """Collators are tracked by port and awaited until listening."""
        config = CollatorConfig(
            binary=str(fake_node),
            spec="rococo-local-raw.json",
            ws_port=9988,
            port=31200,
            name="alice",
            only_one_parachain_node=True,
            flags=("--", "--execution=wasm"),
        )

        process = await asyncio.wait_for(orchestrator.start_collator(config), timeout=10)

        assert orchestrator.registry.get(9988) is process
        assert (workdir / "9988.log").exists()
        assert read_invocations(record) == [build_collator_args(config)]

    async def test_start_simple_collator(
        self, orchestrator: Orchestrator, fake_node: Path, workdir: Path, record: Path
    ) -> None:
        """Simple collators log to `<port>.log`."""
        config = SimpleCollatorConfig(
            binary=str(fake_node), id="100", spec="rococo-local-raw.json", port="31300"
        )

        await asyncio.wait_for(orchestrator.start_simple_collator(config), timeout=10)

        assert 31300 in orchestrator.registry
        await wait_for_text(workdir / "31300.log", "Listening for new connections")
        assert read_invocations(record) == [build_simple_collator_args(config)]

    async def test_simple_collator_on_collator_port(
        self, orchestrator: Orchestrator, fake_node: Path, workdir: Path
    ) -> None:
        """Both collator kinds share the port key space, so a clash keeps the first log."""
        collator = CollatorConfig(
            binary=str(fake_node), spec="rococo-local-raw.json", ws_port=None, port=31300
        )
        await asyncio.wait_for(orchestrator.start_collator(collator), timeout=10)
        await wait_for_text(workdir / "31300.log", "Listening for new connections")

        with pytest.raises(ProcessKeyConflict):
            await orchestrator.start_simple_collator(
                SimpleCollatorConfig(
                    binary=str(fake_node), id="100", spec="rococo-local-raw.json", port="31300"
                )
            )

        assert "Listening for new connections" in (workdir / "31300.log").read_text()
        assert len(orchestrator.registry) == 1


class TestTeardown:
    """Tests for killing everything the orchestrator started."""

    async def test_kill_all_terminates_every_node(
        self, orchestrator: Orchestrator, fake_node: Path
    ) -> None:
        """Every tracked node dies and its entry is removed."""
        processes = [
            await orchestrator.start_node(relay_node(fake_node, name, port))
            for name, port in [("alice", 30444), ("bob", 30555)]
        ]

        assert orchestrator.kill_all() == 2
        for process in processes:
            assert await asyncio.wait_for(process.wait(), timeout=5) != 0

        await orchestrator.aclose()
        assert len(orchestrator.registry) == 0

    async def test_aclose_escalates_to_sigkill(
        self,
        orchestrator: Orchestrator,
        fake_node: Path,
        workdir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A node that ignores SIGTERM is killed once the grace period runs out."""
        monkeypatch.setenv("FAKE_NODE_IGNORE_TERM", "1")
        process = await orchestrator.start_node(relay_node(fake_node))
        await wait_for_text(workdir / "alice.log", "stdout: node starting")

        await asyncio.wait_for(orchestrator.aclose(grace=0.5), timeout=5)

        assert process.returncode == -signal.SIGKILL
        assert len(orchestrator.registry) == 0

    async def test_aclose_completes_when_exit_is_never_observed(
        self, orchestrator: Orchestrator, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Teardown gives up on a process whose reaper never finishes."""
        stuck = FakeProcess()
        orchestrator.registry.register("stuck", stuck)

        async def never_exits() -> None:
            await asyncio.Event().wait()

        orchestrator.spawner._spawn_background(never_exits())

        await asyncio.wait_for(orchestrator.aclose(grace=0.1), timeout=5)

        assert stuck.terminate_calls == 1
        assert stuck.kill_calls == 1
        assert "Abandoning 1 processes" in caplog.text

    async def test_kill_all_when_empty(self, orchestrator: Orchestrator) -> None:
        """Nothing to signal is not an error."""
        assert orchestrator.kill_all() == 0
        assert orchestrator.kill_all() == 0

    async def test_purge(
        self,
        orchestrator: Orchestrator,
        fake_node: Path,
        record: Path,
        capfd: pytest.CaptureFixture[str],
    ) -> None:
        """Purging waits for the command and shows its output."""
        await orchestrator.purge_chain(str(fake_node), "rococo-local-raw.json")

        assert "Database purged" in capfd.readouterr().out
        assert read_invocations(record) == [
            ["purge-chain", "--chain=rococo-local-raw.json", "-y"]
        ]
        assert "purge" not in orchestrator.registry


class TestShutdownSignal:
    """Tests for the shutdown event driven by signal handlers."""

    async def test_stop_releases_waiters(self, orchestrator: Orchestrator) -> None:
        """Requesting shutdown wakes whoever waits for it."""
        assert orchestrator.is_running

        waiter = asyncio.create_task(orchestrator.wait_shutdown())
        await asyncio.sleep(0)
        orchestrator.stop()
        await asyncio.wait_for(waiter, timeout=1)

        assert not orchestrator.is_running

    async def test_install_exit_handlers_is_repeatable(
        self, orchestrator: Orchestrator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The atexit hook is registered once however often handlers are installed."""
        registered: list[object] = []
        monkeypatch.setattr("atexit.register", registered.append)

        orchestrator.install_exit_handlers()
        orchestrator.install_exit_handlers()

        assert registered == [orchestrator.kill_all]


class TestRunUntilShutdown:
    """Tests for running a launch until shutdown is requested."""

    async def test_network_stays_up_until_stop(
        self, orchestrator: Orchestrator, fake_node: Path
    ) -> None:
        """Nodes keep running after the launch until a stop request."""
        run = asyncio.create_task(
            orchestrator.run_until_shutdown(orchestrator.start_node(relay_node(fake_node)))
        )
        async with asyncio.timeout(5):
            while (process := orchestrator.registry.get("alice")) is None:
                await asyncio.sleep(0.02)

        await asyncio.sleep(0.2)
        assert not run.done()
        assert process.returncode is None

        orchestrator.stop()
        await asyncio.wait_for(run, timeout=10)

        assert process.returncode is not None
        assert len(orchestrator.registry) == 0

    async def test_stop_interrupts_readiness_wait(
        self, orchestrator: Orchestrator, fake_node: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A stop request during a readiness wait ends the launch and kills the collator."""
        monkeypatch.setenv("FAKE_NODE_READY", "0")
        collator = CollatorConfig(binary=str(fake_node), spec="rococo-local-raw.json", ws_port=9988)
        run = asyncio.create_task(
            orchestrator.run_until_shutdown(orchestrator.start_collator(collator))
        )
        async with asyncio.timeout(5):
            while (process := orchestrator.registry.get(9988)) is None:
                await asyncio.sleep(0.02)

        orchestrator.stop()
        await asyncio.wait_for(run, timeout=10)

        assert process.returncode is not None
        assert len(orchestrator.registry) == 0

    async def test_failed_launch_is_torn_down(
        self, orchestrator: Orchestrator, fake_node: Path
    ) -> None:
        """A launch error propagates after the nodes it started are killed."""
        started: list[asyncio.subprocess.Process] = []

        async def launch() -> None:
            started.append(await orchestrator.start_node(relay_node(fake_node)))
            raise SpawnFailure(str(fake_node), ["--collator"], returncode=1)

        with pytest.raises(SpawnFailure):
            await asyncio.wait_for(orchestrator.run_until_shutdown(launch()), timeout=10)

        (process,) = started
        assert process.returncode is not None
        assert len(orchestrator.registry) == 0
