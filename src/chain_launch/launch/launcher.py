"""
Network launcher.

Drives an Orchestrator through the fixed launch sequence: relay chain spec,
parachain genesis artifacts, relay validators, then collators.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from pathlib import Path

from chain_launch.orchestration import (
    CollatorConfig,
    Orchestrator,
    RelayNodeConfig,
    SimpleCollatorConfig,
)

from .config import LaunchConfig, ParachainSpec, RelayChainSpec

logger = logging.getLogger(__name__)


def default_node_key(index: int) -> str:
    """
    Deterministic libp2p secret key for the validator at `index`.

    Stable keys give stable peer ids, so bootnode addresses survive restarts.
    """
    return f"{index + 1:064x}"


def relay_node_configs(relay: RelayChainSpec, spec: str) -> list[RelayNodeConfig]:
    """Turn the relay chain section into per-validator configurations."""
    return [
        RelayNodeConfig(
            binary=relay.bin,
            name=node.name,
            spec=spec,
            port=node.port,
            node_key=node.node_key or default_node_key(index),
            ws_port=node.ws_port,
            rpc_port=node.rpc_port,
            base_path=node.base_path,
            flags=(*relay.flags, *node.flags),
        )
        for index, node in enumerate(relay.nodes)
    ]


def collator_configs(parachain: ParachainSpec, spec: str) -> list[CollatorConfig]:
    """
    Turn one parachain section into per-collator configurations.

    A parachain with a single collator forces block authoring, since that
    collator will never see a parachain peer.

    Raises:
        ConfigurationError: If a collator has no port at all.
    """
    only_one = len(parachain.nodes) == 1
    return [
        CollatorConfig(
            binary=parachain.bin,
            spec=spec,
            ws_port=node.ws_port,
            rpc_port=node.rpc_port,
            port=node.port,
            name=node.name,
            chain=parachain.chain,
            base_path=node.base_path,
            only_one_parachain_node=only_one,
            flags=tuple(node.flags),
        )
        for node in parachain.nodes
    ]


@dataclass(frozen=True, slots=True)
class ParachainGenesis:
    """Genesis artifacts needed to register a parachain on the relay chain."""

    id: str
    """Parachain id."""

    genesis_wasm: str
    """Hex encoded genesis runtime, `0x` prefixed."""

    genesis_state: str
    """Hex encoded genesis head."""

    wasm_path: Path
    """File the runtime was written to."""

    state_path: Path
    """File the head was written to."""


@dataclass(slots=True)
class Launcher:
    """
    Launches a configured network on an orchestrator.

    `run` returns once every node is up. Teardown belongs to the orchestrator.
    """

    config: LaunchConfig
    """Network description."""

    orchestrator: Orchestrator
    """Process owner for everything the launcher starts."""

    genesis: list[ParachainGenesis] = field(default_factory=list)
    """Artifacts of every full parachain, filled in by `run`."""

    async def run(self) -> None:
        """
        Launch the whole network.

        Raises:
            SpawnFailure: If any node binary invocation fails.
            MalformedArtifact: If a parachain id cannot be read from its spec.
            ConfigurationError: If a collator has no usable port configured.
            TimeoutError: If a collator misses the configured ready timeout.
        """
        relay = self.config.relaychain
        orchestrator = self.orchestrator

        # Collator configurations are validated before anything is spawned.
        relay_spec = f"{relay.chain}-raw.json"
        collators = [collator_configs(para, relay_spec) for para in self.config.parachains]
        simple_collators = [
            SimpleCollatorConfig(
                binary=simple.bin,
                id=simple.id,
                spec=relay_spec,
                port=simple.port,
                skip_id_arg=simple.skip_id_arg,
            )
            for simple in self.config.simple_parachains
        ]

        logger.info("Generating chain spec for %s", relay.chain)
        await orchestrator.generate_chain_spec(relay.bin, relay.chain)
        await orchestrator.generate_chain_spec_raw(relay.bin, relay.chain)

        for parachain in self.config.parachains:
            self.genesis.append(await self.export_genesis(parachain))

        for node in relay_node_configs(relay, relay_spec):
            logger.info("Starting relay chain node %s", node.name)
            await orchestrator.start_node(node)

        for parachain_collators in collators:
            for collator in parachain_collators:
                logger.info("Starting collator %s", collator.process_key)
                await self._until_ready(orchestrator.start_collator(collator))

        for simple in simple_collators:
            logger.info("Starting simple collator for parachain %s", simple.id)
            await self._until_ready(orchestrator.start_simple_collator(simple))

        logger.info(
            "Network launched: %d relay nodes, %d collators",
            len(relay.nodes),
            sum(len(c) for c in collators) + len(self.config.simple_parachains),
        )

    async def export_genesis(self, parachain: ParachainSpec) -> ParachainGenesis:
        """
        Resolve a parachain's id and export its genesis runtime and head.

        Both artifacts are also written to `<id>-genesis-wasm` and
        `<id>-genesis-state` in the orchestrator's working directory.
        """
        orchestrator = self.orchestrator
        para_id = parachain.id
        if para_id is None:
            found = await orchestrator.get_parachain_id_from_spec(parachain.bin, parachain.chain)
            para_id = str(found)
            logger.info("Read parachain id %s from chain spec", para_id)

        wasm = await orchestrator.export_genesis_wasm(parachain.bin, parachain.chain)
        state = await orchestrator.export_genesis_state(parachain.bin, parachain.chain)

        wasm_path = orchestrator.workdir / f"{para_id}-genesis-wasm"
        state_path = orchestrator.workdir / f"{para_id}-genesis-state"
        wasm_path.write_text(wasm, encoding="utf-8")
        state_path.write_text(state, encoding="utf-8")
        logger.info("Exported genesis of parachain %s to %s, %s", para_id, wasm_path, state_path)

        return ParachainGenesis(
            id=para_id,
            genesis_wasm=wasm,
            genesis_state=state,
            wasm_path=wasm_path,
            state_path=state_path,
        )

    async def _until_ready(self, start: Awaitable[object]) -> None:
        async with asyncio.timeout(self.config.ready_timeout):
            await start
