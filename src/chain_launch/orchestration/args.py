"""
Command-line assembly for every node binary invocation.

Each builder is a pure function from a typed configuration to an argument
vector. Builders never look at process state. Flag spellings and ordering are
a contract with the node binary and must not change.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

from chain_launch.types import ConfigurationError

logger = logging.getLogger(__name__)

FLAG_SEPARATOR: Final = "--"
"""
Token that splits collator extra flags.

Flags before it go to the parachain side of the collator.
Flags after it go to the embedded relay chain node.
"""

ProcessKey = str | int
"""Registry key: a node name, a port, or a fixed label."""


@dataclass(frozen=True, slots=True)
class RelayNodeConfig:
    """Configuration for one relay chain validator node."""

    binary: str
    """Path to the relay chain node executable."""

    name: str
    """
    Well-known development account name (alice, bob, ...).

    Also selects the node's role flag and its log file name.
    """

    spec: str
    """Chain spec the node runs (usually the raw spec file)."""

    port: int
    """libp2p listen port."""

    node_key: str
    """Static libp2p secret key, hex encoded."""

    ws_port: int | None = field(default=None)
    """Optional websocket RPC port."""

    rpc_port: int | None = field(default=None)
    """Optional HTTP RPC port."""

    base_path: str | None = field(default=None)
    """Database directory. If None, the node runs with ephemeral storage."""

    flags: Sequence[str] = field(default=())
    """Extra flags appended verbatim."""

    @property
    def process_key(self) -> ProcessKey:
        """Relay nodes are tracked by name."""
        return self.name


@dataclass(frozen=True, slots=True)
class CollatorConfig:
    """
    Configuration for one parachain collator node.

    At least one of `ws_port`, `rpc_port` and `port` must be set to a nonzero
    value. The first of them that is set becomes the process key and the log
    file name.
    """

    binary: str
    """Path to the collator executable."""

    spec: str
    """Relay chain spec for the embedded relay chain node."""

    ws_port: int | None = field(default=None)
    """Optional websocket RPC port."""

    rpc_port: int | None = field(default=None)
    """Optional HTTP RPC port."""

    port: int | None = field(default=None)
    """Optional libp2p listen port."""

    name: str | None = field(default=None)
    """Optional development account name, emitted as a role flag."""

    chain: str | None = field(default=None)
    """Optional parachain chain spec."""

    base_path: str | None = field(default=None)
    """Database directory. If None, the collator runs with ephemeral storage."""

    only_one_parachain_node: bool = field(default=False)
    """Force block authoring when the collator has no parachain peers."""

    flags: Sequence[str] = field(default=())
    """
    Extra flags, optionally split by `--`.

    Flags before the separator go to the parachain, flags after it to the
    embedded relay chain node.
    """

    process_key: int = field(init=False, repr=False, compare=False)
    """First configured port, in ws, rpc, p2p order."""

    def __post_init__(self) -> None:
        for port in (self.ws_port, self.rpc_port, self.port):
            if port:
                object.__setattr__(self, "process_key", port)
                return
        raise ConfigurationError("collator needs at least one of ws_port, rpc_port or port")


@dataclass(frozen=True, slots=True)
class SimpleCollatorConfig:
    """Configuration for a legacy single-binary test collator."""

    binary: str
    """Path to the collator executable."""

    id: str
    """Parachain identifier."""

    spec: str
    """Relay chain spec."""

    port: str
    """libp2p listen port, as decimal text."""

    skip_id_arg: bool = field(default=False)
    """Omit `--parachain-id` for collators that do not accept it."""

    def __post_init__(self) -> None:
        if not self.port.isdecimal():
            raise ConfigurationError(f"simple collator port must be a number, got {self.port!r}")

    @property
    def process_key(self) -> ProcessKey:
        """
        Simple collators are tracked by numeric port.

        Collators keyed by the same port then collide in the registry instead
        of sharing a log file.
        """
        return int(self.port)


def _storage_flag(base_path: str | None) -> str:
    if base_path:
        return f"--base-path={base_path}"
    return "--tmp"


def _optional_chain(chain: str | None) -> list[str]:
    return [f"--chain={chain}"] if chain else []


def build_relay_node_args(config: RelayNodeConfig) -> list[str]:
    """
    Build the argument vector for a relay chain validator.

    The role flag is the lower-cased node name, so `name` must be one of the
    development accounts known to the node binary.
    """
    args = [
        f"--chain={config.spec}",
        f"--port={config.port}",
        f"--node-key={config.node_key}",
        f"--{config.name.lower()}",
    ]

    if config.ws_port:
        args.append(f"--ws-port={config.ws_port}")

    if config.rpc_port:
        args.append(f"--rpc-port={config.rpc_port}")

    args.append(_storage_flag(config.base_path))

    if config.flags:
        args.extend(config.flags)
        logger.debug("Added %s", list(config.flags))

    return args


def split_collator_flags(flags: Sequence[str]) -> tuple[list[str], list[str]]:
    """
    Partition collator extra flags at the first separator.

    Returns:
        The parachain-side flags and the relay-side flags. Without a
        separator every flag is parachain side.
    """
    flags = list(flags)
    if FLAG_SEPARATOR not in flags:
        return flags, []
    split_index = flags.index(FLAG_SEPARATOR)
    return flags[:split_index], flags[split_index + 1 :]


def build_collator_args(config: CollatorConfig) -> list[str]:
    """
    Build the argument vector for a parachain collator.

    Layout::

        [--port] [--ws-port] [--rpc-port] --collator <storage> [--chain]
        [--<name>] [--force-authoring] <parachain flags>
        -- --chain=<relay spec> <relay flags>

    The node binary parses everything after `--` as arguments for its
    embedded relay chain node, so the order across the separator matters.
    """
    args = [f"--port={config.port}"] if config.port else []

    if config.ws_port:
        args.append(f"--ws-port={config.ws_port}")

    if config.rpc_port:
        args.append(f"--rpc-port={config.rpc_port}")
        logger.debug("Added --rpc-port=%s", config.rpc_port)

    args.append("--collator")
    args.append(_storage_flag(config.base_path))
    args.extend(_optional_chain(config.chain))

    if config.name:
        args.append(f"--{config.name.lower()}")
        logger.debug("Added --%s", config.name.lower())

    if config.only_one_parachain_node:
        args.append("--force-authoring")
        logger.debug("Added --force-authoring")

    parachain_flags, relay_flags = split_collator_flags(config.flags)

    if parachain_flags:
        args.extend(parachain_flags)
        logger.debug("Added %s to parachain", parachain_flags)

    # Arguments for the relay chain node embedded in the collator binary.
    args.extend([FLAG_SEPARATOR, f"--chain={config.spec}"])

    if relay_flags:
        args.extend(relay_flags)
        logger.debug("Added %s to collator", relay_flags)

    return args


def build_simple_collator_args(config: SimpleCollatorConfig) -> list[str]:
    """Build the argument vector for a legacy test collator."""
    args = [
        "--tmp",
        f"--port={config.port}",
        f"--chain={config.spec}",
        "--execution=wasm",
    ]

    if not config.skip_id_arg:
        args.append(f"--parachain-id={config.id}")
        logger.debug("Added --parachain-id=%s", config.id)

    return args


def build_chain_spec_args(chain: str) -> list[str]:
    """Plain chain spec generation for a named chain."""
    return ["build-spec", f"--chain={chain}", "--disable-default-bootnode"]


def build_raw_chain_spec_args(chain: str) -> list[str]:
    """Raw chain spec conversion from `<chain>.json`."""
    return ["build-spec", f"--chain={chain}.json", "--raw"]


def build_spec_query_args(chain: str | None = None) -> list[str]:
    """Chain spec dump used to read the parachain id."""
    return ["build-spec", *_optional_chain(chain)]


def build_export_genesis_wasm_args(chain: str | None = None) -> list[str]:
    """Genesis runtime export."""
    return ["export-genesis-wasm", *_optional_chain(chain)]


def build_export_genesis_state_args(chain: str | None = None) -> list[str]:
    """Genesis head export."""
    return ["export-genesis-state", *_optional_chain(chain)]


def build_purge_args(spec: str | None = None) -> list[str]:
    """Database purge without the interactive confirmation prompt."""
    return ["purge-chain", *_optional_chain(spec), "-y"]
