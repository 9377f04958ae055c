"""Process orchestration for a local relay chain and its parachains."""

from .args import (
    FLAG_SEPARATOR,
    CollatorConfig,
    ProcessKey,
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
    split_collator_flags,
)
from .chain_spec import parse_parachain_id
from .orchestrator import (
    GENESIS_STATE_MAX_BUFFER,
    GENESIS_WASM_MAX_BUFFER,
    Orchestrator,
)
from .readiness import (
    COLLATOR_READY_PATTERNS,
    SIMPLE_COLLATOR_READY_PATTERNS,
    ReadinessDetector,
    ReadinessState,
)
from .registry import ProcessHandle, ProcessRegistry
from .spawner import Spawner

__all__ = [
    # Configuration
    "CollatorConfig",
    "ProcessKey",
    "RelayNodeConfig",
    "SimpleCollatorConfig",
    # Argument builders
    "FLAG_SEPARATOR",
    "build_chain_spec_args",
    "build_collator_args",
    "build_export_genesis_state_args",
    "build_export_genesis_wasm_args",
    "build_purge_args",
    "build_raw_chain_spec_args",
    "build_relay_node_args",
    "build_simple_collator_args",
    "build_spec_query_args",
    "split_collator_flags",
    # Processes
    "Orchestrator",
    "ProcessHandle",
    "ProcessRegistry",
    "Spawner",
    "GENESIS_STATE_MAX_BUFFER",
    "GENESIS_WASM_MAX_BUFFER",
    # Readiness
    "COLLATOR_READY_PATTERNS",
    "SIMPLE_COLLATOR_READY_PATTERNS",
    "ReadinessDetector",
    "ReadinessState",
    # Artifacts
    "parse_parachain_id",
]
