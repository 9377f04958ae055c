"""Launching a complete local network from a configuration file."""

from .config import (
    LaunchConfig,
    ParachainNodeSpec,
    ParachainSpec,
    RelayChainSpec,
    RelayNodeSpec,
    SimpleParachainSpec,
    load_launch_config,
)
from .launcher import (
    Launcher,
    ParachainGenesis,
    collator_configs,
    default_node_key,
    relay_node_configs,
)

__all__ = [
    "LaunchConfig",
    "Launcher",
    "ParachainGenesis",
    "ParachainNodeSpec",
    "ParachainSpec",
    "RelayChainSpec",
    "RelayNodeSpec",
    "SimpleParachainSpec",
    "collator_configs",
    "default_node_key",
    "load_launch_config",
    "relay_node_configs",
]
