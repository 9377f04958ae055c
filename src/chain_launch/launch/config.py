"""
Launch configuration loader.

Describes the whole local network in one YAML or JSON document. Field names
use camelCase to match the convention of node tooling configuration files:

    relaychain:
      bin: ./polkadot
      chain: rococo-local
      nodes:
        - name: alice
          wsPort: 9944
          port: 30444
        - name: bob
          wsPort: 9955
          port: 30555
    parachains:
      - bin: ./collator
        id: "2000"
        nodes:
          - wsPort: 9988
            port: 31200
            name: alice
            flags: ["--", "--execution=wasm"]
    simpleParachains:
      - bin: ./adder-collator
        id: "100"
        port: "31300"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator

from chain_launch.types import ConfigurationError, StrictBaseModel


def _int_to_str(value: Any) -> Any:
    """YAML reads unquoted ids and ports as integers; accept them as text."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class RelayNodeSpec(StrictBaseModel):
    """One relay chain validator."""

    name: str
    """Development account name (alice, bob, ...). Also the log file name."""

    port: int
    """libp2p listen port."""

    ws_port: int | None = None
    """Optional websocket RPC port."""

    rpc_port: int | None = None
    """Optional HTTP RPC port."""

    node_key: str | None = None
    """
    Static libp2p secret key.

    When omitted, a key derived from the node's position is used so that
    peer ids stay stable across launches.
    """

    base_path: str | None = None
    """Database directory. Ephemeral storage when omitted."""

    flags: list[str] = Field(default_factory=list)
    """Extra flags for this node only."""


class RelayChainSpec(StrictBaseModel):
    """The relay chain and its validators."""

    bin: str
    """Relay chain node executable."""

    chain: str
    """Named chain to generate the chain spec for (e.g. rococo-local)."""

    nodes: list[RelayNodeSpec] = Field(min_length=1)
    """Validators, started in order."""

    flags: list[str] = Field(default_factory=list)
    """Extra flags shared by every validator, placed before per-node flags."""

    @model_validator(mode="after")
    def validate_unique_names(self) -> RelayChainSpec:
        """Node names key both processes and log files, so they must be unique."""
        names = [node.name for node in self.nodes]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate relay node names: {duplicates}")
        return self


class ParachainNodeSpec(StrictBaseModel):
    """One collator of a parachain."""

    ws_port: int | None = None
    """Optional websocket RPC port."""

    rpc_port: int | None = None
    """Optional HTTP RPC port."""

    port: int | None = None
    """Optional libp2p listen port."""

    name: str | None = None
    """Optional development account name."""

    base_path: str | None = None
    """Database directory. Ephemeral storage when omitted."""

    flags: list[str] = Field(default_factory=list)
    """Extra flags; those after `--` go to the embedded relay chain node."""


class ParachainSpec(StrictBaseModel):
    """A parachain and its collators."""

    bin: str
    """Collator executable."""

    chain: str | None = None
    """Optional named parachain spec."""

    id: str | None = None
    """Parachain id. Read from the collator's chain spec when omitted."""

    nodes: list[ParachainNodeSpec] = Field(min_length=1)
    """Collators, started in order."""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Accept an unquoted numeric id."""
        return _int_to_str(v)


class SimpleParachainSpec(StrictBaseModel):
    """A legacy single-node test parachain."""

    bin: str
    """Collator executable."""

    id: str
    """Parachain id."""

    port: str
    """libp2p listen port."""

    skip_id_arg: bool = False
    """Omit `--parachain-id` for collators that do not accept it."""

    @field_validator("id", "port", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        """Accept an unquoted numeric id or port."""
        return _int_to_str(v)


class LaunchConfig(StrictBaseModel):
    """Complete description of a local test network."""

    relaychain: RelayChainSpec
    """The relay chain."""

    parachains: list[ParachainSpec] = Field(default_factory=list)
    """Parachains with full collators."""

    simple_parachains: list[SimpleParachainSpec] = Field(default_factory=list)
    """Legacy test parachains."""

    ready_timeout: float | None = Field(default=None, gt=0)
    """
    Seconds to wait for each collator to report readiness.

    Unbounded when omitted.
    """

    @classmethod
    def from_file(cls, path: Path | str) -> LaunchConfig:
        """
        Load configuration from a YAML or JSON file.

        JSON is valid YAML, so both go through the YAML parser.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the data fails validation.
        """
        path = Path(path)
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)

    @classmethod
    def from_yaml(cls, content: str) -> LaunchConfig:
        """
        Load configuration from a YAML string.

        Useful for testing or programmatic config generation.
        """
        data = yaml.safe_load(content)
        return cls.model_validate(data)


def load_launch_config(path: Path | str) -> LaunchConfig:
    """
    Load a launch configuration, reporting any problem as a ConfigurationError.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file cannot be parsed or validated.
    """
    try:
        return LaunchConfig.from_file(path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path} is not valid YAML or JSON: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"{path}: {e}") from e
