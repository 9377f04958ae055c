"""
Global configuration for the launcher.

This module contains environment-specific settings that apply across all components.
"""

import os
import sys
from collections.abc import Sequence

_SUPPORTED_LAUNCH_ENVS: list[str] = ["prod", "test"]

LAUNCH_ENV = os.environ.get("CHAIN_LAUNCH_ENV", "prod").lower()
"""The environment flag ('prod' or 'test'). Defaults to 'prod'."""

if LAUNCH_ENV not in _SUPPORTED_LAUNCH_ENVS:
    raise ValueError(
        f"Invalid CHAIN_LAUNCH_ENV environment variable: '{LAUNCH_ENV}'. "
        f"Supported values: {_SUPPORTED_LAUNCH_ENVS}"
    )

VERBOSE_FLAGS: frozenset[str] = frozenset({"--verbose", "-v"})
"""Launcher arguments that turn on command-line tracing."""

VERBOSE_ENV = os.environ.get("CHAIN_LAUNCH_VERBOSE", "") not in ("", "0", "false")
"""Force command-line tracing regardless of the launcher's own arguments."""


def is_verbose(argv: Sequence[str] | None = None) -> bool:
    """
    Check whether every spawned command line should be echoed.

    Args:
        argv: Arguments to inspect. Defaults to the launcher's own ``sys.argv``.
    """
    if VERBOSE_ENV:
        return True
    args = sys.argv if argv is None else argv
    return any(arg in VERBOSE_FLAGS for arg in args)
