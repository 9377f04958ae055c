"""Shared model bases and the error hierarchy for the launcher."""

from .base import CamelModel, StrictBaseModel
from .exceptions import (
    ConfigurationError,
    LaunchError,
    MalformedArtifact,
    ProcessKeyConflict,
    SpawnFailure,
)

__all__ = [
    # Models
    "CamelModel",
    "StrictBaseModel",
    # Exceptions
    "LaunchError",
    "ConfigurationError",
    "ProcessKeyConflict",
    "SpawnFailure",
    "MalformedArtifact",
]
