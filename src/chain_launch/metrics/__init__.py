"""
Metrics module for observability.

Provides counters, gauges, and histograms for tracking spawned processes.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    generate_metrics,
    processes_spawned,
    processes_tracked,
    readiness_wait_time,
    spawn_failures,
)

__all__ = [
    "REGISTRY",
    "generate_metrics",
    "processes_spawned",
    "processes_tracked",
    "readiness_wait_time",
    "spawn_failures",
]
