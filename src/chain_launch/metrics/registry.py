"""
Metric registry using prometheus_client.

Tracks what the launcher has started and how long nodes take to become ready.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a dedicated registry for launcher metrics.
#
# Using a dedicated registry avoids pollution from default Python process metrics.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Process Lifecycle
# -----------------------------------------------------------------------------

processes_spawned = Counter(
    "chain_launch_processes_spawned_total",
    "Child processes started",
    registry=REGISTRY,
)

spawn_failures = Counter(
    "chain_launch_spawn_failures_total",
    "Child processes that failed to start or exited with an error",
    registry=REGISTRY,
)

processes_tracked = Gauge(
    "chain_launch_processes_tracked",
    "Entries currently held in the process registry",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Readiness
# -----------------------------------------------------------------------------

readiness_wait_time = Histogram(
    "chain_launch_readiness_wait_seconds",
    "Time from spawn until a node reported it is listening",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
