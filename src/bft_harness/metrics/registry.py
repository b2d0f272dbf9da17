"""
Metric registry using prometheus_client.

Tracks what the harness did during a run: launches, expectation outcomes,
timeouts and scenario results. The CLI writes the text exposition to a file
so CI can archive it next to the kept node logs.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Dedicated registry so default process collectors stay out of the output.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Node Lifecycle
# -----------------------------------------------------------------------------

nodes_started = Counter(
    "harness_nodes_started_total",
    "Node processes that reached a responsive query endpoint",
    registry=REGISTRY,
)

node_launch_failures = Counter(
    "harness_node_launch_failures_total",
    "Node processes that failed to launch",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Expectations
# -----------------------------------------------------------------------------

expectations = Counter(
    "harness_expectations_total",
    "Settled expectations by outcome",
    ["outcome"],
    registry=REGISTRY,
)

condition_timeouts = Counter(
    "harness_condition_timeouts_total",
    "Polled conditions that missed their deadline",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Scenarios
# -----------------------------------------------------------------------------

scenarios = Counter(
    "harness_scenarios_total",
    "Finished scenarios by result",
    ["result"],
    registry=REGISTRY,
)

scenario_duration = Histogram(
    "harness_scenario_seconds",
    "Scenario wall-clock duration",
    buckets=(1.0, 5.0, 10.0, 20.0, 40.0, 60.0, 90.0, 120.0),
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
