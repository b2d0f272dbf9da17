"""
Metrics module for observability.

Provides counters and histograms describing a harness run.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    condition_timeouts,
    expectations,
    generate_metrics,
    node_launch_failures,
    nodes_started,
    scenario_duration,
    scenarios,
)

__all__ = [
    "REGISTRY",
    "condition_timeouts",
    "expectations",
    "generate_metrics",
    "node_launch_failures",
    "nodes_started",
    "scenario_duration",
    "scenarios",
]
