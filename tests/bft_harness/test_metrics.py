"""Tests for the harness metrics registry."""

from __future__ import annotations

from bft_harness import metrics


class TestMetrics:
    """Tests for metric exposition."""

    def test_exposition_lists_harness_metrics(self) -> None:
        """The text output names every harness metric."""
        metrics.scenarios.labels(result="passed")
        metrics.expectations.labels(outcome="rejected")

        output = metrics.generate_metrics().decode()

        for name in (
            "harness_nodes_started_total",
            "harness_node_launch_failures_total",
            "harness_expectations_total",
            "harness_condition_timeouts_total",
            "harness_scenarios_total",
            "harness_scenario_seconds_bucket",
        ):
            assert name in output

    def test_registry_excludes_process_collectors(self) -> None:
        """Only harness metrics are exported."""
        output = metrics.generate_metrics().decode()

        assert "process_cpu_seconds_total" not in output
        assert "python_gc_objects_collected_total" not in output

    def test_counters_accumulate(self) -> None:
        """Counters only grow."""
        before = metrics.REGISTRY.get_sample_value("harness_node_launch_failures_total") or 0.0

        metrics.node_launch_failures.inc()

        after = metrics.REGISTRY.get_sample_value("harness_node_launch_failures_total")
        assert after == before + 1
