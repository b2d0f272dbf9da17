"""
Shared pytest fixtures for interop tests.

Nodes are real processes running the fake node script, so these tests
exercise process supervision, ports, JSON-RPC and teardown end to end.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import yaml

from bft_harness.cluster import NodeCluster
from bft_harness.config import HarnessConfig
from bft_harness.ports import PortAllocator
from bft_harness.roster import ValidatorRoster
from bft_harness.scenarios import ScenarioRunner

from .helpers import FAKE_NODE

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

BLOCK_INTERVAL = 0.3
"""Seconds between blocks sealed by a fake validator."""


@pytest.fixture(scope="session")
def port_allocator() -> PortAllocator:
    """
    Provide a shared port allocator across all tests.

    Session-scoped to prevent port conflicts from TIME_WAIT state.
    Each test gets unique ports that don't overlap.
    """
    return PortAllocator(base_p2p_port=33000, base_rpc_port=38000)


@pytest.fixture
def chain_file(tmp_path: Path, roster: ValidatorRoster) -> Path:
    """Chain definition the fake nodes read their validator set from."""
    path = tmp_path / "chain.yaml"
    data = {
        "NETWORK": roster.network,
        "GENESIS_AUTHOR": roster.genesis_authors[0],
        "VALIDATORS": list(roster.validators),
    }
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture
def harness_config(tmp_path: Path, chain_file: Path) -> HarnessConfig:
    """Configuration launching fake nodes with the current interpreter."""
    return HarnessConfig.from_mapping(
        {
            "binary": sys.executable,
            "binary_args": [str(FAKE_NODE)],
            "chain": str(chain_file),
            "work_dir": str(tmp_path / "work"),
            "log_dir": str(tmp_path / "logs"),
            "extra_args": ["--block-interval", str(BLOCK_INTERVAL)],
            "startup_timeout": 20,
            "shutdown_timeout": 5,
            "poll_interval": 0.2,
        },
        {},
    )


@pytest.fixture
async def node_cluster(
    request: pytest.FixtureRequest,
    harness_config: HarnessConfig,
    roster: ValidatorRoster,
    port_allocator: PortAllocator,
) -> AsyncGenerator[NodeCluster, None]:
    """
    Provide a started cluster with automatic cleanup.

    Validator count is configurable via the ``num_validators`` marker.
    Default: 4 validators.
    """
    marker = request.node.get_closest_marker("num_validators")
    num_validators = marker.args[0] if marker else 4

    cluster = NodeCluster(harness_config, roster, port_allocator=port_allocator)
    cluster.add_validators(num_validators)

    failed = True
    try:
        await cluster.start_all()
        yield cluster
        failed = False
    finally:
        await cluster.teardown(failed=failed)


@pytest.fixture
def scenario_runner(
    harness_config: HarnessConfig,
    roster: ValidatorRoster,
    port_allocator: PortAllocator,
) -> ScenarioRunner:
    """Runner whose clusters draw ports from the session allocator."""
    return ScenarioRunner(
        config=harness_config,
        roster=roster,
        cluster_options={"port_allocator": port_allocator},
    )
