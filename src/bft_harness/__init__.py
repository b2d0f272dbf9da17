"""
Multi-node test harness for BFT consensus networks.

Launches node processes, shapes their network, and asserts on what the nodes
report through their query interface: heights, peers and author sets.
"""

from .cluster import NodeCluster
from .config import HarnessConfig
from .errors import (
    ConditionTimeoutError,
    ExpectationFailedError,
    HarnessError,
    LaunchError,
    NodeStateError,
    RemoteError,
    ScenarioFailedError,
    ScenarioTimeoutError,
    TransportError,
    UnfulfilledExpectationError,
)
from .expectations import Expectation, ExpectationTracker, Outcome
from .node import LaunchConfig, NodeHandle, NodeState
from .roster import NodeIdentity, ValidatorRoster
from .rpc import QueryClient
from .topology import TopologyController, chain, full_mesh, ring, star
from .waiter import wait_block_number, wait_peers, wait_until

__all__ = [
    # Configuration
    "HarnessConfig",
    "NodeIdentity",
    "ValidatorRoster",
    # Nodes
    "LaunchConfig",
    "NodeCluster",
    "NodeHandle",
    "NodeState",
    "QueryClient",
    # Topology
    "TopologyController",
    "chain",
    "full_mesh",
    "ring",
    "star",
    # Waiting and expectations
    "Expectation",
    "ExpectationTracker",
    "Outcome",
    "wait_block_number",
    "wait_peers",
    "wait_until",
    # Errors
    "ConditionTimeoutError",
    "ExpectationFailedError",
    "HarnessError",
    "LaunchError",
    "NodeStateError",
    "RemoteError",
    "ScenarioFailedError",
    "ScenarioTimeoutError",
    "TransportError",
    "UnfulfilledExpectationError",
]
