"""
Fleet of node processes owned by one scenario.

The cluster creates node handles from roster identities, gives every node a
unique working directory and port pair, and guarantees teardown: on exit every
handle is cleaned, and on failure every node's logs are kept first.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from bft_harness.config import HarnessConfig
from bft_harness.diagnostics import NodeDiagnostics, capture, log_diagnostics
from bft_harness.fanout import gather_all
from bft_harness.node import LaunchConfig, NodeHandle
from bft_harness.ports import PortAllocator
from bft_harness.roster import NodeIdentity, ValidatorRoster
from bft_harness.topology import TopologyController

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NodeCluster:
    """
    Manages the nodes of one scenario.

    Usable as an async context manager; leaving the block tears the cluster
    down whether the body succeeded or not.
    """

    config: HarnessConfig
    """Settings shared by every node."""

    roster: ValidatorRoster
    """Validator set of the chain under test."""

    port_allocator: PortAllocator | None = None
    """Port source. Built from the config's base ports when omitted."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    """Unique suffix of this cluster's state directory."""

    nodes: list[NodeHandle] = field(default_factory=list)
    """Nodes in creation order. A node's index is its position here."""

    topology: TopologyController = field(init=False)
    """Connection controller over ``nodes``."""

    _ports: PortAllocator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.port_allocator is None:
            self.port_allocator = PortAllocator(
                base_p2p_port=self.config.base_p2p_port,
                base_rpc_port=self.config.base_rpc_port,
            )
        self._ports = self.port_allocator
        self.topology = TopologyController(self.nodes)

    async def __aenter__(self) -> NodeCluster:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, *rest: object) -> None:
        await self.teardown(failed=exc_type is not None)

    @property
    def run_dir(self) -> Path:
        """Parent directory of every node working directory in this cluster."""
        return self.config.work_dir / self.run_id

    def add_node(self, identity: NodeIdentity) -> NodeHandle:
        """
        Create a handle for ``identity`` without starting it.

        Returns:
            The new handle, appended to ``nodes``.
        """
        index = len(self.nodes)
        p2p_port, rpc_port = self._ports.allocate_ports()

        launch = LaunchConfig.for_identity(
            self.config,
            identity,
            base_path=self.run_dir / f"node-{index}",
            p2p_port=p2p_port,
            rpc_port=rpc_port,
        )
        node = NodeHandle(
            index=index,
            launch=launch,
            log_dir=self.config.log_dir / self.run_id,
            startup_timeout=self.config.startup_timeout,
            shutdown_timeout=self.config.shutdown_timeout,
            rpc_timeout=self.config.rpc_timeout,
            poll_interval=self.config.poll_interval,
        )
        self.nodes.append(node)
        logger.debug("Added %s (signer=%s)", node.name, identity.signer)
        return node

    def add_validators(self, count: int | None = None) -> list[NodeHandle]:
        """Create one handle per roster validator (the first ``count`` when given)."""
        identities = self.roster.identities()
        if count is not None:
            identities = identities[:count]
        return [self.add_node(identity) for identity in identities]

    def add_observer(self) -> NodeHandle:
        """Create a handle for a node that relays but never seals."""
        return self.add_node(NodeIdentity())

    async def start_all(self, nodes: list[NodeHandle] | None = None) -> None:
        """Start nodes concurrently (all nodes when ``nodes`` is None)."""
        targets = self.nodes if nodes is None else nodes
        await gather_all(*(node.start() for node in targets))
        logger.info("Started %d node(s) in %s", len(targets), self.run_dir)

    async def stop_all(self) -> None:
        """Stop every node gracefully."""
        await gather_all(*(node.stop() for node in self.nodes))

    async def restart_all(self) -> None:
        """Restart every node, keeping chain databases. Connections must be re-made."""
        await gather_all(*(node.restart() for node in self.nodes))
        self.topology.reset()

    async def clean_all(self) -> None:
        """Clean every node, attempting all of them even if some fail."""
        results = await asyncio.gather(
            *(node.clean() for node in self.nodes), return_exceptions=True
        )
        for node, result in zip(self.nodes, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Cleaning %s failed: %s", node.name, result)

    def keep_logs(self) -> list[Path]:
        """Persist every node's log buffer."""
        return [path for node in self.nodes if (path := node.keep_logs()) is not None]

    async def diagnostics(self, phase: str) -> list[NodeDiagnostics]:
        """Snapshot and log every node's state."""
        diags = await capture(self.nodes)
        log_diagnostics(phase, diags)
        return diags

    async def teardown(self, *, failed: bool) -> None:
        """
        Release everything the cluster created.

        On failure the nodes' state is logged and their logs are kept before
        the working directories are wiped.
        """
        if failed:
            await self.diagnostics("failure")
            kept = self.keep_logs()
            logger.info("Kept %d log file(s) under %s", len(kept), self.config.log_dir)

        await self.clean_all()
        await asyncio.to_thread(shutil.rmtree, self.run_dir, ignore_errors=True)
        self.topology.reset()
