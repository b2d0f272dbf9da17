"""
Point-in-time node diagnostics.

Snapshots are taken when a scenario changes phase and before teardown of a
failed scenario, so the log shows where each node stood. Capturing never
raises: an unreachable node is recorded with its error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from bft_harness.errors import HarnessError
from bft_harness.node import NodeHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NodeDiagnostics:
    """Snapshot of one node's consensus-visible state."""

    index: int
    """Node index in the cluster."""

    state: str
    """Lifecycle state of the handle."""

    best_block_number: int | None = None
    """Best block height, if the node answered."""

    peer_count: int | None = None
    """Connected peers, if the node answered."""

    error: str | None = None
    """Why the node could not be queried."""

    @classmethod
    async def from_node(cls, node: NodeHandle) -> NodeDiagnostics:
        """Query a node for its current state."""
        if not node.is_running:
            return cls(index=node.index, state=node.state.value)
        try:
            height, peers = await asyncio.gather(
                node.get_best_block_number(), node.get_peer_count()
            )
        except HarnessError as e:
            return cls(index=node.index, state=node.state.value, error=str(e))
        return cls(
            index=node.index,
            state=node.state.value,
            best_block_number=height,
            peer_count=peers,
        )


async def capture(nodes: Sequence[NodeHandle]) -> list[NodeDiagnostics]:
    """Snapshot every node concurrently, in node order."""
    return list(await asyncio.gather(*(NodeDiagnostics.from_node(n) for n in nodes)))


def log_diagnostics(phase: str, diags: Sequence[NodeDiagnostics]) -> None:
    """Log one summary line per node."""
    for d in diags:
        if d.error is not None:
            logger.info("[%s] Node %d: state=%s error=%s", phase, d.index, d.state, d.error)
        else:
            logger.info(
                "[%s] Node %d: state=%s height=%s peers=%s",
                phase,
                d.index,
                d.state,
                d.best_block_number,
                d.peer_count,
            )
