"""
Network topology control.

Connecting is two-phase. ``connect`` only asks a node to dial a peer and
returns once the request is accepted; whether the session came up is observed
separately through the nodes' own peer counts. The controller's edge set is
bookkeeping of what was requested, never a substitute for those counts.

Pattern helpers return lists of (dialer_index, listener_index) pairs.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from bft_harness.fanout import gather_all
from bft_harness.node import NodeHandle

logger = logging.getLogger(__name__)

Edge = tuple[int, int]
"""A (dialer_index, listener_index) pair."""


def full_mesh(n: int) -> list[Edge]:
    """
    Connect every pair of nodes once, lower index dialing.

    A validator set needs this to reach quorum on every proposal without
    relaying. Yields n*(n-1)/2 edges.
    """
    return list(itertools.combinations(range(n), 2))


def star(n: int, hub: int = 0) -> list[Edge]:
    """
    Every other node dials ``hub``.

    Args:
        n: Number of nodes.
        hub: Index of the node everyone dials.

    Returns:
        n-1 (dialer, hub) pairs.
    """
    return [(i, hub) for i in range(n) if i != hub]


def chain(n: int) -> list[Edge]:
    """
    Linear chain: 0 - 1 - 2 - ... - n-1.

    Creates n-1 connections total. Blocks sealed at one end reach the other
    end only by being relayed through every node in between.
    """
    return [(i, i + 1) for i in range(n - 1)]


def ring(n: int) -> list[Edge]:
    """Chain closed back onto node 0. Needs at least 3 nodes to differ from a chain."""
    edges = chain(n)
    if n > 2:
        edges.append((n - 1, 0))
    return edges


def _key(a: int, b: int) -> frozenset[int]:
    return frozenset((a, b))


@dataclass(slots=True)
class TopologyController:
    """
    Connects and disconnects node pairs, tracking the requested adjacency.

    Edges are unordered for bookkeeping: once ``a`` dialed ``b``, connecting
    ``b`` to ``a`` is a no-op.
    """

    nodes: Sequence[NodeHandle]
    """Nodes addressed by index."""

    _edges: set[frozenset[int]] = field(default_factory=set)

    @property
    def edges(self) -> list[Edge]:
        """Requested connections, as sorted index pairs."""
        return sorted((min(e), max(e)) for e in self._edges)

    def is_connected(self, a: int, b: int) -> bool:
        """Whether a connection between ``a`` and ``b`` was requested and not dropped."""
        return _key(a, b) in self._edges

    def expected_degree(self, index: int) -> int:
        """Number of peers ``index`` should end up with if every request succeeds."""
        return sum(1 for e in self._edges if index in e)

    async def connect(self, a: int, b: int) -> None:
        """
        Ask node ``a`` to dial node ``b``.

        Resolves once the transport accepted the request. Peer counts are not
        awaited here. Idempotent for an already connected pair.
        """
        if a == b:
            raise ValueError(f"Cannot connect node {a} to itself")
        key = _key(a, b)
        if key in self._edges:
            logger.debug("Node %d and node %d already connected", a, b)
            return

        # Record before dialing so a concurrent duplicate request is skipped.
        self._edges.add(key)
        try:
            await self.nodes[a].connect(self.nodes[b])
        except BaseException:
            self._edges.discard(key)
            raise
        logger.info("Connected node %d -> node %d", a, b)

    async def disconnect(self, a: int, b: int) -> None:
        """
        Ask node ``a`` to drop its session with node ``b``.

        Only ``a`` is instructed. How ``b`` notices is up to the network.
        """
        await self.nodes[a].disconnect(self.nodes[b])
        self._edges.discard(_key(a, b))
        logger.info("Disconnected node %d -x- node %d", a, b)

    async def apply(self, edges: Iterable[Edge]) -> None:
        """Connect every pair concurrently and wait for all requests."""
        await gather_all(*(self.connect(a, b) for a, b in edges))

    async def remove(self, edges: Iterable[Edge]) -> None:
        """Disconnect every pair concurrently and wait for all requests."""
        await gather_all(*(self.disconnect(a, b) for a, b in edges))

    def forget(self, index: int) -> None:
        """Drop every edge touching ``index`` (e.g. after the node restarted)."""
        self._edges = {e for e in self._edges if index not in e}

    def reset(self) -> None:
        """Drop all bookkeeping."""
        self._edges.clear()
