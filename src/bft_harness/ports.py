"""
Port allocation for test nodes.

Each node needs a p2p port and a JSON-RPC port. Ports are handed out
sequentially so concurrent nodes in one test run never collide.
"""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass, field

BASE_P2P_PORT = 3486
"""Starting port for p2p connections."""

BASE_RPC_PORT = 8081
"""Starting port for JSON-RPC servers."""

MAX_PROBES = 256
"""How many candidate ports to try before giving up."""


def is_port_free(port: int, host: str = "127.0.0.1") -> bool:
    """Check whether a TCP port can currently be bound."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


@dataclass(slots=True)
class PortAllocator:
    """
    Thread-safe port allocator for test nodes.

    Allocates sequential ports for p2p and JSON-RPC, skipping ports that are
    already bound by something else on the machine.
    """

    base_p2p_port: int = BASE_P2P_PORT
    """First p2p port."""

    base_rpc_port: int = BASE_RPC_PORT
    """First JSON-RPC port."""

    _p2p_counter: int = field(default=0)
    """Current p2p port offset."""

    _rpc_counter: int = field(default=0)
    """Current JSON-RPC port offset."""

    _lock: threading.Lock = field(default_factory=threading.Lock)
    """Thread lock for concurrent access."""

    def _next_free(self, base: int, counter_attr: str) -> int:
        for _ in range(MAX_PROBES):
            port = base + getattr(self, counter_attr)
            setattr(self, counter_attr, getattr(self, counter_attr) + 1)
            if is_port_free(port):
                return port
        raise RuntimeError(f"No free port found after {MAX_PROBES} probes from {base}")

    def allocate_p2p_port(self) -> int:
        """Next free port for a node's peer listener."""
        with self._lock:
            return self._next_free(self.base_p2p_port, "_p2p_counter")

    def allocate_rpc_port(self) -> int:
        """Next free port for a node's query endpoint."""
        with self._lock:
            return self._next_free(self.base_rpc_port, "_rpc_counter")

    def allocate_ports(self) -> tuple[int, int]:
        """
        Reserve the port pair of one node in a single critical section.

        Returns:
            Tuple of (p2p_port, rpc_port).

        Raises:
            RuntimeError: If no free port is found within MAX_PROBES candidates.
        """
        with self._lock:
            p2p_port = self._next_free(self.base_p2p_port, "_p2p_counter")
            rpc_port = self._next_free(self.base_rpc_port, "_rpc_counter")
            return p2p_port, rpc_port

    def reset(self) -> None:
        """Start handing out ports from the bases again."""
        with self._lock:
            self._p2p_counter = 0
            self._rpc_counter = 0
