"""Tests for port allocation."""

from __future__ import annotations

import socket
import threading

from bft_harness.ports import PortAllocator, is_port_free


class TestPortAllocator:
    """Tests for sequential, collision-free port allocation."""

    def test_ports_are_sequential_and_unique(self) -> None:
        """Consecutive allocations never repeat a port."""
        allocator = PortAllocator(base_p2p_port=41000, base_rpc_port=42000)

        pairs = [allocator.allocate_ports() for _ in range(5)]

        p2p = [p for p, _ in pairs]
        rpc = [r for _, r in pairs]
        assert len(set(p2p)) == 5
        assert len(set(rpc)) == 5
        assert p2p == sorted(p2p)
        assert all(p >= 41000 for p in p2p)
        assert all(r >= 42000 for r in rpc)

    def test_busy_port_is_skipped(self) -> None:
        """A port bound by someone else is never handed out."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            busy = sock.getsockname()[1]
            assert not is_port_free(busy)

            allocator = PortAllocator(base_p2p_port=busy, base_rpc_port=busy)

            assert allocator.allocate_p2p_port() != busy
            assert allocator.allocate_rpc_port() != busy

    def test_reset_restarts_from_base(self) -> None:
        """After reset the base port is handed out again."""
        allocator = PortAllocator(base_p2p_port=43000, base_rpc_port=44000)
        first = allocator.allocate_p2p_port()
        allocator.allocate_p2p_port()

        allocator.reset()

        assert allocator.allocate_p2p_port() == first

    def test_concurrent_allocation_is_unique(self) -> None:
        """Threads never receive the same port."""
        allocator = PortAllocator(base_p2p_port=45000, base_rpc_port=46000)
        results: list[int] = []
        lock = threading.Lock()

        def grab() -> None:
            port = allocator.allocate_rpc_port()
            with lock:
                results.append(port)

        threads = [threading.Thread(target=grab) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(results)) == 16
