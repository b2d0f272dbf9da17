"""
Handle around one node process.

Lifecycle is an explicit state machine::

    NOT_STARTED --start--> RUNNING --stop--> STOPPED --start--> RUNNING
         |                    |                 |
         +-------clean--------+------clean------+--> CLEANED --start--> RUNNING

``stop()`` and ``clean()`` are idempotent. ``start()`` on a running handle is
rejected. While RUNNING the handle owns exactly one process and one query client.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from bft_harness import metrics
from bft_harness.errors import LaunchError, NodeStateError, TransportError
from bft_harness.rpc import PayTransaction, QueryClient
from bft_harness.waiter import wait_block_number, wait_peers

from .launch import LaunchConfig

logger = logging.getLogger(__name__)

LOG_BUFFER_LINES = 20_000
"""Most recent output lines kept per node."""

OUTPUT_LINE_LIMIT = 1 << 20
"""Longest output line kept, in bytes. Longer lines are dropped."""

LOCALHOST = "127.0.0.1"
"""All nodes listen on the loopback interface."""


class NodeState(Enum):
    """Lifecycle state of a node handle."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    STOPPED = "stopped"
    CLEANED = "cleaned"


@dataclass(slots=True)
class NodeHandle:
    """
    One node process under test.

    Owned by exactly one cluster. Query accessors proxy to the node's
    JSON-RPC interface and are only available while the node is running.
    """

    index: int
    """Position of the node in its cluster."""

    launch: LaunchConfig
    """Command-line settings."""

    log_dir: Path = Path("logs")
    """Where ``keep_logs()`` writes the log buffer."""

    startup_timeout: float = 20.0
    """Seconds the node has to answer its first query."""

    shutdown_timeout: float = 5.0
    """Seconds between SIGTERM and SIGKILL."""

    rpc_timeout: float = 5.0
    """Per-request timeout of the query client."""

    poll_interval: float = 0.5
    """Default cadence of ``wait_peers`` and ``wait_block_number``."""

    state: NodeState = NodeState.NOT_STARTED
    """Current lifecycle state."""

    _process: asyncio.subprocess.Process | None = field(default=None, repr=False)
    _client: QueryClient | None = field(default=None, repr=False)
    _reader_task: asyncio.Task[None] | None = field(default=None, repr=False)
    _log_lines: deque[str] = field(
        default_factory=lambda: deque(maxlen=LOG_BUFFER_LINES), repr=False
    )
    _output_logger: logging.Logger | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self._output_logger = logging.getLogger(f"bft_harness.node.{self.index}")

    @property
    def name(self) -> str:
        """Label used in logs and error messages."""
        return f"node-{self.index}"

    @property
    def is_running(self) -> bool:
        """Whether the node process is live."""
        return self.state is NodeState.RUNNING

    @property
    def p2p_address(self) -> tuple[str, int]:
        """Host and port other nodes dial to reach this one."""
        return LOCALHOST, self.launch.p2p_port

    @property
    def client(self) -> QueryClient:
        """Query client of the running node."""
        if self.state is not NodeState.RUNNING or self._client is None:
            raise NodeStateError(self.name, self.state.value, "query")
        return self._client

    @property
    def logs(self) -> list[str]:
        """Buffered output lines."""
        return list(self._log_lines)

    async def start(self) -> None:
        """
        Launch the node process and wait for its query endpoint.

        Raises:
            NodeStateError: If the node is already running.
            LaunchError: If the process cannot be spawned, exits during startup,
                or its endpoint does not answer within ``startup_timeout``.
        """
        if self.state is NodeState.RUNNING:
            raise NodeStateError(self.name, self.state.value, "start")

        try:
            await asyncio.to_thread(self._prepare_directories)
        except LaunchError:
            metrics.node_launch_failures.inc()
            raise

        argv = self.launch.argv()
        logger.info("Starting %s: %s", self.name, " ".join(argv))
        self._log_lines.append(f"$ {' '.join(argv)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
                limit=OUTPUT_LINE_LIMIT,
            )
        except OSError as e:
            metrics.node_launch_failures.inc()
            raise LaunchError(self.name, f"cannot spawn {argv[0]}: {e}") from e

        client = QueryClient(self.launch.rpc_endpoint, timeout=self.rpc_timeout)
        self._process = process
        self._client = client
        self._reader_task = asyncio.create_task(
            self._pump_output(process.stdout), name=f"{self.name}-output"
        )

        try:
            await self._wait_ready(process, client)
        except BaseException as e:
            # Includes cancellation by a failing sibling start.
            if isinstance(e, LaunchError):
                metrics.node_launch_failures.inc()
            await self._terminate()
            raise

        self.state = NodeState.RUNNING
        metrics.nodes_started.inc()
        logger.info(
            "%s is up (rpc=%d, p2p=%d)", self.name, self.launch.rpc_port, self.launch.p2p_port
        )

    async def stop(self) -> None:
        """Shut the node down gracefully. No-op unless running."""
        if self.state is not NodeState.RUNNING:
            return
        try:
            await self._terminate()
        finally:
            self.state = NodeState.STOPPED
        logger.info("%s stopped", self.name)

    async def restart(self) -> None:
        """Stop then start again, keeping the chain database."""
        await self.stop()
        await self.start()

    async def clean(self) -> None:
        """
        Stop the node if needed, then delete its working directory.

        Safe to call on a handle in any state, any number of times.
        """
        await self.stop()
        if self.state is NodeState.CLEANED:
            return
        await asyncio.to_thread(shutil.rmtree, self.launch.base_path, ignore_errors=True)
        self.state = NodeState.CLEANED
        logger.debug("%s cleaned %s", self.name, self.launch.base_path)

    def keep_logs(self) -> Path | None:
        """
        Persist the log buffer outside the working directory.

        Never raises. Failures are logged.

        Returns:
            Path of the written file, or None if it could not be written.
        """
        path = self.log_dir / f"{self.name}-{time.strftime('%Y%m%d-%H%M%S')}.log"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(self._log_lines) + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Could not keep logs of %s at %s: %s", self.name, path, e)
            return None
        logger.info("Kept logs of %s at %s", self.name, path)
        return path

    async def query(self, method: str, params: list[Any] | None = None) -> Any:
        """Send an arbitrary JSON-RPC request to the node."""
        return await self.client.call(method, params)

    async def get_best_block_number(self) -> int:
        """Height of the node's best block."""
        return await self.client.get_best_block_number()

    async def get_peer_count(self) -> int:
        """Number of connected peers as the node reports it."""
        return await self.client.get_peer_count()

    async def get_possible_authors(self, block_number: int | None = None) -> list[str]:
        """Validators eligible to author ``block_number`` (latest when None)."""
        return await self.client.get_possible_authors(block_number)

    async def send_pay_tx(self, seq: int, **fields: Any) -> str:
        """Submit a pay transaction with sequence number ``seq``."""
        return await self.client.send_pay_tx(PayTransaction(seq=seq, **fields))

    async def connect(self, other: NodeHandle) -> None:
        """Ask this node to dial ``other``."""
        await self.client.connect(*other.p2p_address)

    async def disconnect(self, other: NodeHandle) -> None:
        """Ask this node to drop its session with ``other``."""
        await self.client.disconnect(*other.p2p_address)

    async def wait_peers(self, n: int, *, timeout: float = 30.0) -> int:
        """Wait until the node reports at least ``n`` peers."""
        return await wait_peers(
            self.client, n, timeout=timeout, poll_interval=self.poll_interval, node=self.name
        )

    async def wait_block_number(self, height: int, *, timeout: float = 60.0) -> int:
        """Wait until the node's best block is at least ``height``."""
        return await wait_block_number(
            self.client, height, timeout=timeout, poll_interval=self.poll_interval, node=self.name
        )

    def _prepare_directories(self) -> None:
        source = self.launch.additional_keys_path
        if source is not None and not source.is_dir():
            raise LaunchError(self.name, f"keys path {source} is not a directory")

        try:
            self.launch.base_path.mkdir(parents=True, exist_ok=True)
            self.launch.keys_path.mkdir(parents=True, exist_ok=True)
            # Key material is copied so the node may rewrite its own key store.
            if source is not None:
                shutil.copytree(source, self.launch.keys_path, dirs_exist_ok=True)
        except OSError as e:
            # shutil.Error is an OSError.
            raise LaunchError(self.name, f"cannot prepare {self.launch.base_path}: {e}") from e

    async def _wait_ready(self, process: asyncio.subprocess.Process, client: QueryClient) -> None:
        deadline = time.monotonic() + self.startup_timeout

        while True:
            if process.returncode is not None:
                raise LaunchError(
                    self.name, "process exited during startup", exit_code=process.returncode
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LaunchError(
                    self.name,
                    f"query endpoint {self.launch.rpc_endpoint} not reachable "
                    f"after {self.startup_timeout:.1f}s",
                )

            # A hung request must not stretch the startup window.
            try:
                if await asyncio.wait_for(client.ping(), timeout=remaining):
                    return
            except (TransportError, TimeoutError):
                pass
            await asyncio.sleep(0.1)

    async def _pump_output(self, stdout: asyncio.StreamReader | None) -> None:
        while stdout is not None:
            try:
                raw = await stdout.readline()
            except ValueError:
                # The reader has already discarded the oversized chunk; keep draining.
                self._log_lines.append(f"[line longer than {OUTPUT_LINE_LIMIT} bytes dropped]")
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip()
            self._log_lines.append(line)
            if self._output_logger is not None:
                self._output_logger.debug("%s", line)

    async def _terminate(self) -> None:
        process, self._process = self._process, None
        reader, self._reader_task = self._reader_task, None
        client, self._client = self._client, None

        try:
            if process is not None and process.returncode is None:
                await self._signal_exit(process)
        finally:
            try:
                if reader is not None:
                    await self._join_reader(reader)
            finally:
                if client is not None:
                    await client.close()

    async def _signal_exit(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=self.shutdown_timeout)
        except ProcessLookupError:
            pass
        except TimeoutError:
            logger.warning(
                "%s ignored SIGTERM for %.1fs, killing", self.name, self.shutdown_timeout
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def _join_reader(self, reader: asyncio.Task[None]) -> None:
        # Output pipe closes once the process is gone.
        try:
            await asyncio.wait_for(reader, timeout=self.shutdown_timeout)
        except TimeoutError:
            logger.warning("%s output pipe still open after exit", self.name)
        except Exception as e:
            logger.warning("%s output reader failed: %r", self.name, e)
