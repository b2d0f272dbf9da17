"""
Typed JSON-RPC client for a node's query interface.

Every call is a single HTTP POST carrying a JSON-RPC 2.0 request. Two failure
classes are kept apart:

- The node could not be reached or answered garbage: TransportError
- The node answered with a JSON-RPC error object: RemoteError

Waiters retry the first class while a node is starting up and propagate the
second, which is an application-level answer.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from bft_harness.errors import RemoteError, TransportError
from bft_harness.types import StrictBaseModel

from . import methods

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
"""HTTP request timeout in seconds."""


class PayTransaction(StrictBaseModel):
    """Parameters of a pay transaction submitted through the node."""

    seq: int
    """Sequence number of the sending account."""

    recipient: str | None = None
    """Receiving address. The node's own account when omitted."""

    quantity: int = 0
    """Amount transferred."""

    fee: int = 10
    """Fee paid to the block author."""


@dataclass(slots=True)
class QueryClient:
    """
    JSON-RPC client bound to one node endpoint.

    The underlying httpx client is opened lazily and must be closed with
    ``close()`` (or by using the client as an async context manager).
    """

    endpoint: str
    """Base URL of the node's JSON-RPC server (e.g. ``http://127.0.0.1:8081``)."""

    timeout: float = DEFAULT_TIMEOUT
    """Per-request timeout in seconds."""

    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)
    """Optional transport override, used to stub the node in tests."""

    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    async def __aenter__(self) -> QueryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def is_closed(self) -> bool:
        """Whether no HTTP connection pool is currently open."""
        return self._client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self._client

    async def close(self) -> None:
        """Release the HTTP connection pool. Safe to call twice."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """
        Invoke a JSON-RPC method and return its result.

        Args:
            method: RPC method name.
            params: Positional parameters.

        Returns:
            The ``result`` member of the response.

        Raises:
            TransportError: If the node is unreachable or the response is malformed.
            RemoteError: If the node answered with an error object.
        """
        request_id = next(self._ids)
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or []}

        try:
            response = await self._http().post(self.endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                self.endpoint, method, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(self.endpoint, method, f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise TransportError(self.endpoint, method, "response is not JSON") from exc

        if not isinstance(body, dict):
            raise TransportError(self.endpoint, method, "response is not a JSON object")

        error = body.get("error")
        if error is not None:
            logger.debug("%s %s rejected: %s", self.endpoint, method, error)
            raise RemoteError(
                method,
                code=int(error.get("code", 0)),
                remote_message=str(error.get("message", "")),
                data=error.get("data"),
            )

        if "result" not in body:
            raise TransportError(self.endpoint, method, "response has neither result nor error")

        return body["result"]

    async def ping(self) -> bool:
        """Return True once the node answers its readiness probe."""
        return await self.call(methods.PING) == "pong"

    async def get_best_block_number(self) -> int:
        """Height of the node's best block."""
        return int(await self.call(methods.GET_BEST_BLOCK_NUMBER))

    async def get_peer_count(self) -> int:
        """Number of peers the node's network layer reports."""
        return int(await self.call(methods.GET_PEER_COUNT))

    async def get_possible_authors(self, block_number: int | None = None) -> list[str]:
        """
        Validators eligible to author ``block_number`` (latest when None).

        Raises:
            RemoteError: With an engine-class message when ``block_number`` is
                beyond the node's best block.
        """
        return list(await self.call(methods.GET_POSSIBLE_AUTHORS, [block_number]))

    async def connect(self, host: str, port: int) -> None:
        """Ask the node to dial a peer. Resolves when the request is accepted."""
        await self.call(methods.CONNECT, [host, port])

    async def disconnect(self, host: str, port: int) -> None:
        """Ask the node to drop its session with a peer."""
        await self.call(methods.DISCONNECT, [host, port])

    async def send_pay_tx(self, tx: PayTransaction) -> str:
        """
        Submit a pay transaction.

        Acceptance only means the transaction was queued. Inclusion is observed
        through block height.

        Returns:
            Transaction hash reported by the node.
        """
        return str(await self.call(methods.SEND_PAY_TX, [tx.model_dump()]))
