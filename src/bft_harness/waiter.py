"""
Condition polling against a node's query interface.

Heights and peer counts only grow in the scenarios the harness runs, so every
wait is a greater-or-equal check. A waiter started after its target was
already reached resolves on its first poll.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from bft_harness import metrics
from bft_harness.errors import ConditionTimeoutError, TransportError
from bft_harness.rpc import QueryClient

logger = logging.getLogger(__name__)

Predicate = Callable[[], Awaitable[tuple[bool, Any]]]
"""Async check returning (satisfied, observed value)."""


async def wait_until(
    predicate: Predicate,
    *,
    description: str,
    expected: Any = None,
    timeout: float = 30.0,
    poll_interval: float = 0.5,
) -> Any:
    """
    Poll ``predicate`` until it holds or ``timeout`` elapses.

    Transport failures (node restarting, connection refused) are retried until
    the deadline. A RemoteError is an answer from the node and propagates.

    Args:
        predicate: Async check returning ``(satisfied, observed)``.
        description: What is being waited for, used in logs and errors.
        expected: Target value, reported on timeout.
        timeout: Deadline in seconds.
        poll_interval: Seconds between checks.

    Returns:
        The observed value that satisfied the predicate.

    Raises:
        ConditionTimeoutError: If the deadline elapses first.
    """
    start = time.monotonic()
    observed: Any = None

    while True:
        remaining = timeout - (time.monotonic() - start)
        if remaining <= 0:
            break

        # Bound each poll by the remaining budget so a hung request
        # cannot stretch the deadline.
        try:
            satisfied, observed = await asyncio.wait_for(predicate(), timeout=remaining)
        except TransportError as e:
            logger.debug("Polling %s: %s", description, e)
        except TimeoutError:
            break
        else:
            if satisfied:
                logger.debug("%s satisfied (observed %s)", description, observed)
                return observed

        remaining = timeout - (time.monotonic() - start)
        await asyncio.sleep(max(0.0, min(poll_interval, remaining)))

    metrics.condition_timeouts.inc()
    logger.warning(
        "Timeout waiting for %s: expected %s, last observed %s", description, expected, observed
    )
    raise ConditionTimeoutError(
        description, expected=expected, observed=observed, timeout=timeout
    )


async def wait_peers(
    client: QueryClient,
    n: int,
    *,
    timeout: float = 30.0,
    poll_interval: float = 0.5,
    node: str = "node",
) -> int:
    """
    Wait until a node reports at least ``n`` connected peers.

    Returns:
        The peer count that satisfied the condition.
    """

    async def enough_peers() -> tuple[bool, int]:
        count = await client.get_peer_count()
        return count >= n, count

    return await wait_until(
        enough_peers,
        description=f"{node} peers >= {n}",
        expected=n,
        timeout=timeout,
        poll_interval=poll_interval,
    )


async def wait_block_number(
    client: QueryClient,
    height: int,
    *,
    timeout: float = 60.0,
    poll_interval: float = 0.5,
    node: str = "node",
) -> int:
    """
    Wait until a node's best block number is at least ``height``.

    Returns:
        The best block number that satisfied the condition.
    """

    async def reached_height() -> tuple[bool, int]:
        best = await client.get_best_block_number()
        return best >= height, best

    return await wait_until(
        reached_height,
        description=f"{node} block number >= {height}",
        expected=height,
        timeout=timeout,
        poll_interval=poll_interval,
    )
