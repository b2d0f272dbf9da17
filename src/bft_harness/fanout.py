"""Structured fan-out: run all, wait for all."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_all(*coros: Coroutine[Any, Any, T]) -> list[T]:
    """
    Run coroutines concurrently and return their results in order.

    Unlike ``asyncio.gather``, the first failure cancels the siblings, so no
    waiter keeps polling a node after its scenario has already failed. The
    first error is re-raised as-is; any other errors raised at the same time
    are logged.
    """
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(coro) for coro in coros]
    except BaseExceptionGroup as eg:
        first, *others = eg.exceptions
        for other in others:
            logger.warning("Concurrent failure: %s", other)
        raise first from None
    return [task.result() for task in tasks]
