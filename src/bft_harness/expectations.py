"""
Expectation tracking for concurrently running scenario steps.

A scenario registers every asynchronous step it cares about under a label.
Steps the scenario depends on are awaited immediately (``should_fulfill``);
background steps are tracked and verified at the end (``check_fulfilled``).
A background step that is still running, or that failed, when the scenario
ends fails the scenario. All offending labels are reported together.

Each expectation settles at most once::

    PENDING --> FULFILLED
       |
       +-----> REJECTED

Later settlement attempts are ignored.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from bft_harness import metrics
from bft_harness.errors import ExpectationFailedError, UnfulfilledExpectationError

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Settlement state of an expectation."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(slots=True)
class Expectation:
    """One labelled asynchronous operation and its outcome."""

    label: str
    """Name reported when the expectation fails."""

    task: asyncio.Future[Any] | None = field(default=None, repr=False)
    """Backing task. None for expectations settled by hand."""

    outcome: Outcome = Outcome.PENDING
    """Current settlement state."""

    result: Any = None
    """Value of a fulfilled expectation."""

    error: BaseException | None = None
    """Error of a rejected expectation."""

    @property
    def settled(self) -> bool:
        """Whether the expectation reached a terminal state."""
        return self.outcome is not Outcome.PENDING

    def fulfill(self, result: Any = None) -> bool:
        """
        Settle as fulfilled.

        Returns:
            False if the expectation had already settled (the call is ignored).
        """
        if self.settled:
            return False
        self.outcome = Outcome.FULFILLED
        self.result = result
        metrics.expectations.labels(outcome="fulfilled").inc()
        return True

    def reject(self, error: BaseException) -> bool:
        """
        Settle as rejected.

        Returns:
            False if the expectation had already settled (the call is ignored).
        """
        if self.settled:
            return False
        self.outcome = Outcome.REJECTED
        self.error = error
        metrics.expectations.labels(outcome="rejected").inc()
        return True


@dataclass(slots=True)
class ExpectationTracker:
    """Registry of labelled scenario steps with a final reconciliation pass."""

    expectations: list[Expectation] = field(default_factory=list)
    """Every expectation registered so far, in registration order."""

    def __len__(self) -> int:
        return len(self.expectations)

    @property
    def pending(self) -> list[Expectation]:
        """Expectations that have not settled."""
        return [e for e in self.expectations if not e.settled]

    def track(self, label: str, operation: Awaitable[Any]) -> Expectation:
        """
        Start ``operation`` in the background and record how it settles.

        Does not block. The operation is scheduled immediately.

        Args:
            label: Name reported if the operation fails or never settles.
            operation: Coroutine or future to run.

        Returns:
            The registered expectation.
        """
        task = asyncio.ensure_future(operation)
        expectation = Expectation(label=label, task=task)
        task.add_done_callback(lambda t: self._on_done(expectation, t))
        self.expectations.append(expectation)
        logger.debug("Tracking %r", label)
        return expectation

    async def should_fulfill(self, label: str, operation: Awaitable[Any]) -> Any:
        """
        Track ``operation`` and wait for it.

        Used when later steps depend on this one. Failure is raised here,
        annotated with ``label``, instead of being deferred.

        Returns:
            The operation's result.

        Raises:
            ExpectationFailedError: If the operation raised. The original error
                is chained and ``is_timeout`` tells deadline expiry apart.
        """
        task = asyncio.ensure_future(operation)
        self.track(label, task)
        try:
            return await task
        except Exception as e:
            raise ExpectationFailedError(label, e) from e

    def track_rejection(
        self,
        label: str,
        operation: Awaitable[Any],
        *,
        match: str | None = None,
        error_type: type[BaseException] = Exception,
    ) -> Expectation:
        """
        Track an operation that is expected to fail.

        The expectation is fulfilled when ``operation`` raises ``error_type``
        with ``match`` in its message, and rejected when it succeeds or fails
        differently.
        """
        return self.track(label, _inverted(operation, match=match, error_type=error_type))

    async def should_reject(
        self,
        label: str,
        operation: Awaitable[Any],
        *,
        match: str | None = None,
        error_type: type[BaseException] = Exception,
    ) -> BaseException:
        """
        Wait for an operation that is expected to fail.

        Returns:
            The error the operation raised.

        Raises:
            ExpectationFailedError: If it succeeded or failed with another error.
        """
        return await self.should_fulfill(
            label, _inverted(operation, match=match, error_type=error_type)
        )

    async def wait_all(self, timeout: float | None = None) -> None:
        """
        Wait for tracked operations to settle, without raising.

        Outcomes are inspected afterwards with ``check_fulfilled``.
        """
        tasks = [e.task for e in self.pending if e.task is not None]
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    def check_fulfilled(self) -> None:
        """
        Verify every tracked expectation settled successfully.

        Raises:
            UnfulfilledExpectationError: Listing every pending label and every
                rejected label with its error.
        """
        pending = [e.label for e in self.expectations if e.outcome is Outcome.PENDING]

        rejected: dict[str, BaseException] = {}
        for e in self.expectations:
            if e.outcome is Outcome.REJECTED and e.error is not None:
                key = e.label
                suffix = 2
                while key in rejected:
                    key = f"{e.label}#{suffix}"
                    suffix += 1
                rejected[key] = e.error

        if pending or rejected:
            raise UnfulfilledExpectationError(pending, rejected)

    async def cancel_pending(self) -> list[str]:
        """
        Cancel operations still running so nothing outlives the scenario.

        Returns:
            Labels of the cancelled expectations.
        """
        running = [(e.label, e.task) for e in self.pending if e.task is not None]
        running = [(label, task) for label, task in running if not task.done()]
        for _, task in running:
            task.cancel()
        await asyncio.gather(*(task for _, task in running), return_exceptions=True)

        labels = [label for label, _ in running]
        if labels:
            logger.warning("Cancelled unsettled expectations: %s", ", ".join(labels))
        return labels

    def reset(self) -> None:
        """Forget every expectation. Running tasks are not cancelled."""
        self.expectations.clear()

    @staticmethod
    def _on_done(expectation: Expectation, task: asyncio.Future[Any]) -> None:
        # A cancelled operation never settled and stays pending.
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            if expectation.reject(error):
                logger.debug("%r rejected: %s", expectation.label, error)
        else:
            expectation.fulfill(task.result())


async def _inverted(
    operation: Awaitable[Any],
    *,
    match: str | None,
    error_type: type[BaseException],
) -> BaseException:
    try:
        result = await operation
    except error_type as e:
        if match is not None and match not in str(e):
            raise AssertionError(f"Expected error matching {match!r}, got: {e}") from e
        return e
    raise AssertionError(f"Expected rejection, operation returned {result!r}")
