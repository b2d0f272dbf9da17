"""
Scenario definition and execution.

A scenario is an async recipe over a freshly started cluster. The runner owns
everything around the recipe:

1. Create and start the scenario's validator nodes
2. Run the recipe under the scenario deadline
3. Reconcile background expectations
4. Tear the cluster down unconditionally, keeping logs on failure
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from bft_harness import metrics
from bft_harness.cluster import NodeCluster
from bft_harness.config import HarnessConfig
from bft_harness.errors import (
    ConditionTimeoutError,
    ExpectationFailedError,
    LaunchError,
    RemoteError,
    ScenarioFailedError,
    ScenarioTimeoutError,
    UnfulfilledExpectationError,
)
from bft_harness.expectations import ExpectationTracker
from bft_harness.fanout import gather_all
from bft_harness.node import NodeHandle
from bft_harness.roster import ValidatorRoster
from bft_harness.topology import Edge, TopologyController

logger = logging.getLogger(__name__)

DEADLINE_MARGIN = 1.0
"""Most seconds a wait keeps free before the scenario deadline."""


@dataclass(slots=True)
class ScenarioContext:
    """What a recipe works with: the cluster, its topology and the tracker."""

    cluster: NodeCluster
    """Nodes of this scenario."""

    tracker: ExpectationTracker
    """Expectations of this scenario."""

    wait_timeout: float
    """Upper bound of each individual wait."""

    deadline: asyncio.Timeout | None = field(default=None, repr=False)
    """Scenario-wide deadline. Waits are cut short to end before it."""

    deadline_margin: float = 0.0
    """Seconds left between the end of a wait and the scenario deadline."""

    def step_timeout(self) -> float:
        """
        Timeout for the next wait.

        Capped by what is left of the scenario minus ``deadline_margin``, so
        the wait fails with its own ConditionTimeoutError before the scenario
        deadline cancels it.
        """
        when = self.deadline.when() if self.deadline is not None else None
        if when is None:
            return self.wait_timeout
        remaining = when - asyncio.get_running_loop().time() - self.deadline_margin
        return max(0.0, min(self.wait_timeout, remaining))

    @property
    def nodes(self) -> list[NodeHandle]:
        """Nodes in index order."""
        return self.cluster.nodes

    @property
    def roster(self) -> ValidatorRoster:
        """Validator set of the chain under test."""
        return self.cluster.roster

    @property
    def topology(self) -> TopologyController:
        """Connection controller."""
        return self.cluster.topology

    async def connect(self, label: str, edges: Iterable[Edge]) -> None:
        """Request every connection and wait until all requests were accepted."""
        await self.tracker.should_fulfill(label, self.topology.apply(edges))

    async def disconnect(self, label: str, edges: Iterable[Edge]) -> None:
        """Drop every listed session and wait until all requests were accepted."""
        await self.tracker.should_fulfill(label, self.topology.remove(edges))

    async def wait_peers(self, label: str, nodes: Sequence[NodeHandle], n: int) -> None:
        """Wait until every node in ``nodes`` reports at least ``n`` peers."""
        timeout = self.step_timeout()
        await self.tracker.should_fulfill(
            label,
            gather_all(*(node.wait_peers(n, timeout=timeout) for node in nodes)),
        )

    async def wait_block_number(
        self, label: str, nodes: Sequence[NodeHandle], height: int
    ) -> None:
        """Wait until every node in ``nodes`` reaches at least ``height``."""
        timeout = self.step_timeout()
        await self.tracker.should_fulfill(
            label,
            gather_all(*(node.wait_block_number(height, timeout=timeout) for node in nodes)),
        )


ScenarioBody = Callable[[ScenarioContext], Awaitable[None]]
"""Signature of a scenario recipe."""


@dataclass(frozen=True, slots=True)
class Scenario:
    """A named recipe with its deadline and cluster size."""

    name: str
    """Unique scenario name."""

    body: ScenarioBody
    """The recipe."""

    timeout: float = 60.0
    """Deadline of the recipe in seconds. Node startup is not counted."""

    validators: int = 4
    """Number of roster validators started before the recipe runs."""

    @property
    def description(self) -> str:
        """First line of the recipe's docstring."""
        doc = (self.body.__doc__ or "").strip()
        return doc.splitlines()[0] if doc else ""


SCENARIOS: dict[str, Scenario] = {}
"""Registered scenarios by name."""


def scenario(
    name: str,
    *,
    timeout: float = 60.0,
    validators: int = 4,
) -> Callable[[ScenarioBody], ScenarioBody]:
    """Register a recipe under ``name``."""

    def register(body: ScenarioBody) -> ScenarioBody:
        if name in SCENARIOS:
            raise ValueError(f"Scenario {name!r} already registered")
        SCENARIOS[name] = Scenario(name=name, body=body, timeout=timeout, validators=validators)
        return body

    return register


def classify(error: BaseException) -> str:
    """
    Name the kind of failure for reports.

    Returns:
        One of "timeout", "rejection", "unfulfilled", "launch", "error".
    """
    if isinstance(error, ExpectationFailedError):
        return classify(error.error)
    if isinstance(error, UnfulfilledExpectationError):
        return "unfulfilled"
    if isinstance(error, (ConditionTimeoutError, ScenarioTimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(error, (RemoteError, AssertionError)):
        return "rejection"
    if isinstance(error, LaunchError):
        return "launch"
    return "error"


@dataclass(frozen=True, slots=True)
class ScenarioResult:
    """Outcome of one scenario run."""

    name: str
    """Scenario name."""

    duration: float
    """Wall-clock seconds, setup and teardown included."""

    failure: ScenarioFailedError | None = None
    """Why the scenario failed, None when it passed."""

    @property
    def passed(self) -> bool:
        """Whether the scenario passed."""
        return self.failure is None

    def raise_for_failure(self) -> None:
        """Raise the failure, if any."""
        if self.failure is not None:
            raise self.failure

    def summary(self) -> str:
        """One-line report."""
        if self.failure is None:
            return f"PASS {self.name} ({self.duration:.1f}s)"
        kind, error = self.failure.kind, self.failure.error
        return f"FAIL {self.name} ({self.duration:.1f}s) [{kind}] {error}"


@dataclass(slots=True)
class ScenarioRunner:
    """Runs scenarios, each on its own cluster."""

    config: HarnessConfig
    """Settings for every node."""

    roster: ValidatorRoster
    """Validator set handed to every cluster."""

    cluster_options: dict[str, Any] = field(default_factory=dict)
    """Extra keyword arguments for ``NodeCluster`` (e.g. a shared port allocator)."""

    async def run(self, scenario: Scenario) -> ScenarioResult:
        """
        Run one scenario from setup to teardown.

        Never raises for scenario failures; they are returned in the result.
        """
        if scenario.validators > len(self.roster):
            raise ValueError(
                f"Scenario {scenario.name!r} needs {scenario.validators} validators, "
                f"roster has {len(self.roster)}"
            )

        logger.info("=== %s: %s", scenario.name, scenario.description)
        started = time.monotonic()
        tracker = ExpectationTracker()
        cluster = NodeCluster(self.config, self.roster, **self.cluster_options)
        failure: ScenarioFailedError | None = None
        failed = True

        try:
            cluster.add_validators(scenario.validators)
            await cluster.start_all()
            await self._run_body(scenario, cluster, tracker)
            tracker.check_fulfilled()
            failed = False
        except Exception as e:
            failure = ScenarioFailedError(scenario.name, classify(e), e)
            logger.error("%s", failure)
            self._log_background_failures(tracker)
        finally:
            await tracker.cancel_pending()
            await cluster.teardown(failed=failed)

        duration = time.monotonic() - started
        metrics.scenarios.labels(result="failed" if failed else "passed").inc()
        metrics.scenario_duration.observe(duration)

        result = ScenarioResult(name=scenario.name, duration=duration, failure=failure)
        logger.info("%s", result.summary())
        return result

    async def run_many(self, scenarios: Iterable[Scenario]) -> list[ScenarioResult]:
        """Run scenarios one after another."""
        return [await self.run(s) for s in scenarios]

    async def _run_body(
        self, scenario: Scenario, cluster: NodeCluster, tracker: ExpectationTracker
    ) -> None:
        ctx = ScenarioContext(
            cluster=cluster,
            tracker=tracker,
            wait_timeout=scenario.timeout,
            deadline_margin=min(DEADLINE_MARGIN, scenario.timeout / 10),
        )
        try:
            async with asyncio.timeout(scenario.timeout) as deadline:
                ctx.deadline = deadline
                await scenario.body(ctx)
        except TimeoutError as e:
            if deadline.expired():
                pending = [expectation.label for expectation in tracker.pending]
                raise ScenarioTimeoutError(scenario.name, scenario.timeout, pending) from e
            raise

    @staticmethod
    def _log_background_failures(tracker: ExpectationTracker) -> None:
        # The awaited step that failed is already reported; surface the rest.
        try:
            tracker.check_fulfilled()
        except UnfulfilledExpectationError as e:
            logger.error("Background expectations at failure: %s", e)
