"""Tests for scenario registration, failure classification and the runner."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from bft_harness.config import HarnessConfig
from bft_harness.errors import (
    ConditionTimeoutError,
    ExpectationFailedError,
    LaunchError,
    RemoteError,
    ScenarioTimeoutError,
    UnfulfilledExpectationError,
)
from bft_harness.expectations import ExpectationTracker
from bft_harness.metrics import REGISTRY
from bft_harness.roster import ValidatorRoster
from bft_harness.scenarios import (
    SCENARIOS,
    Scenario,
    ScenarioContext,
    ScenarioRunner,
    classify,
    scenario,
)


def _runner(tmp_path: Path, roster: ValidatorRoster) -> ScenarioRunner:
    config = HarnessConfig.from_mapping(
        {
            "binary": "/nonexistent/node",
            "chain": "chain.yaml",
            "work_dir": str(tmp_path / "work"),
            "log_dir": str(tmp_path / "logs"),
        },
        {},
    )
    return ScenarioRunner(config=config, roster=roster)


def _scenarios(result: str) -> float:
    return REGISTRY.get_sample_value("harness_scenarios_total", {"result": result}) or 0.0


class TestRegistry:
    """Tests for the scenario registry."""

    def test_tendermint_scenarios_are_registered(self) -> None:
        """Every consensus scenario is available by name."""
        assert {
            "possible_authors_latest",
            "possible_authors_genesis",
            "possible_authors_beyond_tip",
            "block_generation",
            "block_generation_with_restart",
            "block_generation_with_transaction",
            "block_sync",
            "gossip",
            "gossip_with_non_permissioned_node",
        } <= set(SCENARIOS)

    def test_deadlines(self) -> None:
        """Deadlines follow how long each recipe needs."""
        assert SCENARIOS["gossip"].timeout == 20
        assert SCENARIOS["block_generation_with_restart"].timeout == 40
        assert SCENARIOS["block_sync"].timeout == 90
        assert all(s.validators == 4 for s in SCENARIOS.values())

    def test_duplicate_name_is_rejected(self) -> None:
        """Names are unique across the registry."""

        async def body(ctx: ScenarioContext) -> None:
            pass

        with pytest.raises(ValueError, match="already registered"):
            scenario("gossip")(body)

    def test_description_is_first_docstring_line(self) -> None:
        """Listings show the first line of the recipe's docstring."""
        assert SCENARIOS["gossip"].description == "Blocks relay along a chain of validators."


class TestClassify:
    """Tests for failure classification."""

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (ConditionTimeoutError("x", timeout=1), "timeout"),
            (ScenarioTimeoutError("s", 1), "timeout"),
            (RemoteError("m", code=1, remote_message="no"), "rejection"),
            (AssertionError("differs"), "rejection"),
            (UnfulfilledExpectationError(["a"]), "unfulfilled"),
            (LaunchError("node-0", "exited"), "launch"),
            (RuntimeError("?"), "error"),
        ],
    )
    def test_kinds(self, error: BaseException, kind: str) -> None:
        """Each failure maps to one report kind."""
        assert classify(error) == kind

    def test_expectation_failure_is_classified_by_its_cause(self) -> None:
        """An awaited step that timed out is a timeout, not a generic error."""
        wrapped = ExpectationFailedError("wait", ConditionTimeoutError("h", timeout=1))

        assert classify(wrapped) == "timeout"


class TestScenarioContext:
    """Tests for per-step timeouts outside a running scenario."""

    def test_without_deadline_uses_wait_timeout(self) -> None:
        """With no scenario deadline, each wait gets the full wait timeout."""
        cluster: Any = None
        ctx = ScenarioContext(cluster=cluster, tracker=ExpectationTracker(), wait_timeout=7)

        assert ctx.step_timeout() == 7

    async def test_exhausted_budget_is_zero(self) -> None:
        """Once the margin is used up, waits get no time at all."""
        cluster: Any = None
        ctx = ScenarioContext(
            cluster=cluster, tracker=ExpectationTracker(), wait_timeout=7, deadline_margin=1
        )
        async with asyncio.timeout(0.5) as deadline:
            ctx.deadline = deadline

            assert ctx.step_timeout() == 0.0


class TestScenarioRunner:
    """Tests for the runner's lifecycle guarantees, using recipes without nodes."""

    async def test_passing_recipe(self, tmp_path: Path, roster: ValidatorRoster) -> None:
        """A recipe that completes with all expectations met passes."""
        before = _scenarios("passed")

        async def body(ctx: ScenarioContext) -> None:
            await ctx.tracker.should_fulfill("noop", asyncio.sleep(0))

        result = await _runner(tmp_path, roster).run(Scenario("ok", body, validators=0))

        assert result.passed
        result.raise_for_failure()
        assert result.summary().startswith("PASS ok")
        assert _scenarios("passed") == before + 1

    async def test_assertion_is_a_rejection(self, tmp_path: Path, roster: ValidatorRoster) -> None:
        """A wrong answer fails the scenario as a rejection."""

        async def body(ctx: ScenarioContext) -> None:
            raise AssertionError("authors differ")

        result = await _runner(tmp_path, roster).run(Scenario("bad", body, validators=0))

        assert not result.passed
        assert result.failure is not None
        assert result.failure.kind == "rejection"
        assert "[rejection] authors differ" in result.summary()

    async def test_deadline_is_a_timeout(self, tmp_path: Path, roster: ValidatorRoster) -> None:
        """A recipe that outlives its deadline fails with a scenario timeout."""

        async def body(ctx: ScenarioContext) -> None:
            await asyncio.sleep(3600)

        result = await _runner(tmp_path, roster).run(
            Scenario("slow", body, timeout=0.1, validators=0)
        )

        assert result.failure is not None
        assert result.failure.kind == "timeout"
        assert isinstance(result.failure.error, ScenarioTimeoutError)
        with pytest.raises(Exception, match="deadline"):
            result.raise_for_failure()

    async def test_deadline_names_the_pending_steps(
        self, tmp_path: Path, roster: ValidatorRoster
    ) -> None:
        """A scenario timeout reports which labelled steps were still running."""

        async def body(ctx: ScenarioContext) -> None:
            ctx.tracker.track("background sync", asyncio.sleep(3600))
            await ctx.tracker.should_fulfill("slow step", asyncio.sleep(3600))

        result = await _runner(tmp_path, roster).run(
            Scenario("stalled", body, timeout=0.2, validators=0)
        )

        assert result.failure is not None
        assert isinstance(result.failure.error, ScenarioTimeoutError)
        assert result.failure.error.pending == ["background sync", "slow step"]
        assert "(pending: background sync, slow step)" in result.summary()

    async def test_waits_end_before_the_scenario_deadline(
        self, tmp_path: Path, roster: ValidatorRoster
    ) -> None:
        """Each wait is capped by what is left of the scenario, minus a margin."""
        budgets: list[float] = []

        async def body(ctx: ScenarioContext) -> None:
            budgets.append(ctx.step_timeout())
            await asyncio.sleep(0.5)
            budgets.append(ctx.step_timeout())

        result = await _runner(tmp_path, roster).run(
            Scenario("budget", body, timeout=5, validators=0)
        )

        assert result.passed
        first, second = budgets
        assert 4.0 <= first <= 4.5
        assert second <= first - 0.4

    async def test_unsettled_background_work_fails(
        self, tmp_path: Path, roster: ValidatorRoster
    ) -> None:
        """Background work still running at the end fails the scenario and is cancelled."""
        task_holder: list[asyncio.Future[object]] = []

        async def body(ctx: ScenarioContext) -> None:
            expectation = ctx.tracker.track("forever", asyncio.sleep(3600))
            assert expectation.task is not None
            task_holder.append(expectation.task)

        result = await _runner(tmp_path, roster).run(Scenario("leak", body, validators=0))

        assert result.failure is not None
        assert result.failure.kind == "unfulfilled"
        assert "forever" in str(result.failure)
        assert task_holder[0].cancelled()

    async def test_launch_failure(self, tmp_path: Path, roster: ValidatorRoster) -> None:
        """Nodes that cannot be spawned fail the scenario before the recipe runs."""
        ran = False

        async def body(ctx: ScenarioContext) -> None:
            nonlocal ran
            ran = True

        result = await _runner(tmp_path, roster).run(Scenario("nobin", body, validators=2))

        assert ran is False
        assert result.failure is not None
        assert result.failure.kind == "launch"

    async def test_roster_too_small(self, tmp_path: Path, roster: ValidatorRoster) -> None:
        """A recipe cannot ask for more validators than the roster has."""

        async def body(ctx: ScenarioContext) -> None:
            pass

        with pytest.raises(ValueError, match="needs 5 validators"):
            await _runner(tmp_path, roster).run(Scenario("big", body, validators=5))

    async def test_run_many_keeps_going(self, tmp_path: Path, roster: ValidatorRoster) -> None:
        """One failing scenario does not stop the others."""

        async def good(ctx: ScenarioContext) -> None:
            pass

        async def bad(ctx: ScenarioContext) -> None:
            raise AssertionError("no")

        results = await _runner(tmp_path, roster).run_many(
            [Scenario("a", bad, validators=0), Scenario("b", good, validators=0)]
        )

        assert [r.passed for r in results] == [False, True]
