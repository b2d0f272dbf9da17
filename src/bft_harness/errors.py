"""Exception hierarchy for the consensus test harness."""

from __future__ import annotations

from typing import Any


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class LaunchError(HarnessError):
    """
    Raised when a node process cannot be brought up.

    Covers spawn failures, early process exit, and a query endpoint that never
    became reachable within the startup window. Never retried.

    Attributes:
        node: Label of the node that failed to launch.
        detail: What went wrong.
        exit_code: Process exit code when the process died during startup.
    """

    def __init__(self, node: str, detail: str, *, exit_code: int | None = None) -> None:
        self.node = node
        self.detail = detail
        self.exit_code = exit_code

        msg = f"Failed to launch {node}: {detail}"
        if exit_code is not None:
            msg = f"{msg} (exit code {exit_code})"

        super().__init__(msg)


class NodeStateError(HarnessError):
    """Raised when a node is used in a lifecycle state that does not allow it."""

    def __init__(self, node: str, state: str, action: str) -> None:
        self.node = node
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} {node} while it is {state}")


class TransportError(HarnessError):
    """
    Raised when a node cannot be reached at the HTTP level.

    Distinct from RemoteError: the request never produced a JSON-RPC answer.
    """

    def __init__(self, endpoint: str, method: str, detail: str) -> None:
        self.endpoint = endpoint
        self.method = method
        self.detail = detail
        super().__init__(f"{method} on {endpoint} failed: {detail}")


class RemoteError(HarnessError):
    """
    Raised when a node answers a call with a JSON-RPC error object.

    Attributes:
        method: The RPC method that was rejected.
        code: JSON-RPC error code.
        remote_message: Error message returned by the node.
        data: Optional error data returned by the node.
    """

    def __init__(
        self,
        method: str,
        *,
        code: int,
        remote_message: str,
        data: Any = None,
    ) -> None:
        self.method = method
        self.code = code
        self.remote_message = remote_message
        self.data = data

        msg = f"{method} rejected ({code}): {remote_message}"
        if data is not None:
            msg = f"{msg} [{data}]"

        super().__init__(msg)


class ConditionTimeoutError(HarnessError, TimeoutError):
    """
    Raised when a polled condition does not hold before its deadline.

    Also a builtin TimeoutError so reports can tell "never happened" apart from
    "happened with the wrong value".

    Attributes:
        description: What was being waited for.
        expected: Target value of the condition.
        observed: Last value observed before the deadline (None if never observed).
        timeout: The deadline in seconds.
    """

    def __init__(
        self,
        description: str,
        *,
        expected: Any = None,
        observed: Any = None,
        timeout: float,
    ) -> None:
        self.description = description
        self.expected = expected
        self.observed = observed
        self.timeout = timeout

        msg = f"Timed out after {timeout:.1f}s waiting for {description}"
        if expected is not None:
            msg = f"{msg}: expected {expected}, last observed {observed}"

        super().__init__(msg)


class ScenarioTimeoutError(HarnessError, TimeoutError):
    """
    Raised when a scenario does not finish within its overall deadline.

    Attributes:
        scenario: Scenario name.
        timeout: The deadline in seconds.
        pending: Labels of the steps still unsettled when the deadline hit.
    """

    def __init__(self, scenario: str, timeout: float, pending: list[str] | None = None) -> None:
        self.scenario = scenario
        self.timeout = timeout
        self.pending = pending or []

        msg = f"Scenario {scenario!r} exceeded its {timeout:.1f}s deadline"
        if self.pending:
            msg = f"{msg} (pending: {', '.join(self.pending)})"

        super().__init__(msg)


class ExpectationFailedError(HarnessError):
    """
    Raised when an awaited expectation fails.

    The original error is chained as ``__cause__``.

    Attributes:
        label: Label the expectation was registered under.
        error: The underlying exception.
    """

    def __init__(self, label: str, error: BaseException) -> None:
        self.label = label
        self.error = error
        super().__init__(f"Expectation {label!r} failed: {error}")

    @property
    def is_timeout(self) -> bool:
        """Whether the underlying failure was a deadline expiry."""
        return isinstance(self.error, TimeoutError)


class UnfulfilledExpectationError(HarnessError):
    """
    Raised when a scenario ends with tracked work that did not succeed.

    Attributes:
        pending: Labels that never settled.
        rejected: Labels that settled with an error, mapped to that error.
    """

    def __init__(
        self,
        pending: list[str],
        rejected: dict[str, BaseException] | None = None,
    ) -> None:
        self.pending = pending
        self.rejected = rejected or {}

        parts = []
        if self.pending:
            parts.append(f"pending: {', '.join(self.pending)}")
        if self.rejected:
            failures = "; ".join(f"{label} ({err})" for label, err in self.rejected.items())
            parts.append(f"rejected: {failures}")

        super().__init__(f"Unfulfilled expectations - {' | '.join(parts)}")


class ScenarioFailedError(HarnessError):
    """
    Summary of a failed scenario as reported by the runner.

    Attributes:
        scenario: Scenario name.
        kind: One of "timeout", "rejection", "unfulfilled", "launch", "error".
        error: The exception that ended the scenario.
    """

    def __init__(self, scenario: str, kind: str, error: BaseException) -> None:
        self.scenario = scenario
        self.kind = kind
        self.error = error
        super().__init__(f"Scenario {scenario!r} failed ({kind}): {error}")
