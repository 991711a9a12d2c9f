"""
Assertion matchers over live cloud resources.

Every matcher returns a MatchResult, which is truthy iff the assertion
passed:

    assert have_key(outputs["BucketName"], "object.json")
    assert complete_execution(outputs["StateMachineArn"], result={"hello": "world"})

An expected-failure outcome is a failed MatchResult. Infrastructure errors
(credentials, connectivity, unreadable state machine) are raised.
"""

import difflib
import logging
from typing import Any, Optional

from cloudspec.common.config import CloudSpecSettings, get_settings
from cloudspec.common.constants import ExecutionMode, ExecutionStatus
from cloudspec.common.json_utils import dumps_pretty, find_json_differences
from cloudspec.models.match_result import MatchResult
from cloudspec.services.assertions.snapshot import SnapshotStatus, SnapshotStore, check_snapshot
from cloudspec.services.storage.object_store_probe import Body, ObjectStoreProbe
from cloudspec.services.workflow.execution_client import WorkflowExecutionClient

logger = logging.getLogger(__name__)

_UNSET = object()

_GREEN = "\033[32m"
_RED = "\033[31m"
_CYAN = "\033[36m"
_RESET = "\033[0m"

_MODE_LABELS = {
    ExecutionMode.FAST: "Express",
    ExecutionMode.DURABLE: "Standard",
}


def unified_diff(expected: str, actual: str, colored: bool = False) -> str:
    """Line-level diff, expected first. ANSI colored when ``colored``."""
    lines = list(difflib.unified_diff(
        expected.splitlines(),
        actual.splitlines(),
        fromfile="snapshot",
        tofile="received",
        lineterm="",
    ))
    if not colored:
        return "\n".join(lines)

    painted = []
    for line in lines:
        if line.startswith("+") and not line.startswith("+++"):
            painted.append(f"{_GREEN}{line}{_RESET}")
        elif line.startswith("-") and not line.startswith("---"):
            painted.append(f"{_RED}{line}{_RESET}")
        elif line.startswith("@@"):
            painted.append(f"{_CYAN}{line}{_RESET}")
        else:
            painted.append(line)
    return "\n".join(painted)


def json_equivalent(actual: Any, expected: Any) -> MatchResult:
    """
    Structural JSON equality: objects by key set, arrays in order, ``true``
    distinct from ``1``.
    """
    differences = find_json_differences(actual, expected)
    if not differences:
        return MatchResult(passed=True, message="values are JSON-equivalent", actual=actual, expected=expected)
    return MatchResult(
        passed=False,
        message=f"values differ in {len(differences)} place(s)",
        actual=actual,
        expected=expected,
        diff="\n".join(differences),
    )


class Matchers:
    """Matchers bound to a probe, an execution client and settings."""

    def __init__(
        self,
        probe: Optional[ObjectStoreProbe] = None,
        execution_client: Optional[WorkflowExecutionClient] = None,
        settings: Optional[CloudSpecSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.probe = probe or ObjectStoreProbe(settings=self.settings)
        self.execution_client = execution_client or WorkflowExecutionClient(settings=self.settings)

    # =========================================================================
    # Object store
    # =========================================================================

    def have_key(self, bucket: str, key: str) -> MatchResult:
        passed = self.probe.exists(bucket, key)
        return MatchResult(passed=passed, message=f"expected {key} to exist in S3 bucket {bucket}")

    def create_object(self, bucket: str, key: str, body: Body) -> MatchResult:
        if self.probe.put(bucket, key, body):
            return MatchResult(passed=True, message=f"Successfully created object with key {key} in bucket {bucket}")
        return MatchResult(passed=False, message=f"Failed to create object with key {key} in bucket {bucket}")

    def match_object_snapshot(
        self,
        bucket: str,
        key: str,
        snapshot: SnapshotStore,
        name: Optional[str] = None,
        colored_diff: bool = False,
    ) -> MatchResult:
        """
        Compare the object's content with the snapshot reference ``name``
        (defaults to the key). A missing reference is recorded and passes.
        """
        content = self.probe.get_content(bucket, key)
        if content is None:
            return MatchResult(passed=False, message=f"failed to retrieve content from {key} in S3 bucket {bucket}")

        update = getattr(snapshot, "update", False) or self.settings.update_snapshots
        check = check_snapshot(snapshot, name or key, content, update=update)

        if check.status is SnapshotStatus.MISMATCHED:
            return MatchResult(
                passed=False,
                message=f"Snapshot for {key} in S3 bucket {bucket} did not match.",
                actual=content,
                expected=check.expected,
                diff=unified_diff(check.expected, content, colored=colored_diff),
            )
        return MatchResult(
            passed=True,
            message=f"expected {key} content to match snapshot in S3 bucket {bucket} ({check.status.value})",
            actual=content,
            expected=check.expected if check.expected is not None else content,
        )

    # =========================================================================
    # Workflow
    # =========================================================================

    def complete_execution(
        self,
        state_machine_arn: str,
        input: Any = None,
        timeout_ms: Optional[int] = None,
        result: Any = _UNSET,
    ) -> MatchResult:
        """
        Run the state machine and pass on SUCCEEDED. When ``result`` is given
        the output must also be JSON-equivalent to it.
        """
        outcome = self.execution_client.execute(state_machine_arn, input=input, timeout_ms=timeout_ms)
        label = _MODE_LABELS[outcome.mode]

        if outcome.status is not ExecutionStatus.SUCCEEDED:
            if outcome.timed_out_locally:
                budget = timeout_ms if timeout_ms is not None else self.settings.workflow_timeout_ms
                message = (
                    f"{label} Step Functions execution timed out after {budget}ms. "
                    f"View details at the URL printed above."
                )
            else:
                message = (
                    f"{label} Step Functions execution failed with status: {outcome.status.value}. "
                    f"View details at the URL printed above."
                )
            return MatchResult(passed=False, message=message, actual=outcome.raw_output)

        if result is _UNSET:
            return MatchResult(
                passed=True,
                message=f"{label} Step Functions execution completed successfully",
                actual=outcome.output,
            )

        comparison = json_equivalent(outcome.output, result)
        if comparison:
            message = f"{label} Step Functions execution completed successfully and result matches expected"
        else:
            message = f"{label} Step Functions execution completed successfully but result does not match expected"
        return MatchResult(
            passed=comparison.passed,
            message=message,
            actual=outcome.output,
            expected=result,
            diff=None if comparison else f"{comparison.diff}\n\nreceived:\n{dumps_pretty(outcome.output)}",
        )


_default_matchers: Optional[Matchers] = None


def get_matchers() -> Matchers:
    """Process-wide matchers on the default clients."""
    global _default_matchers
    if _default_matchers is None:
        _default_matchers = Matchers()
    return _default_matchers


def reset_matchers() -> None:
    global _default_matchers
    _default_matchers = None


def have_key(bucket: str, key: str) -> MatchResult:
    return get_matchers().have_key(bucket, key)


def create_object(bucket: str, key: str, body: Body) -> MatchResult:
    return get_matchers().create_object(bucket, key, body)


def match_object_snapshot(
    bucket: str,
    key: str,
    snapshot: SnapshotStore,
    name: Optional[str] = None,
    colored_diff: bool = False,
) -> MatchResult:
    return get_matchers().match_object_snapshot(bucket, key, snapshot, name=name, colored_diff=colored_diff)


def complete_execution(
    state_machine_arn: str,
    input: Any = None,
    timeout_ms: Optional[int] = None,
    result: Any = _UNSET,
) -> MatchResult:
    return get_matchers().complete_execution(state_machine_arn, input=input, timeout_ms=timeout_ms, result=result)
