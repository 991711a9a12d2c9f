"""
WorkflowExecutionClient - runs a Step Functions state machine to completion.

One execute() call is a small state machine:

    UNSTARTED --(EXPRESS: start_sync_execution)--------------------> TERMINAL
    UNSTARTED --(STANDARD: start_execution)--> POLLING --(terminal)--> TERMINAL
                                               POLLING --(deadline)--> TERMINAL (local TIMED_OUT)

While polling, the status is always read before the deadline is checked, so
an execution that finishes in the same iteration the deadline passes is
reported with its real status. A local timeout only means we stopped
waiting; nothing is sent to abort the remote execution.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from cloudspec.common.aws_clients import get_stepfunctions_client
from cloudspec.common.config import CloudSpecSettings, get_settings
from cloudspec.common.constants import ExecutionMode, ExecutionStatus
from cloudspec.common.error_handlers import handle_network_error, handle_stepfunctions_error
from cloudspec.common.exceptions import ModeDetectionError
from cloudspec.common.json_utils import dumps_input, get_ms_timestamp, parse_output
from cloudspec.common.logging_utils import log_execution_event, log_external_service_call
from cloudspec.common.retry_utils import PollingPolicy, is_retryable_error
from cloudspec.models.execution import ExecutionHandle, ExecutionOutcome, ExecutionState
from cloudspec.services.workflow.console_url import get_console_url

logger = logging.getLogger(__name__)


class ExecutionRun:
    """Mutable progress of a single execute() call."""

    def __init__(self, state_machine_arn: str, mode: ExecutionMode, started_at: float):
        self.state_machine_arn = state_machine_arn
        self.mode = mode
        self.started_at = started_at
        self.state = ExecutionState.UNSTARTED
        self.handle: Optional[ExecutionHandle] = None
        self.outcome: Optional[ExecutionOutcome] = None
        self.polls = 0

    def begin_polling(self, handle: ExecutionHandle) -> None:
        self.handle = handle
        self.state = ExecutionState.POLLING

    def finish(self, outcome: ExecutionOutcome) -> None:
        self.outcome = outcome
        self.state = ExecutionState.TERMINAL


class WorkflowExecutionClient:

    def __init__(
        self,
        stepfunctions_client=None,
        settings: Optional[CloudSpecSettings] = None,
        polling_policy: Optional[PollingPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self._sfn = stepfunctions_client
        self.polling_policy = polling_policy or PollingPolicy(interval_seconds=self.settings.poll_interval_seconds)
        self._sleep = sleep
        self._clock = clock

    @property
    def sfn(self):
        """Lazy Step Functions client initialization."""
        if self._sfn is None:
            self._sfn = get_stepfunctions_client(self.settings.region)
        return self._sfn

    # =========================================================================
    # Mode detection
    # =========================================================================

    def detect_mode(self, state_machine_arn: str) -> ExecutionMode:
        """
        EXPRESS state machines run in fast mode, everything else is durable.

        Raises:
            ModeDetectionError: describe_state_machine failed (not retried)
        """
        try:
            details = self.sfn.describe_state_machine(stateMachineArn=state_machine_arn)
        except (ClientError, BotoCoreError) as e:
            logger.error("Error describing state machine %s: %s", state_machine_arn, e)
            raise ModeDetectionError(state_machine_arn, e) from e
        return ExecutionMode.FAST if details.get("type") == "EXPRESS" else ExecutionMode.DURABLE

    # =========================================================================
    # Execute
    # =========================================================================

    @log_external_service_call("stepfunctions", "execute")
    def execute(self, state_machine_arn: str, input: Any = None, timeout_ms: Optional[int] = None) -> ExecutionOutcome:
        """
        Start an execution and wait for its terminal status.

        Args:
            state_machine_arn: target state machine
            input: JSON-serializable execution input (omitted when None)
            timeout_ms: local wait budget for durable executions

        Returns:
            ExecutionOutcome; FAILED/TIMED_OUT/ABORTED are outcomes, not exceptions
        """
        if timeout_ms is None:
            timeout_ms = self.settings.workflow_timeout_ms

        run = ExecutionRun(state_machine_arn, None, self._clock())
        run.mode = self.detect_mode(state_machine_arn)

        while run.state is not ExecutionState.TERMINAL:
            if run.state is ExecutionState.UNSTARTED:
                self._start(run, input)
            else:
                self._poll(run, timeout_ms)

        outcome = run.outcome
        log_execution_event(
            "execution_finished",
            outcome.execution_arn,
            mode=run.mode.value,
            status=outcome.status.value,
            timed_out_locally=outcome.timed_out_locally,
            polls=run.polls,
        )
        return outcome

    def _start(self, run: ExecutionRun, input: Any) -> None:
        params: Dict[str, Any] = {"stateMachineArn": run.state_machine_arn}
        serialized = dumps_input(input)
        if serialized is not None:
            params["input"] = serialized

        if run.mode is ExecutionMode.FAST:
            response = self._call("start_sync_execution", run.state_machine_arn, **params)
            handle = self._handle_from(response, run)
            self._announce(handle)
            run.handle = handle
            run.finish(self._outcome_from(response, handle))
            return

        response = self._call("start_execution", run.state_machine_arn, **params)
        handle = self._handle_from(response, run)
        self._announce(handle)
        run.begin_polling(handle)

    def _poll(self, run: ExecutionRun, timeout_ms: int) -> None:
        arn = run.handle.execution_arn
        response = None
        try:
            response = self.sfn.describe_execution(executionArn=arn)
        except (ClientError, BotoCoreError) as e:
            if not is_retryable_error(e):
                raise self._convert(e, "describe_execution", arn) from e
            logger.warning("Transient error polling %s, will retry: %s", arn, e)

        status = _parse_status(response.get("status")) if response else None
        if status is not None and status.is_terminal:
            run.finish(self._outcome_from(response, run.handle))
            return

        elapsed_ms = (self._clock() - run.started_at) * 1000
        if elapsed_ms > timeout_ms:
            logger.warning(
                "Execution %s still %s after %dms; no longer waiting",
                arn, status.value if status else "UNKNOWN", timeout_ms,
            )
            run.finish(ExecutionOutcome(
                status=ExecutionStatus.TIMED_OUT,
                execution_arn=arn,
                mode=run.mode,
                timed_out_locally=True,
            ))
            return

        self._sleep(self.polling_policy.delay_for(run.polls))
        run.polls += 1

    # =========================================================================
    # Helpers
    # =========================================================================

    def _call(self, operation: str, arn: str, **params) -> Dict[str, Any]:
        try:
            return getattr(self.sfn, operation)(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._convert(e, operation, arn) from e

    @staticmethod
    def _convert(error: Exception, operation: str, arn: str) -> Exception:
        if isinstance(error, ClientError):
            return handle_stepfunctions_error(error, operation, arn)
        return handle_network_error(error, "stepfunctions", operation)

    @staticmethod
    def _handle_from(response: Dict[str, Any], run: ExecutionRun) -> ExecutionHandle:
        start_date = response.get("startDate")
        if not isinstance(start_date, datetime):
            start_date = datetime.now(timezone.utc)
        return ExecutionHandle(
            execution_arn=response["executionArn"],
            state_machine_arn=run.state_machine_arn,
            mode=run.mode,
            start_date=start_date,
        )

    def _announce(self, handle: ExecutionHandle) -> None:
        url = get_console_url(handle.execution_arn, get_ms_timestamp(handle.start_date))
        logger.info("Step Functions execution URL: %s", url)
        log_execution_event(
            "execution_started",
            handle.execution_arn,
            state_machine_arn=handle.state_machine_arn,
            mode=handle.mode.value,
            console_url=url,
        )

    @staticmethod
    def _outcome_from(response: Dict[str, Any], handle: ExecutionHandle) -> ExecutionOutcome:
        status = ExecutionStatus(response["status"])
        raw_output = response.get("output")

        if status is ExecutionStatus.SUCCEEDED:
            try:
                output = parse_output(raw_output)
            except ValueError:
                logger.warning("Execution %s returned non-JSON output", handle.execution_arn)
                output = raw_output
            return ExecutionOutcome(
                status=status,
                output=output,
                execution_arn=handle.execution_arn,
                mode=handle.mode,
            )

        return ExecutionOutcome(
            status=status,
            error=response.get("error"),
            cause=response.get("cause"),
            raw_output=raw_output,
            execution_arn=handle.execution_arn,
            mode=handle.mode,
        )


def _parse_status(value: Optional[str]) -> Optional[ExecutionStatus]:
    try:
        return ExecutionStatus(value)
    except ValueError:
        logger.warning("Unrecognized execution status %r; treating as still running", value)
        return None
