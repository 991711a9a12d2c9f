"""
Workflow execution models.

ExecutionHandle identifies a started execution; ExecutionOutcome is the
terminal verdict returned by WorkflowExecutionClient.execute().
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from cloudspec.common.constants import ExecutionMode, ExecutionStatus


class ExecutionState(str, Enum):
    """Lifecycle of one execute() call"""
    UNSTARTED = "unstarted"
    POLLING = "polling"
    TERMINAL = "terminal"


class ExecutionHandle(BaseModel):
    execution_arn: str
    state_machine_arn: str
    mode: ExecutionMode
    start_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ExecutionOutcome(BaseModel):
    """
    Terminal result of an execution.

    ``output`` is the parsed result document and is set iff the status is
    SUCCEEDED. JSON ``null`` is a legal result, so presence is tracked by
    whether the field was given, not by its value. Failures carry
    ``error``/``cause`` and, when the service returned one, the unparsed
    ``raw_output``.
    """
    status: ExecutionStatus
    output: Optional[Any] = None
    error: Optional[str] = None
    cause: Optional[str] = None
    raw_output: Optional[str] = None
    execution_arn: Optional[str] = None
    mode: Optional[ExecutionMode] = None
    timed_out_locally: bool = False

    @model_validator(mode="after")
    def _output_only_on_success(self) -> "ExecutionOutcome":
        has_output = "output" in self.model_fields_set
        if self.status is ExecutionStatus.SUCCEEDED and not has_output:
            raise ValueError("a SUCCEEDED outcome requires an output")
        if self.status is not ExecutionStatus.SUCCEEDED and has_output:
            raise ValueError(f"a {self.status.value} outcome cannot carry an output")
        if self.status not in (
            ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED,
            ExecutionStatus.TIMED_OUT, ExecutionStatus.ABORTED,
        ):
            raise ValueError(f"{self.status.value} is not a terminal status")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCEEDED

    def summary(self) -> str:
        if self.timed_out_locally:
            return "stopped waiting before the execution finished (local timeout)"
        parts = [self.status.value]
        if self.error:
            parts.append(f"error={self.error}")
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " ".join(parts)
