"""
Models package.
Resource graph constructs plus the pydantic value types exchanged between services.
"""

from cloudspec.models.deployment import (
    DeploymentUnit,
    OutputSet,
)

from cloudspec.models.execution import (
    ExecutionState,
    ExecutionHandle,
    ExecutionOutcome,
)

from cloudspec.models.match_result import MatchResult

from cloudspec.models.resource_graph import (
    DeletionPolicy,
    Construct,
    Stack,
    CfnResource,
    Bucket,
    Role,
    StateMachine,
    StateMachineType,
    CfnOutput,
)

__all__ = [
    # Deployment
    "DeploymentUnit",
    "OutputSet",
    # Execution
    "ExecutionState",
    "ExecutionHandle",
    "ExecutionOutcome",
    # Assertions
    "MatchResult",
    # Resource graph
    "DeletionPolicy",
    "Construct",
    "Stack",
    "CfnResource",
    "Bucket",
    "Role",
    "StateMachine",
    "StateMachineType",
    "CfnOutput",
]
