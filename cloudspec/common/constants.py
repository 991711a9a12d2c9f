"""
Constants and defaults shared across cloudspec
Centralized so that no timeout or tag name is a magic value

Usage:
    from cloudspec.common.constants import TimeoutConfig, StackTags

    timeout_ms = TimeoutConfig.WORKFLOW_MS
"""

from enum import Enum


DEFAULT_REGION = "us-east-1"
CONSOLE_HOST_TEMPLATE = "https://{region}.console.aws.amazon.com/states/home"


class TimeoutConfig:
    """Timeouts in milliseconds"""

    # Workflow completion wait
    WORKFLOW_MS = 60_000

    # Stack deploy (setup)
    SETUP_MS = 120_000

    # Stack destroy (teardown)
    TEARDOWN_MS = 600_000

    # A single test body
    TEST_MS = 600_000


class PollingConfig:
    """Durable execution polling"""

    INTERVAL_SECONDS = 5.0

    # CloudFormation waiter delay
    WAITER_DELAY_SECONDS = 5


class StackTags:
    """Tags applied to every deployment unit"""

    MARKER_KEY = "cloudspec"
    MARKER_VALUE = "true"
    TEST_PATH_KEY = "cloudspec:test-path"

    # CloudFormation tag value limit
    MAX_VALUE_LENGTH = 256


class StackNaming:
    PREFIX = "CloudSpec"
    MAX_LENGTH = 128
    DIGEST_LENGTH = 8


class TemplateLimits:
    # CloudFormation TemplateBody limit (bytes)
    MAX_INLINE_BODY_BYTES = 51_200


class MetadataKeys:
    PATH = "cloudspec:path"
    AUTO_DELETE_OBJECTS = "cloudspec:auto-delete-objects"


class ExecutionStatus(str, Enum):
    """Step Functions execution status"""
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    ABORTED = "ABORTED"
    PENDING_REDRIVE = "PENDING_REDRIVE"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.SUCCEEDED,
    ExecutionStatus.FAILED,
    ExecutionStatus.TIMED_OUT,
    ExecutionStatus.ABORTED,
})


class ExecutionMode(str, Enum):
    """fast = EXPRESS (synchronous), durable = STANDARD (polled)"""
    FAST = "fast"
    DURABLE = "durable"


SNAPSHOT_DIRNAME = "__snapshots__"
AUTO_DELETE_WARNING = "This resource is set for automatic deletion, including all its contents."
