"""
Error classification and polling policy

Separates transient AWS faults (throttling, 5xx, connection resets) from
terminal ones so that the durable-execution poll loop can keep waiting on the
former and surface the latter immediately.

Usage:
    from cloudspec.common.retry_utils import is_retryable_error, PollingPolicy

    policy = PollingPolicy(interval_seconds=5.0)
    delay = policy.delay_for(attempt)

Note: this is application-level classification, separate from botocore's
own retries.
"""
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Retryable error categories
# =============================================================================

class RetryableErrorCategory(Enum):
    TRANSIENT = "transient"            # temporary network/service fault
    THROTTLING = "throttling"          # rate limit
    TIMEOUT = "timeout"
    NON_RETRYABLE = "non_retryable"    # auth, validation, missing resources


RETRYABLE_NETWORK_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    EndpointConnectionError,
    ConnectionClosedError,
    ReadTimeoutError,
    ConnectTimeoutError,
)


AWS_ERROR_CATEGORIES: Dict[str, RetryableErrorCategory] = {
    # Transient
    "InternalServerError": RetryableErrorCategory.TRANSIENT,
    "InternalFailure": RetryableErrorCategory.TRANSIENT,
    "ServiceUnavailable": RetryableErrorCategory.TRANSIENT,
    "ServiceException": RetryableErrorCategory.TRANSIENT,

    # Throttling
    "ThrottlingException": RetryableErrorCategory.THROTTLING,
    "Throttling": RetryableErrorCategory.THROTTLING,
    "TooManyRequestsException": RetryableErrorCategory.THROTTLING,
    "RequestLimitExceeded": RetryableErrorCategory.THROTTLING,
    "SlowDown": RetryableErrorCategory.THROTTLING,  # S3

    # Timeout
    "RequestTimeout": RetryableErrorCategory.TIMEOUT,
    "RequestTimeoutException": RetryableErrorCategory.TIMEOUT,

    # Non-retryable
    "AccessDeniedException": RetryableErrorCategory.NON_RETRYABLE,
    "AccessDenied": RetryableErrorCategory.NON_RETRYABLE,
    "UnrecognizedClientException": RetryableErrorCategory.NON_RETRYABLE,
    "ValidationException": RetryableErrorCategory.NON_RETRYABLE,
    "InvalidArn": RetryableErrorCategory.NON_RETRYABLE,
    "ExecutionDoesNotExist": RetryableErrorCategory.NON_RETRYABLE,
    "StateMachineDoesNotExist": RetryableErrorCategory.NON_RETRYABLE,
}


def categorize_error(error: Exception) -> RetryableErrorCategory:
    """
    Map an exception to a retry category.

    ClientErrors are looked up by code, with HTTP 5xx treated as transient
    when the code is unknown. Connection-level exceptions are transient.
    Everything else is non-retryable.
    """
    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "")
        category = AWS_ERROR_CATEGORIES.get(error_code)
        if category is not None:
            return category
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if status >= 500:
            return RetryableErrorCategory.TRANSIENT
        return RetryableErrorCategory.NON_RETRYABLE

    if isinstance(error, RETRYABLE_NETWORK_EXCEPTIONS):
        return RetryableErrorCategory.TRANSIENT

    return RetryableErrorCategory.NON_RETRYABLE


def is_retryable_error(error: Exception) -> bool:
    return categorize_error(error) is not RetryableErrorCategory.NON_RETRYABLE


# =============================================================================
# Polling policy
# =============================================================================

@dataclass(frozen=True)
class PollingPolicy:
    """
    Delay between status queries.

    Defaults to a fixed interval. ``backoff_rate`` > 1 grows the delay
    geometrically up to ``max_interval_seconds``; ``jitter`` spreads it by
    up to +/-10%.
    """
    interval_seconds: float = 5.0
    backoff_rate: float = 1.0
    max_interval_seconds: float = 30.0
    jitter: bool = False

    def delay_for(self, attempt: int) -> float:
        delay = self.interval_seconds * (self.backoff_rate ** max(attempt, 0))
        delay = min(delay, max(self.max_interval_seconds, self.interval_seconds))
        if self.jitter:
            delay *= random.uniform(0.9, 1.1)
        return delay
