"""
Error classification and polling delays
"""
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from cloudspec.common.retry_utils import (
    PollingPolicy, RetryableErrorCategory, categorize_error, is_retryable_error,
)


def _client_error(code, status=400):
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "DescribeExecution",
    )


@pytest.mark.parametrize("error,category", [
    (_client_error("ThrottlingException"), RetryableErrorCategory.THROTTLING),
    (_client_error("InternalServerError", 500), RetryableErrorCategory.TRANSIENT),
    (_client_error("SomethingNew", 503), RetryableErrorCategory.TRANSIENT),
    (_client_error("RequestTimeout"), RetryableErrorCategory.TIMEOUT),
    (_client_error("ExecutionDoesNotExist"), RetryableErrorCategory.NON_RETRYABLE),
    (_client_error("SomethingNew", 400), RetryableErrorCategory.NON_RETRYABLE),
    (EndpointConnectionError(endpoint_url="https://states.us-east-1.amazonaws.com"),
     RetryableErrorCategory.TRANSIENT),
    (NoCredentialsError(), RetryableErrorCategory.NON_RETRYABLE),
    (ValueError("nope"), RetryableErrorCategory.NON_RETRYABLE),
])
def test_categorize_error(error, category):
    assert categorize_error(error) is category
    assert is_retryable_error(error) is (category is not RetryableErrorCategory.NON_RETRYABLE)


class TestPollingPolicy:

    def test_fixed_interval_by_default(self):
        policy = PollingPolicy()
        assert [policy.delay_for(n) for n in range(4)] == [5.0, 5.0, 5.0, 5.0]

    def test_backoff_is_capped(self):
        policy = PollingPolicy(interval_seconds=1.0, backoff_rate=2.0, max_interval_seconds=5.0)
        assert [policy.delay_for(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_within_ten_percent(self):
        policy = PollingPolicy(interval_seconds=10.0, jitter=True)
        for attempt in range(20):
            assert 9.0 <= policy.delay_for(attempt) <= 11.0
