"""
External service error handling utilities
Converts botocore errors raised by S3, Step Functions and CloudFormation
calls into cloudspec exceptions carrying the operation context.

Usage:
    from cloudspec.common.error_handlers import handle_s3_error

    try:
        s3.head_object(Bucket=bucket, Key=key)
    except ClientError as e:
        raise handle_s3_error(e, operation="head_object", bucket=bucket, key=key) from e
"""

from botocore.exceptions import ClientError, NoCredentialsError, EndpointConnectionError
from cloudspec.common.exceptions import (
    AuthenticationError, ConfigurationError, ExternalServiceError,
    RateLimitExceededError, S3OperationError
)
from cloudspec.common.logging_utils import get_logger

logger = get_logger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def error_code_of(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def is_not_found(error: ClientError) -> bool:
    return error_code_of(error) in NOT_FOUND_CODES


def handle_s3_error(
    error: ClientError,
    operation: str,
    bucket: str = None,
    key: str = None
) -> Exception:
    """
    Convert an S3 ClientError into a specific exception

    Args:
        error: boto3 ClientError
        operation: e.g. "head_object", "get_object"
        bucket: bucket name
        key: object key

    Returns:
        Exception: the matching cloudspec exception
    """
    error_code = error_code_of(error)
    error_message = error.response.get("Error", {}).get("Message", "")

    context = {
        "service": "s3",
        "operation": operation,
        "error_code": error_code,
        "bucket": bucket,
        "key": key
    }

    logger.error(f"S3 {operation} failed", extra=context)

    if error_code == "NoSuchBucket":
        return S3OperationError(operation, bucket, key, f"Bucket not found: {bucket}")
    elif error_code in NOT_FOUND_CODES:
        return S3OperationError(operation, bucket, key, f"Object not found: {key}")
    elif error_code in ("AccessDenied", "403", "Forbidden"):
        return AuthenticationError(f"S3 access denied for {operation} on {bucket}")
    elif error_code == "SlowDown":
        return RateLimitExceededError("S3 rate limit exceeded", retry_after=5)
    else:
        return S3OperationError(operation, bucket, key, f"{error_code}: {error_message}")


def handle_stepfunctions_error(
    error: ClientError,
    operation: str,
    arn: str = None
) -> Exception:
    """
    Convert a Step Functions ClientError into a specific exception
    """
    error_code = error_code_of(error)
    error_message = error.response.get("Error", {}).get("Message", "")

    context = {
        "service": "stepfunctions",
        "operation": operation,
        "error_code": error_code,
        "arn": arn
    }

    logger.error(f"Step Functions {operation} failed", extra=context)

    if error_code in ("InvalidArn", "StateMachineDoesNotExist", "ExecutionDoesNotExist"):
        return ConfigurationError(f"{error_code}: {arn}")
    elif error_code == "AccessDeniedException":
        return AuthenticationError(f"Step Functions access denied for {operation}")
    elif error_code == "ThrottlingException":
        return RateLimitExceededError(f"Step Functions throttled {operation}")
    else:
        return ExternalServiceError("stepfunctions", f"{error_code}: {error_message}")


def handle_cloudformation_error(
    error: ClientError,
    operation: str,
    stack_name: str = None
) -> Exception:
    """
    Convert a CloudFormation ClientError into a specific exception
    """
    error_code = error_code_of(error)
    error_message = error.response.get("Error", {}).get("Message", "")

    context = {
        "service": "cloudformation",
        "operation": operation,
        "error_code": error_code,
        "stack_name": stack_name
    }

    logger.error(f"CloudFormation {operation} failed", extra=context)

    if error_code == "AccessDenied" or error_code == "AccessDeniedException":
        return AuthenticationError(f"CloudFormation access denied for {operation}")
    elif error_code == "Throttling":
        return RateLimitExceededError(f"CloudFormation throttled {operation}")
    else:
        return ExternalServiceError("cloudformation", f"{error_code}: {error_message}")


def handle_network_error(error: Exception, service: str, operation: str) -> Exception:
    """
    Handle connectivity and credential errors
    """
    context = {
        "service": service,
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error)
    }

    logger.error(f"Network error for {service}", extra=context)

    if isinstance(error, EndpointConnectionError):
        return ExternalServiceError(service, f"Connection failed: {error}")
    elif isinstance(error, NoCredentialsError):
        return AuthenticationError(f"AWS credentials not found for {service}")
    elif "timeout" in str(error).lower():
        return ExternalServiceError(service, f"Request timeout: {error}")
    else:
        return ExternalServiceError(service, f"Network error: {error}")
