"""
Common utility module
Shared AWS clients, configuration, errors and logging for every cloudspec service
"""

from cloudspec.common.aws_clients import (
    get_s3_client,
    get_stepfunctions_client,
    get_cloudformation_client,
    reset_clients
)
from cloudspec.common.config import (
    CloudSpecSettings,
    get_settings,
    reset_settings
)
from cloudspec.common.exceptions import (
    CloudSpecError,
    ConfigurationError,
    DeploymentError,
    OutputsNotFoundError,
    OutputNotReadyError,
    ModeDetectionError,
    ExternalServiceError,
    S3OperationError,
    AuthenticationError,
    RateLimitExceededError
)
from cloudspec.common.json_utils import (
    parse_output,
    dumps_input,
    dumps_pretty,
    find_json_differences,
    json_equals
)
from cloudspec.common.logging_utils import (
    get_logger,
    log_external_service_call,
    log_business_event,
    log_stack_event,
    log_execution_event
)
from cloudspec.common.error_handlers import (
    handle_s3_error,
    handle_stepfunctions_error,
    handle_cloudformation_error,
    handle_network_error
)

__all__ = [
    # AWS clients
    'get_s3_client',
    'get_stepfunctions_client',
    'get_cloudformation_client',
    'reset_clients',
    # Configuration
    'CloudSpecSettings',
    'get_settings',
    'reset_settings',
    # Exceptions
    'CloudSpecError',
    'ConfigurationError',
    'DeploymentError',
    'OutputsNotFoundError',
    'OutputNotReadyError',
    'ModeDetectionError',
    'ExternalServiceError',
    'S3OperationError',
    'AuthenticationError',
    'RateLimitExceededError',
    # JSON utilities
    'parse_output',
    'dumps_input',
    'dumps_pretty',
    'find_json_differences',
    'json_equals',
    # Logging
    'get_logger',
    'log_external_service_call',
    'log_business_event',
    'log_stack_event',
    'log_execution_event',
    # Error handlers
    'handle_s3_error',
    'handle_stepfunctions_error',
    'handle_cloudformation_error',
    'handle_network_error',
]
