"""
Structured logging utility module
JSON structured logging using AWS Lambda Powertools

Module-level diagnostics use the standard ``logging.getLogger(__name__)``;
lifecycle events that operators search for (stack deployed, execution
started, ...) go through the Powertools logger here so they carry
consistent keys.

Lazy import: aws_lambda_powertools is only loaded on first use.

Usage:
    from cloudspec.common.logging_utils import get_logger, log_business_event

    logger = get_logger(__name__)
    log_business_event("stack_deployed", stack_name="CloudSpec-demo-ci")
"""

import os
import time
import functools
from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from aws_lambda_powertools import Logger


SERVICE_NAME = os.getenv("CLOUDSPEC_SERVICE_NAME", "cloudspec")

_logger_instances: Dict[str, "Logger"] = {}
_Logger = None


def _ensure_powertools_loaded():
    """Load AWS Lambda Powertools on first use"""
    global _Logger

    if _Logger is not None:
        return

    from aws_lambda_powertools import Logger

    _Logger = Logger


def get_logger(name: str = None, level: str = None) -> "Logger":
    """
    Return a structured Logger instance.

    Args:
        name: cache key (defaults to this module)
        level: log level (defaults to LOG_LEVEL or INFO)

    Returns:
        Logger: AWS Lambda Powertools Logger instance
    """
    _ensure_powertools_loaded()

    if name is None:
        name = __name__

    if name in _logger_instances:
        return _logger_instances[name]

    log_level = level or os.getenv("LOG_LEVEL", "INFO")
    logger = _Logger(service=SERVICE_NAME, level=log_level)

    _logger_instances[name] = logger
    return logger


def log_external_service_call(service_name: str, operation: str):
    """
    Decorator that logs start, completion and failure of an AWS call.

    Args:
        service_name: e.g. "cloudformation", "stepfunctions"
        operation: e.g. "deploy", "execute"

    Usage:
        @log_external_service_call("cloudformation", "deploy")
        def deploy(self, unit):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            started = time.monotonic()

            logger.info(
                f"Starting {service_name} {operation}",
                extra={
                    "service": service_name,
                    "operation": operation,
                    "function": func.__name__
                }
            )

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {service_name} {operation}",
                    extra={
                        "service": service_name,
                        "operation": operation,
                        "status": "error",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "duration_ms": int((time.monotonic() - started) * 1000)
                    }
                )
                raise

            logger.info(
                f"Completed {service_name} {operation}",
                extra={
                    "service": service_name,
                    "operation": operation,
                    "status": "success",
                    "duration_ms": int((time.monotonic() - started) * 1000)
                }
            )
            return result

        return wrapper
    return decorator


def log_business_event(event_type: str, **context):
    """
    Log a lifecycle event in structured form.

    Args:
        event_type: e.g. "stack_deployed", "execution_started"
        **context: additional keys

    Usage:
        log_business_event(
            "execution_started",
            state_machine_arn="arn:aws:states:...",
            execution_arn="arn:aws:states:...",
            mode="durable"
        )
    """
    logger = get_logger("business_events")

    logger.info(
        f"Business event: {event_type}",
        extra={
            "event_type": event_type,
            "event_category": "lifecycle",
            **context
        }
    )


def log_stack_event(event_type: str, stack_name: str, **context):
    """Stack lifecycle event"""
    log_business_event(event_type, stack_name=stack_name, **context)


def log_execution_event(event_type: str, execution_arn: Optional[str], **context):
    """Workflow execution event"""
    log_business_event(event_type, execution_arn=execution_arn, **context)
