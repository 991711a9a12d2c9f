"""
Common exception classes
Custom exceptions for consistent error handling across cloudspec

Usage:
    from cloudspec.common.exceptions import (
        ConfigurationError, DeploymentError, OutputsNotFoundError,
        OutputNotReadyError, ModeDetectionError
    )
"""


class CloudSpecError(Exception):
    """Base class for all cloudspec exceptions"""

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or "An error occurred"
        super().__init__(self.message)

    def to_dict(self):
        return {
            "error": self.__class__.__name__,
            "message": self.message,
        }


# ============================================================
# Orchestration layer
# ============================================================

class ConfigurationError(CloudSpecError):
    """Invalid input to the orchestration layer"""

    def __init__(self, message: str = None, field: str = None):
        if field:
            msg = f"Configuration error on '{field}': {message}"
        else:
            msg = message or "Configuration error"
        super().__init__(msg)
        self.field = field


# ============================================================
# Stack lifecycle
# ============================================================

class DeploymentError(CloudSpecError):
    """The control plane reported a failed deployment"""

    def __init__(self, stack_name: str = None, message: str = None, status: str = None, reason: str = None):
        msg = f"Deployment of stack {stack_name} failed" if stack_name else "Deployment failed"
        if message:
            msg = f"{msg}: {message}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.stack_name = stack_name
        self.status = status
        self.reason = reason

    def to_dict(self):
        base_dict = super().to_dict()
        base_dict.update({
            "stackName": self.stack_name,
            "status": self.status,
            "reason": self.reason,
        })
        return base_dict


class OutputsNotFoundError(CloudSpecError):
    """The deployed stack recorded no outputs"""

    def __init__(self, stack_name: str = None):
        message = f"Stack outputs not found for stack: {stack_name}" if stack_name else "Stack outputs not found"
        super().__init__(message)
        self.stack_name = stack_name


class OutputNotReadyError(CloudSpecError):
    """Outputs were read before the stack finished deploying"""

    def __init__(self, name: str = None):
        message = "Stack outputs are not available yet; deployment has not completed"
        if name:
            message = f"Output '{name}' requested before deployment completed"
        super().__init__(message)
        self.name = name


# ============================================================
# Workflow execution
# ============================================================

class ModeDetectionError(CloudSpecError):
    """Could not determine whether the state machine is EXPRESS or STANDARD"""

    def __init__(self, state_machine_arn: str = None, original_error: Exception = None):
        message = "Failed to describe Step Functions state machine"
        if state_machine_arn:
            message = f"{message} {state_machine_arn}"
        if original_error:
            message = f"{message}: {original_error}"
        super().__init__(message)
        self.state_machine_arn = state_machine_arn
        self.original_error = original_error


# ============================================================
# External services
# ============================================================

class ExternalServiceError(CloudSpecError):
    """An external service call failed"""

    def __init__(self, service_name: str, message: str = None):
        msg = f"External service error ({service_name}): {message}" if message else f"External service error: {service_name}"
        super().__init__(msg)
        self.service_name = service_name


class S3OperationError(ExternalServiceError):
    """An S3 operation failed"""

    def __init__(self, operation: str = None, bucket: str = None, key: str = None, message: str = None):
        details = []
        if operation:
            details.append(f"operation={operation}")
        if bucket:
            details.append(f"bucket={bucket}")
        if key:
            details.append(f"key={key}")
        detail_str = ", ".join(details) if details else ""
        msg = f"{message} ({detail_str})" if detail_str else message
        super().__init__("S3", msg)
        self.operation = operation
        self.bucket = bucket
        self.key = key


class AuthenticationError(CloudSpecError):
    """AWS rejected the caller's credentials or permissions"""

    def __init__(self, message: str = None):
        super().__init__(message or "Authentication failed")


class RateLimitExceededError(CloudSpecError):
    """Request rate limit exceeded"""

    def __init__(self, message: str = None, retry_after: int = None):
        super().__init__(message or "Rate limit exceeded")
        self.retry_after = retry_after
