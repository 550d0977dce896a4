"""Error hierarchy and retry policy."""

from harborqa.errors.base import (
    CleanupError,
    CleanupFailures,
    ConfigurationError,
    DependencyCycleError,
    DockerError,
    DockerNotFoundError,
    ErrorCode,
    ErrorContext,
    HarborQAError,
    OperationCancelledError,
    ReadinessTimeoutError,
    ResourceNotFoundError,
    RetryExhaustedError,
    ScriptError,
    SetupError,
    SuiteValidationError,
    TargetResolutionError,
    UnknownKindError,
    UnknownVariableError,
)
from harborqa.errors.retry import RetryConfig, RetryPolicy

__all__ = [
    "CleanupError",
    "CleanupFailures",
    "ConfigurationError",
    "DependencyCycleError",
    "DockerError",
    "DockerNotFoundError",
    "ErrorCode",
    "ErrorContext",
    "HarborQAError",
    "OperationCancelledError",
    "ReadinessTimeoutError",
    "ResourceNotFoundError",
    "RetryConfig",
    "RetryExhaustedError",
    "RetryPolicy",
    "ScriptError",
    "SetupError",
    "SuiteValidationError",
    "TargetResolutionError",
    "UnknownKindError",
    "UnknownVariableError",
]
