"""Custom exception hierarchy for harborqa.

Every harborqa error inherits from HarborQAError and carries:
- error_code: an ErrorCode enum used for categorization
- context: ErrorContext naming the suite/unit/test/operation involved
- suggestions: actionable steps to resolve the issue
- recoverable: whether the suite runner may retry the failed step

Example:
    try:
        runner.run()
    except SetupError as e:
        print(f"Error: {e}")
        for suggestion in e.suggestions:
            print(f"  - {suggestion}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for harborqa.

    Error codes are organized by category:
    - E1xx: Configuration errors
    - E2xx: Setup errors (container build/start/readiness)
    - E3xx: Test errors
    - E4xx: Cleanup errors
    - E5xx: Container runtime errors
    - E6xx: Cancellation
    - E9xx: Unknown/internal errors
    """

    # Configuration errors (E1xx)
    INVALID_CONFIG = "E101"
    INVALID_SUITE = "E102"
    UNRESOLVED_TARGET = "E103"
    UNKNOWN_KIND = "E104"
    DEPENDENCY_CYCLE = "E105"

    # Setup errors (E2xx)
    SETUP_FAILED = "E201"
    READINESS_TIMEOUT = "E202"
    UNKNOWN_VARIABLE = "E203"
    SCRIPT_FAILED = "E204"
    RETRY_EXHAUSTED = "E205"

    # Test errors (E3xx)
    TEST_FAILED = "E301"

    # Cleanup errors (E4xx)
    CLEANUP_FAILED = "E401"
    CLEANUP_PARTIAL = "E402"

    # Runtime errors (E5xx)
    DOCKER_FAILED = "E501"
    DOCKER_NOT_FOUND = "E502"
    RESOURCE_NOT_FOUND = "E503"

    # Cancellation (E6xx)
    CANCELLED = "E601"

    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 200:
            return "configuration"
        elif code_num < 300:
            return "setup"
        elif code_num < 400:
            return "test"
        elif code_num < 500:
            return "cleanup"
        elif code_num < 600:
            return "runtime"
        elif code_num < 700:
            return "cancellation"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Where an error happened.

    Attributes:
        suite: Name of the suite being executed.
        unit: Name of the unit involved, if any.
        test: Name of the test involved, if any.
        operation: The attempted operation (start, wait_for_ready, ...).
        resource: Identity of an infrastructure resource (container/network).
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    suite: str | None = None
    unit: str | None = None
    test: str | None = None
    operation: str | None = None
    resource: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "suite": self.suite,
            "unit": self.unit,
            "test": self.test,
            "operation": self.operation,
            "resource": self.resource,
            "extra": self.extra or None,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.suite:
            parts.append(f"suite={self.suite}")
        if self.unit:
            parts.append(f"unit={self.unit}")
        if self.test:
            parts.append(f"test={self.test}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.resource:
            parts.append(f"resource={self.resource}")
        return ", ".join(parts) if parts else "unknown location"


class HarborQAError(Exception):
    """Base exception for all harborqa errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with execution details
        suggestions: List of actionable steps to resolve the issue
        recoverable: Whether the failed step can be retried
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"
    default_suggestions: list[str] = []
    default_recoverable: bool = False

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        recoverable: bool | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        if self.cause is not None:
            parts.append(f"cause: {self.cause}")

        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [
            f"Error [{self.error_code.value}]: {self.message}",
            "",
        ]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.cause is not None:
            lines.append(f"Cause: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(HarborQAError):
    """Missing or invalid suite configuration.

    Raised before any infrastructure is created; never retried.
    """

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid configuration"
    default_suggestions = [
        "Run 'harborqa dry-run <suite.yml>' to validate the suite document",
    ]


class SuiteValidationError(ConfigurationError):
    """A suite document failed validation.

    Carries every issue found so they can be reported together.
    """

    error_code = ErrorCode.INVALID_SUITE
    default_message = "Suite validation failed"

    def __init__(
        self,
        message: str | None = None,
        issues: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> None:
        self.issues = issues or []
        if message is None and self.issues:
            message = "; ".join(format_issue(issue) for issue in self.issues)
        super().__init__(message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["issues"] = self.issues
        return result


def format_issue(issue: dict[str, Any]) -> str:
    path = issue.get("path") or []
    location = ".".join(str(p) for p in path)
    if location:
        return f"{location}: {issue.get('message', '')}"
    return str(issue.get("message", ""))


class TargetResolutionError(ConfigurationError):
    """A test's target unit could not be resolved."""

    error_code = ErrorCode.UNRESOLVED_TARGET
    default_message = "Test target could not be resolved"
    default_suggestions = [
        "Set a suite-level 'target' that names one of the suite's units",
        "Or set 'target' on each test to an existing unit name",
    ]


class UnknownKindError(ConfigurationError):
    """No adapter is registered for a unit or test kind."""

    error_code = ErrorCode.UNKNOWN_KIND
    default_message = "Unknown kind"

    def __init__(self, kind: str, family: str = "unit", **kwargs: Any) -> None:
        self.kind = kind
        self.family = family
        super().__init__(message=f"no {family} adapter registered for kind '{kind}'", **kwargs)


class DependencyCycleError(ConfigurationError):
    """Units reference each other's variables in a cycle."""

    error_code = ErrorCode.DEPENDENCY_CYCLE
    default_message = "Circular dependency between units"

    def __init__(self, cycle: list[str], **kwargs: Any) -> None:
        self.cycle = cycle
        super().__init__(
            message=f"circular env dependency between units: {' -> '.join(cycle)}",
            **kwargs,
        )


class SetupError(HarborQAError):
    """Container creation, build or start failed.

    Setup errors are recoverable: the suite runner retries setup up to
    the configured maximum before giving up.
    """

    error_code = ErrorCode.SETUP_FAILED
    default_message = "Unit setup failed"
    default_recoverable = True
    default_suggestions = [
        "Check that the Docker daemon is running ('docker info')",
        "Re-run with --debug to see the underlying docker commands",
    ]


class ReadinessTimeoutError(SetupError):
    """A unit did not become ready within its startup timeout."""

    error_code = ErrorCode.READINESS_TIMEOUT
    default_message = "Unit did not become ready in time"

    def __init__(
        self,
        message: str | None = None,
        timeout_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        if message is None:
            unit = kwargs.get("context").unit if kwargs.get("context") else None
            message = f"unit '{unit or '?'}' not ready after {timeout_seconds or 0:.1f}s"
        super().__init__(message=message, **kwargs)

    @property
    def suggestions(self) -> list[str]:
        if self._suggestions is not None:
            return self._suggestions
        return [
            f"Increase 'startup_timeout' beyond {self.timeout_seconds}s",
            "Check the container logs for a crash on boot",
        ]


class UnknownVariableError(HarborQAError):
    """A unit was asked for a connection variable it does not expose."""

    error_code = ErrorCode.UNKNOWN_VARIABLE
    default_message = "Unknown variable"

    def __init__(self, unit: str, variable: str, known: list[str] | None = None, **kwargs: Any) -> None:
        self.unit = unit
        self.variable = variable
        self.known = known or []
        message = f"unit '{unit}' has no variable '{variable}'"
        if self.known:
            message += f" (known: {', '.join(self.known)})"
        kwargs.setdefault("context", ErrorContext(unit=unit, operation="get"))
        super().__init__(message=message, **kwargs)


class ScriptError(SetupError):
    """A before/after lifecycle script exited non-zero."""

    error_code = ErrorCode.SCRIPT_FAILED
    default_message = "Lifecycle script failed"
    default_recoverable = False

    def __init__(self, command: str, returncode: int | None, output: str = "", **kwargs: Any) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"script '{command}' failed"
        if returncode is not None:
            message += f" with exit code {returncode}"
        if output.strip():
            message += f": {output.strip()}"
        super().__init__(message=message, **kwargs)


class RetryExhaustedError(SetupError):
    """All retry attempts for a setup step failed."""

    error_code = ErrorCode.RETRY_EXHAUSTED
    default_message = "All retry attempts exhausted"
    default_recoverable = False

    def __init__(
        self,
        message: str | None = None,
        attempts: int = 0,
        last_error: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        if message is None:
            message = f"giving up after {attempts} attempts"
            if isinstance(last_error, HarborQAError):
                message += f": {last_error.message}"
            elif last_error is not None:
                message += f": {last_error}"
        if last_error is not None:
            kwargs.setdefault("cause", last_error)
            if isinstance(last_error, HarborQAError):
                kwargs.setdefault("context", last_error.context)
        super().__init__(message=message, **kwargs)

    def __str__(self) -> str:
        # The last error is already part of the message.
        location = self.context.format_location()
        if location == "unknown location":
            return f"[{self.error_code.value}] {self.message}"
        return f"[{self.error_code.value}] {self.message} | at {location}"


class CleanupError(HarborQAError):
    """One resource could not be removed."""

    error_code = ErrorCode.CLEANUP_FAILED
    default_message = "Cleanup failed"

    def __init__(self, resource_kind: str, resource_id: str, cause: BaseException | None = None, **kwargs: Any) -> None:
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        message = f"failed to cleanup {resource_kind} {resource_id}"
        if cause is not None:
            message += f": {cause}"
        kwargs.setdefault("context", ErrorContext(operation="cleanup", resource=resource_id))
        super().__init__(message=message, cause=cause, **kwargs)

    def __str__(self) -> str:
        return self.message


class CleanupFailures(HarborQAError):
    """Several removals failed during a best-effort teardown."""

    error_code = ErrorCode.CLEANUP_PARTIAL
    default_message = "Some resources could not be removed"
    default_suggestions = [
        "Run 'harborqa cleanup --dry-run' to list leftover resources",
        "Run 'harborqa cleanup --force' to remove them",
    ]

    def __init__(self, errors: list[CleanupError], **kwargs: Any) -> None:
        self.errors = list(errors)
        lines = "; ".join(str(e) for e in self.errors)
        super().__init__(message=f"{len(self.errors)} cleanup error(s): {lines}", **kwargs)


class OperationCancelledError(HarborQAError):
    """A blocking operation observed a cancelled token."""

    error_code = ErrorCode.CANCELLED
    default_message = "Operation cancelled"


class DockerError(HarborQAError):
    """Base exception for Docker operations."""

    error_code = ErrorCode.DOCKER_FAILED
    default_message = "Docker command failed"
    default_recoverable = True

    def __init__(
        self,
        message: str | None = None,
        command: list[str] | None = None,
        stderr: str = "",
        **kwargs: Any,
    ) -> None:
        self.command = command
        self.stderr = stderr
        if message and stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message=message, **kwargs)


class DockerNotFoundError(DockerError):
    """Raised when Docker is not installed or not running."""

    error_code = ErrorCode.DOCKER_NOT_FOUND
    default_recoverable = False
    default_suggestions = [
        "Install Docker and make sure the daemon is running",
        "Check DOCKER_HOST if you use a remote daemon",
    ]


class ResourceNotFoundError(DockerError):
    """The container or network no longer exists."""

    error_code = ErrorCode.RESOURCE_NOT_FOUND
    default_recoverable = False
