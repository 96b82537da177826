"""Exceptions for the API layer and the review engine."""

from enum import Enum


class ApiException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: dict | None = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(ApiException):
    """Resource not found exception."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(404, f"{resource} not found: {identifier}")


class ValidationError(ApiException):
    """Request validation error."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(422, message, details)


class ExternalServiceError(ApiException):
    """External service (GitHub, model provider) error."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(502, f"{service} error: {message}")


class PRNotFoundError(NotFoundError):
    """Pull request not found."""

    def __init__(self, owner: str, repo: str, pr_number: int) -> None:
        super().__init__("Pull request", f"{owner}/{repo}#{pr_number}")


class ErrorKind(str, Enum):
    """Failure categories reported back to the model."""

    NOT_FOUND = "NotFound"
    INVALID_ARGUMENTS = "InvalidArguments"
    EXECUTION_FAILED = "ExecutionFailed"
    TIMEOUT = "Timeout"


class ReviewerError(Exception):
    """Base exception for the review engine."""


class ToolError(ReviewerError):
    """A tool invocation failed in a way the model can recover from."""

    kind: ErrorKind = ErrorKind.EXECUTION_FAILED

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ToolNotFoundError(ToolError):
    """Unknown tool, function or file."""

    kind = ErrorKind.NOT_FOUND


class InvalidArgumentsError(ToolError):
    """Arguments do not match the tool's parameter schema."""

    kind = ErrorKind.INVALID_ARGUMENTS

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class ToolExecutionError(ToolError):
    """External process or parse failure."""

    kind = ErrorKind.EXECUTION_FAILED


class ToolTimeoutError(ToolError):
    """A tool did not finish within its time limit."""

    kind = ErrorKind.TIMEOUT


class ProcessError(ToolExecutionError):
    """External command exited with a failure status."""

    def __init__(self, command: str, exit_code: int | None, stderr: str = "") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no error output"
        if exit_code is None:
            super().__init__(f"`{command}` could not be started: {detail}")
        else:
            super().__init__(f"`{command}` exited with status {exit_code}: {detail}")


class ProcessTimeoutError(ToolTimeoutError):
    """External command was killed after exceeding its timeout."""

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"`{command}` timed out after {timeout:g}s")
