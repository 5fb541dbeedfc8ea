"""
Error types for the stackpilot deployment engine.

Every remote failure surfaces as a CloudError tagged with an ErrorKind so
callers can decide policy (retry, refuse, report) without inspecting
provider-specific codes. Only the CLI turns these into exit codes.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of errors the engine distinguishes."""

    NOT_FOUND = "NotFound"
    THROTTLED = "Throttled"
    VALIDATION = "Validation"
    ALREADY_EXISTS = "AlreadyExists"
    UNAUTHORIZED = "Unauthorized"
    CONFLICT = "Conflict"
    CANCELLED = "Cancelled"
    DEADLINE_EXCEEDED = "DeadlineExceeded"
    GENERIC = "Generic"


class StackpilotError(Exception):
    """Base exception for all stackpilot errors."""

    kind: ErrorKind = ErrorKind.GENERIC

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CloudError(StackpilotError):
    """
    Raised when a call through the cloud API port fails.

    Attributes:
        kind: Error classification
        message: Provider message, preserved verbatim
        operation: Port operation that failed (e.g. "DescribeStacks")
        code: Provider error code when known
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        operation: str = "",
        code: str = "",
    ):
        self.kind = kind
        self.operation = operation
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message

    def __repr__(self) -> str:
        return f"CloudError(kind={self.kind!r}, operation={self.operation!r}, message={self.message!r})"

    @property
    def is_throttling(self) -> bool:
        return self.kind == ErrorKind.THROTTLED

    @property
    def is_not_found(self) -> bool:
        return self.kind == ErrorKind.NOT_FOUND


class ConfigurationError(StackpilotError):
    """
    Raised when a deployment request is inconsistent.

    Examples:
    - No template source for a new stack
    - Reusing the previous template for a stack that does not exist
    - Duplicate parameter or tag keys
    - Unreadable parameter, tag or deployment files
    """

    kind = ErrorKind.VALIDATION


class ClassificationError(StackpilotError):
    """Raised when a stack lookup by name matches more than one stack."""


class StackNotReadyError(StackpilotError):
    """Raised when a stack is busy or in a state that can't be updated."""

    def __init__(self, stack_name: str, status: str):
        self.stack_name = stack_name
        self.status = status
        super().__init__(
            f"the stack '{stack_name}' is currently in status {status} and can't be updated"
        )


class ChangeSetFailedError(StackpilotError):
    """Raised when a change set reaches FAILED for a reason other than "no changes"."""

    def __init__(self, change_set_name: str, reason: str):
        self.change_set_name = change_set_name
        self.reason = reason
        super().__init__(f"change set {change_set_name} failed: {reason}")


class PrecheckError(StackpilotError):
    """Raised when prechecks failed and the configuration says to stop."""

    kind = ErrorKind.VALIDATION


class StackInUseError(StackpilotError):
    """Raised when a stack can't be removed because other stacks import its exports."""

    kind = ErrorKind.CONFLICT

    def __init__(self, stack_name: str, importers: list[str]):
        self.stack_name = stack_name
        self.importers = importers
        super().__init__(
            f"the stack '{stack_name}' has exports imported by: {', '.join(importers)}"
        )


class DeploymentFailedError(StackpilotError):
    """Raised when an executed change set left the stack in a failed or rolled back state."""

    def __init__(self, stack_name: str, status: str, reason: str = ""):
        self.stack_name = stack_name
        self.status = status
        self.reason = reason
        message = f"deployment of '{stack_name}' ended in status {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
