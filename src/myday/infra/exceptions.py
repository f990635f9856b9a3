"""
Custom exceptions for My Day operations.

This module provides custom exception classes for the different kinds of
errors that can occur while maintaining the roster and its journal mirrors.
"""


class MyDayError(Exception):
    """Base exception for all My Day errors."""

    pass


class ValidationError(MyDayError):
    """Raised when validation fails."""

    pass


class InvalidTaskIdError(ValidationError, ValueError):
    """Raised when a structurally invalid task id is added to the roster."""

    def __init__(self, task_id: object) -> None:
        super().__init__(f"Invalid task id: {task_id!r}")
        self.task_id = task_id


class OperationError(MyDayError):
    """Raised when operation fails."""

    pass


class HostOperationError(OperationError):
    """Raised when a host editor command fails.

    The reconciler wraps host failures in this type, logs them, and treats the
    operation as not having happened. It never reaches end users.
    """

    def __init__(self, op: str, cause: BaseException | None = None) -> None:
        message = f"Host operation failed: {op}"
        if cause is not None:
            message = f"{message} ({type(cause).__name__}: {cause})"
        super().__init__(message)
        self.op = op
        self.cause = cause


class PersistenceError(OperationError):
    """Raised when the settings store cannot read or write its backing file."""

    pass
