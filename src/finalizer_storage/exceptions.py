"""Exception hierarchy for withdrawal storage."""

from __future__ import annotations

from typing import Any


class StorageError(Exception):
    """
    Base exception for all storage errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class StoreUnavailable(StorageError):
    """
    Raised when the connection or transaction to the store failed.

    Nothing from the failed call is visible. Retrying the whole call is safe.

    Attributes:
        operation: The store operation that was running.
    """

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store unavailable during {operation}: {detail}")


class ConversionError(StorageError):
    """
    Raised when a value cannot be represented as the in-memory integer type.

    Signals corrupt or out-of-range data. Not retryable.

    Attributes:
        value: The offending value (truncated for display).
        type_name: The type that couldn't hold the value.
        detail: What was wrong with it.
    """

    def __init__(self, value: Any, type_name: str, detail: str) -> None:
        self.value = value
        self.type_name = type_name
        self.detail = detail

        value_repr = repr(value)
        if len(value_repr) > 50:
            value_repr = value_repr[:47] + "..."

        super().__init__(f"Cannot convert {value_repr} to {type_name}: {detail}")


class ConstraintViolation(StorageError):
    """
    Raised for uniqueness or shape violations outside the idempotent paths.

    Indicates a caller bug rather than a transient failure.

    Attributes:
        operation: The store operation that was running.
        detail: Description of the violated constraint.
    """

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Constraint violated during {operation}: {detail}")
