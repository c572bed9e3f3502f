"""
Error types for the store versioning service.

- StoreServiceError: Base exception
- DecodeError: Malformed envelope or payload, message dropped
- NotFoundError: Referenced store or version is absent
- ConflictError: Serializable transaction conflict
- PersistenceError: Any other backend failure
- InvalidOperationError: Request is well-formed but not allowed

Every error is terminal for the message that caused it. ``retryable`` marks
the ones a consumer may redeliver.
"""

from typing import Any


class StoreServiceError(Exception):
    """Base exception for all service errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "STORE_SERVICE_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class DecodeError(StoreServiceError):
    """Envelope or action payload could not be decoded."""

    code = "DECODE_ERROR"


class NotFoundError(StoreServiceError):
    """Store or version does not exist (or does not belong to the store)."""

    code = "NOT_FOUND"


class ConflictError(StoreServiceError):
    """Concurrent writers collided on the same store."""

    code = "CONFLICT"
    retryable = True


class PersistenceError(StoreServiceError):
    """Backend failure other than a conflict, e.g. lost connection."""

    code = "PERSISTENCE_ERROR"
    retryable = True


class InvalidOperationError(StoreServiceError):
    """Operation is not allowed in the current state."""

    code = "INVALID_OPERATION"
