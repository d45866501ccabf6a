"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what is relevant to it.
    """

    code: str
    message: str
    hint: str
    limit: str
    operation: str
    backend: str
    http_status: int
    retry_after: float
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidLimitSpecError(ValidationAppError):
    """Raised when a limit string is not ``<quota>/<second|minute|hour>``."""

    def __init__(self, limit: str) -> None:
        super().__init__(
            code="invalid_limit_spec",
            message=f"Invalid limit string: {limit!r}",
            details={
                "limit": limit,
                "hint": "Expected format: <quota>/<second|minute|hour>; example: 5/minute",
            },
        )


class StoreAppError(AppError):
    """Raised when the shared counter store cannot serve a rate limit check."""


class StoreUnavailableError(StoreAppError):
    """Connection, timeout or protocol failure talking to the counter store."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            code="store_unavailable",
            message="Rate limit store is unavailable. Try again later.",
            details={"operation": operation},
        )


class StoreDataCorruptError(StoreAppError):
    """The stored counter value is not a valid integer."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            code="store_data_corrupt",
            message="Rate limit store returned an invalid counter value.",
            details={"operation": operation},
        )
