"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Throttling outcomes (allowed / requires verification / exceeded) are plain
return values of the decision engine. Only the caller adapter turns them into
``RateLimitAppError`` subclasses when a route must be blocked. Store failures
are the one infrastructure fault the core raises itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes flexible while encouraging
    consistent keys across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: float
    reset_at: int
    action_type: str
    count: int
    threshold: int
    window_seconds: int
    backend: str
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


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class StoreUnavailableError(AppError):
    """Raised when the counter store cannot complete an increment.

    This is an infrastructure fault, not a throttling outcome. Callers decide
    whether to fail closed (default) or fail open for a given action.
    """

    def __init__(
        self,
        message: str = "Rate limit store is unavailable",
        *,
        code: str = "store_unavailable",
        details: ErrorDetails | None = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class RateLimitAppError(AppError):
    """Base class for blocked actions raised by the caller adapter."""


class VerificationRequiredError(RateLimitAppError):
    """The subject must verify identity before repeating the action."""


class RateLimitExceededError(RateLimitAppError):
    """The subject exceeded even the verified ceiling; wait for the window."""
