"""Package exception types.

This module defines the errors raised by callrate components, enabling
consistent error handling and logging in host applications.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what it knows.
    """

    code: str
    message: str
    hint: str
    field: str
    actual_value: Any
    limit: int
    window_ms: float
    retry_after: int
    strategy: str
    context: NotRequired[dict[str, Any]]


@dataclass
class CallRateError(Exception):
    """Base error for callrate failures.

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


class ConfigurationError(CallRateError):
    """Raised when a throttle, debounce or limiter is built with invalid arguments."""


class RateLimitError(CallRateError):
    """Raised when a rate limiter refuses an acquisition.

    Raised by ``acquire()`` under the ``error`` strategy and by wrapped
    functions / ``async with`` blocks when the limiter refuses the call.

    Attributes:
        limit: Configured maximum acquisitions per window.
        window: Configured window size in milliseconds.
    """

    def __init__(self, limit: int, window: float, *, retry_after: int | None = None) -> None:
        self.limit = limit
        self.window = window
        details: ErrorDetails = {"limit": limit, "window_ms": window}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(
            code="rate_limit_exceeded",
            message=f"Rate limit exceeded: {limit} calls per {_format_ms(window)}ms",
            details=details,
        )


def _format_ms(value: float) -> str:
    """Render whole-number durations without a trailing '.0'."""

    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
