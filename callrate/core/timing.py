"""Clock and timer helpers shared by the controllers and the rate limiter.

All public durations are milliseconds; asyncio works in seconds, so the
conversion lives here and nowhere else.
"""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from typing import Any, Callable

from callrate.core.errors import ConfigurationError

Clock = Callable[[], float]

# Strong references to tasks spawned from timer callbacks; the event loop
# only keeps weak ones.
_background_tasks: set[asyncio.Future[Any]] = set()


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""

    return time.monotonic() * 1000.0


def resolve_loop(loop: asyncio.AbstractEventLoop | None) -> asyncio.AbstractEventLoop:
    """Return the explicit loop or the running one.

    Raises:
        RuntimeError: If no loop was given and none is running.
    """

    if loop is not None:
        return loop
    return asyncio.get_running_loop()


def call_later_ms(
    loop: asyncio.AbstractEventLoop,
    delay_ms: float,
    callback: Callable[[], None],
) -> asyncio.TimerHandle:
    """Schedule ``callback`` after ``delay_ms`` milliseconds."""

    return loop.call_later(max(0.0, delay_ms) / 1000.0, callback)


def dispatch(result: Any, loop: asyncio.AbstractEventLoop | None = None) -> Any:
    """Run awaitables produced where nobody can await them.

    Timer callbacks and ``flush()`` execute the wrapped function without an
    awaiting caller. Coroutines coming out of those paths are wrapped in a
    task on ``loop`` and the task is returned; plain values pass through.
    """

    if not inspect.isawaitable(result):
        return result

    task = asyncio.ensure_future(result, loop=loop)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def validate_duration(name: str, value: Any, *, allow_zero: bool = True) -> float:
    """Validate a millisecond duration argument.

    Args:
        name: Argument name used in the error.
        value: Value supplied by the caller.
        allow_zero: Whether 0 is acceptable.

    Returns:
        The duration as a float.

    Raises:
        ConfigurationError: If the value is not a finite, non-negative number
            (strictly positive when ``allow_zero`` is False).
    """

    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(
            code="invalid_duration",
            message=f"{name} must be a finite number of milliseconds",
            details={"field": name, "actual_value": value},
        )
    if value < 0 or (not allow_zero and value == 0):
        bound = ">= 0" if allow_zero else "> 0"
        raise ConfigurationError(
            code="invalid_duration",
            message=f"{name} must be {bound}",
            details={"field": name, "actual_value": value},
        )
    return float(value)
