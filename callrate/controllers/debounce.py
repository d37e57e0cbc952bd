"""Debounce controller.

A debounced function runs only once calls stop arriving for ``wait_ms``.
Optionally the first call of a burst runs immediately (leading edge), and
``max_wait_ms`` puts a ceiling on how long continuous activity can postpone
execution.

Burst lifecycle:
- The first call opens a burst and, when configured, starts the ceiling timer.
- Every call restarts the quiet-period timer.
- The burst resolves when either timer fires, on flush() or on cancel().
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable

from callrate.core.errors import ConfigurationError
from callrate.core.timing import (
    Clock,
    call_later_ms,
    dispatch,
    monotonic_ms,
    resolve_loop,
    validate_duration,
)

logger = logging.getLogger(__name__)

_CallArgs = tuple[tuple[Any, ...], dict[str, Any]]


class DebouncedFunction:
    """Callable wrapper that coalesces bursts of calls into one execution."""

    def __init__(
        self,
        fn: Callable[..., Any],
        wait_ms: float,
        *,
        leading: bool = False,
        max_wait_ms: float | None = None,
        clock: Clock | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the debounce state.

        Args:
            fn: Function (sync or async) to debounce.
            wait_ms: Quiet period in milliseconds.
            leading: Execute the first call of each burst immediately.
            max_wait_ms: Force an execution at most this long after a burst starts.
            clock: Millisecond time source, used for burst bookkeeping.
            loop: Event loop for timers; defaults to the running loop.

        Raises:
            ConfigurationError: If fn is not callable or a duration is invalid.
        """
        if not callable(fn):
            raise ConfigurationError(
                code="invalid_function",
                message="debounce() requires a callable",
                details={"field": "fn"},
            )

        functools.update_wrapper(self, fn)

        self.wait_ms = validate_duration("wait_ms", wait_ms)
        self.leading = leading
        self.max_wait_ms = (
            None if max_wait_ms is None else validate_duration("max_wait_ms", max_wait_ms, allow_zero=False)
        )

        self._fn = fn
        self._name = getattr(fn, "__qualname__", repr(fn))
        self._clock = clock or monotonic_ms
        self._loop = loop
        self._pending_args: _CallArgs | None = None
        self._pending = False
        self._leading_fired = False
        self._burst_started_at: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._max_timer: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"DebouncedFunction({self._name}, wait_ms={self.wait_ms}, "
            f"leading={self.leading}, max_wait_ms={self.max_wait_ms}, pending={self.pending})"
        )

    @property
    def pending(self) -> bool:
        """True from the first call of a burst until it resolves."""
        return self._pending

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        loop = resolve_loop(self._loop)

        self._pending_args = (args, kwargs)
        self._pending = True
        if self._burst_started_at is None:
            self._burst_started_at = self._clock()

        if self._timer is not None:
            self._timer.cancel()
        self._timer = call_later_ms(loop, self.wait_ms, self._on_quiet)

        if self.max_wait_ms is not None and self._max_timer is None:
            self._max_timer = call_later_ms(loop, self.max_wait_ms, self._on_max_wait)

        if self.leading and not self._leading_fired:
            self._leading_fired = True
            # The leading call consumes its arguments; only later calls trail
            self._pending_args = None
            logger.debug("debounce.leading_executed", extra={"function": self._name})
            dispatch(self._fn(*args, **kwargs), self._loop)

    def cancel(self) -> None:
        """Drop the current burst without executing."""

        if self._pending:
            logger.debug("debounce.cancelled", extra={"function": self._name})
        self._cancel_timers()
        self._reset_burst()

    def flush(self) -> None:
        """Resolve the current burst now, executing pending arguments if any."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug("debounce.flushed", extra={"function": self._name})
        self._resolve_burst()

    def _on_quiet(self) -> None:
        self._timer = None
        if self.leading and self._pending_args is None:
            # Isolated leading call: nothing arrived after it, don't fire twice
            self._cancel_timers()
            self._reset_burst()
            return
        self._resolve_burst()

    def _on_max_wait(self) -> None:
        self._max_timer = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug(
            "debounce.max_wait_fired",
            extra={"function": self._name, "max_wait_ms": self.max_wait_ms},
        )
        self._resolve_burst()

    def _resolve_burst(self) -> None:
        call_args = self._pending_args
        burst_ms = None if self._burst_started_at is None else self._clock() - self._burst_started_at

        self._cancel_timers()
        self._reset_burst()

        if call_args is None:
            return

        args, kwargs = call_args
        logger.debug(
            "debounce.executed",
            extra={"function": self._name, "burst_ms": burst_ms},
        )
        dispatch(self._fn(*args, **kwargs), self._loop)

    def _reset_burst(self) -> None:
        self._pending_args = None
        self._pending = False
        self._leading_fired = False
        self._burst_started_at = None

    def _cancel_timers(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._max_timer is not None:
            self._max_timer.cancel()
            self._max_timer = None


def debounce(
    fn: Callable[..., Any] | None = None,
    wait_ms: float | None = None,
    *,
    leading: bool = False,
    max_wait_ms: float | None = None,
    clock: Clock | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Any:
    """Debounce ``fn`` so it only runs after ``wait_ms`` without calls.

    Usage::

        search = debounce(run_search, 300)

        @debounce(wait_ms=50, max_wait_ms=200)
        async def persist(snapshot: dict) -> None: ...

    Args:
        fn: Function to wrap. Omit to get a decorator.
        wait_ms: Quiet period in milliseconds.
        leading: Execute the first call of a burst immediately (default False).
        max_wait_ms: Optional ceiling on how long a burst can postpone execution.
        clock: Millisecond time source.
        loop: Event loop used for timers.

    Returns:
        DebouncedFunction, or a decorator producing one when fn is omitted.

    Raises:
        ConfigurationError: If wait_ms is missing or a duration is invalid.
    """
    if wait_ms is None:
        raise ConfigurationError(
            code="invalid_duration",
            message="wait_ms is required",
            details={"field": "wait_ms"},
        )

    if fn is None:
        return functools.partial(
            debounce,
            wait_ms=wait_ms,
            leading=leading,
            max_wait_ms=max_wait_ms,
            clock=clock,
            loop=loop,
        )

    return DebouncedFunction(
        fn,
        wait_ms,
        leading=leading,
        max_wait_ms=max_wait_ms,
        clock=clock,
        loop=loop,
    )
