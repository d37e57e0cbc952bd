"""Throttle controller.

A throttled function runs at most once per ``wait_ms`` window. The leading
edge executes synchronously inside the call; the trailing edge is a timer on
the asyncio loop that replays the most recent arguments once the window
closes.

Notes:
- Loop-bound: trailing timers require a running event loop (or an explicit
  ``loop``) at the moment one has to be scheduled.
- Not thread-safe: call the wrapper from the loop thread only.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
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


class ThrottledFunction:
    """Callable wrapper that bounds how often ``fn`` executes.

    Attributes:
        wait_ms: Window length in milliseconds.
        leading: Whether the first call of a window executes immediately.
        trailing: Whether the last call of a window executes when it closes.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        wait_ms: float,
        *,
        leading: bool = True,
        trailing: bool = True,
        clock: Clock | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the throttle state.

        Args:
            fn: Function (sync or async) to throttle.
            wait_ms: Minimum spacing between executions in milliseconds.
            leading: Execute on the leading edge.
            trailing: Execute on the trailing edge.
            clock: Millisecond time source; defaults to a monotonic clock.
            loop: Event loop for trailing timers; defaults to the running loop.

        Raises:
            ConfigurationError: If fn is not callable or wait_ms is invalid.
        """
        if not callable(fn):
            raise ConfigurationError(
                code="invalid_function",
                message="throttle() requires a callable",
                details={"field": "fn"},
            )

        # Copy fn's metadata before setting state so nothing in fn.__dict__ shadows it
        functools.update_wrapper(self, fn)

        self.wait_ms = validate_duration("wait_ms", wait_ms)
        self.leading = leading
        self.trailing = trailing

        self._fn = fn
        self._name = getattr(fn, "__qualname__", repr(fn))
        self._clock = clock or monotonic_ms
        self._loop = loop
        self._last_exec_time: float | None = None
        self._pending_args: _CallArgs | None = None
        self._timer: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ThrottledFunction({self._name}, wait_ms={self.wait_ms}, "
            f"leading={self.leading}, trailing={self.trailing}, pending={self.pending})"
        )

    @property
    def pending(self) -> bool:
        """True while a trailing execution is scheduled."""
        return self._timer is not None

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        now = self._clock()
        if self._last_exec_time is None:
            elapsed = math.inf
        else:
            elapsed = now - self._last_exec_time

        # Trailing execution always replays the latest call
        self._pending_args = (args, kwargs)

        window_elapsed = elapsed >= self.wait_ms
        if window_elapsed and self.leading:
            self._cancel_timer()
            self._pending_args = None
            self._last_exec_time = now
            logger.debug(
                "throttle.leading_executed",
                extra={"function": self._name, "wait_ms": self.wait_ms},
            )
            return self._fn(*args, **kwargs)

        # A scheduled trailing timer owns the open window; later calls never push it back
        if self.trailing and self._timer is None:
            # A call that opens a new window without executing waits a full window
            delay_ms = self.wait_ms if window_elapsed else max(0.0, self.wait_ms - elapsed)
            self._timer = call_later_ms(resolve_loop(self._loop), delay_ms, self._on_trailing)
            logger.debug(
                "throttle.trailing_scheduled",
                extra={"function": self._name, "delay_ms": delay_ms},
            )

        return None

    def cancel(self) -> None:
        """Drop any scheduled trailing execution without running it."""

        if self._timer is not None:
            logger.debug("throttle.cancelled", extra={"function": self._name})
        self._cancel_timer()
        self._pending_args = None

    def flush(self) -> Any:
        """Run a scheduled trailing execution now.

        Returns:
            The function's result (a task for coroutine functions), or None
            when nothing was pending.
        """

        if self._timer is None or self._pending_args is None:
            return None

        self._cancel_timer()
        logger.debug("throttle.flushed", extra={"function": self._name})
        return self._execute_pending(self._pending_args)

    def _on_trailing(self) -> None:
        # Clear the handle first so re-entrant calls can schedule a new window
        self._timer = None
        if self._pending_args is None:
            return
        logger.debug("throttle.trailing_fired", extra={"function": self._name})
        self._execute_pending(self._pending_args)

    def _execute_pending(self, call_args: _CallArgs) -> Any:
        args, kwargs = call_args
        self._pending_args = None
        self._last_exec_time = self._clock()
        return dispatch(self._fn(*args, **kwargs), self._loop)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


def throttle(
    fn: Callable[..., Any] | None = None,
    wait_ms: float | None = None,
    *,
    leading: bool = True,
    trailing: bool = True,
    clock: Clock | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Any:
    """Throttle ``fn`` to execute at most once per ``wait_ms``.

    Can be called directly or used as a decorator factory::

        throttled = throttle(handle_scroll, 200)

        @throttle(wait_ms=200, trailing=False)
        def on_tick(price: float) -> None: ...

    Args:
        fn: Function to wrap. Omit to get a decorator.
        wait_ms: Window length in milliseconds.
        leading: Execute on the leading edge (default True).
        trailing: Execute on the trailing edge (default True).
        clock: Millisecond time source.
        loop: Event loop used for trailing timers.

    Returns:
        ThrottledFunction, or a decorator producing one when fn is omitted.

    Raises:
        ConfigurationError: If wait_ms is missing or invalid.
    """
    if wait_ms is None:
        raise ConfigurationError(
            code="invalid_duration",
            message="wait_ms is required",
            details={"field": "wait_ms"},
        )

    if fn is None:
        return functools.partial(
            throttle,
            wait_ms=wait_ms,
            leading=leading,
            trailing=trailing,
            clock=clock,
            loop=loop,
        )

    return ThrottledFunction(
        fn,
        wait_ms,
        leading=leading,
        trailing=trailing,
        clock=clock,
        loop=loop,
    )


def throttle_leading(fn: Callable[..., Any], wait_ms: float, **kwargs: Any) -> ThrottledFunction:
    """Fire immediately, then ignore calls for ``wait_ms``."""
    return throttle(fn, wait_ms, leading=True, trailing=False, **kwargs)


def throttle_trailing(fn: Callable[..., Any], wait_ms: float, **kwargs: Any) -> ThrottledFunction:
    """Wait ``wait_ms``, then fire once with the latest arguments."""
    return throttle(fn, wait_ms, leading=False, trailing=True, **kwargs)
