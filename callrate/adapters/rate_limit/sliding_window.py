"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: nothing is shared between processes or persisted.
- Window rollover is lazy: expired timestamps are purged at the top of
  every read or decision, no timer drives it.
- Timestamp bookkeeping is guarded by a lock so the synchronous methods
  can be used from worker threads. Waiters and the drain timer belong to
  the event loop; acquire() and reset() with queued waiters must run on it.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import math
import threading
from collections import deque
from typing import Any, Awaitable, Callable

from callrate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitStrategy
from callrate.core.config import settings
from callrate.core.errors import ConfigurationError, RateLimitError
from callrate.core.logging import call_scope
from callrate.core.timing import (
    Clock,
    call_later_ms,
    monotonic_ms,
    resolve_loop,
    validate_duration,
)

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting acquisitions over a rolling window.

    Each successful acquisition records its timestamp. A slot frees up
    exactly ``window_ms`` after it was consumed, so capacity is computed over
    the most recent window ending now rather than fixed clock buckets.

    Overflow strategies:
        drop: acquire() resolves to False.
        queue: acquire() waits in FIFO order until a drain grants a slot.
        error: acquire() raises RateLimitError.
    """

    def __init__(
        self,
        limit: int,
        window_ms: float,
        strategy: RateLimitStrategy | str | None = None,
        *,
        clock: Clock | None = None,
        drain_floor_ms: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize the sliding-window limiter.

        Args:
            limit: Maximum number of acquisitions per window.
            window_ms: Size of the sliding window in milliseconds.
            strategy: Overflow strategy; defaults to the configured default ("drop").
            clock: Millisecond time source; defaults to a monotonic clock.
            drain_floor_ms: Minimum delay between queue drain attempts.
            loop: Event loop for waiters and drain timers; defaults to the running loop.
            name: Label used in log records.

        Raises:
            ConfigurationError: If limit, window_ms, drain_floor_ms or strategy are invalid.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ConfigurationError(
                code="invalid_limit",
                message="limit must be an integer >= 1",
                details={"field": "limit", "actual_value": limit},
            )

        self.limit = limit
        self.window_ms = validate_duration("window_ms", window_ms, allow_zero=False)
        self.strategy = _parse_strategy(
            strategy if strategy is not None else settings.limiter.default_strategy
        )
        self.name = name or f"limiter-{id(self):x}"

        if drain_floor_ms is None:
            drain_floor_ms = settings.limiter.drain_floor_ms
        self._drain_floor_ms = validate_duration("drain_floor_ms", drain_floor_ms, allow_zero=False)

        self._clock = clock or monotonic_ms
        self._loop = loop
        self._lock = threading.RLock()
        self._timestamps: deque[float] = deque()
        self._waiters: deque[asyncio.Future[bool]] = deque()
        self._drain_handle: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SlidingWindowRateLimiter(name={self.name!r}, limit={self.limit}, "
            f"window_ms={self.window_ms}, strategy={self.strategy.value!r}, "
            f"queued={self.queued})"
        )

    async def __aenter__(self) -> "SlidingWindowRateLimiter":
        if not await self.acquire():
            raise RateLimitError(self.limit, self.window_ms, retry_after=self.retry_after())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    @property
    def queued(self) -> int:
        """Number of waiters still waiting for a slot."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    def _cleanup_locked(self, now: float) -> None:
        cutoff = now - self.window_ms
        timestamps = self._timestamps
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def remaining(self) -> int:
        """Number of free slots in the current window."""

        with self._lock:
            self._cleanup_locked(self._clock())
            return max(0, self.limit - len(self._timestamps))

    def retry_after(self) -> int:
        """Milliseconds until the least-recent consumed slot expires.

        Returns:
            0 when a slot is free, otherwise the rounded-up wait in ms.
        """

        with self._lock:
            now = self._clock()
            self._cleanup_locked(now)
            if len(self._timestamps) < self.limit:
                return 0
            oldest = self._timestamps[0]
            return int(math.ceil(max(0.0, oldest + self.window_ms - now)))

    def try_acquire(self) -> bool:
        """Consume a slot if the window has capacity.

        Returns:
            True if a slot was consumed, False otherwise.
        """

        with self._lock:
            now = self._clock()
            self._cleanup_locked(now)
            if len(self._timestamps) < self.limit:
                self._timestamps.append(now)
                return True
            return False

    async def acquire(self) -> bool:
        """Consume a slot, applying the overflow strategy when none is free.

        Returns:
            True once a slot is consumed; False under "drop" when refused.

        Raises:
            RateLimitError: Under "error" when no slot is free.
        """

        # Waiters already in line keep their place ahead of new arrivals
        must_queue = self.strategy is RateLimitStrategy.QUEUE and self._has_waiters()
        if not must_queue and self.try_acquire():
            return True

        if self.strategy is RateLimitStrategy.ERROR:
            retry_after = self.retry_after()
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "limiter": self.name,
                    "limit": self.limit,
                    "window_ms": self.window_ms,
                    "retry_after_ms": retry_after,
                },
            )
            raise RateLimitError(self.limit, self.window_ms, retry_after=retry_after)

        if self.strategy is RateLimitStrategy.DROP:
            logger.info(
                "rate_limit.dropped",
                extra={"limiter": self.name, "limit": self.limit, "window_ms": self.window_ms},
            )
            return False

        loop = resolve_loop(self._loop)
        waiter: asyncio.Future[bool] = loop.create_future()
        self._waiters.append(waiter)
        logger.debug(
            "rate_limit.queued",
            extra={"limiter": self.name, "queued": len(self._waiters)},
        )
        self._schedule_drain(loop)
        return await waiter

    def wrap(self, fn: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
        """Return an async function that acquires a slot before calling ``fn``.

        The wrapper raises RateLimitError whenever the limiter refuses the
        call, whatever the strategy. Coroutine results are awaited.
        """

        name = getattr(fn, "__qualname__", repr(fn))

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            with call_scope(function=name):
                acquired = await self.acquire()
            if not acquired:
                raise RateLimitError(self.limit, self.window_ms, retry_after=self.retry_after())
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        return wrapper

    def reset(self) -> None:
        """Clear all consumed slots and release every queued waiter.

        Waiters are granted without checking capacity; this is a state wipe,
        not a drain.
        """

        with self._lock:
            self._timestamps.clear()

        waiters = list(self._waiters)
        self._waiters.clear()
        if self._drain_handle is not None:
            self._drain_handle.cancel()
            self._drain_handle = None

        released = 0
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(True)
                released += 1

        logger.info(
            "rate_limit.reset",
            extra={"limiter": self.name, "released_waiters": released},
        )

    def _has_waiters(self) -> bool:
        self._discard_cancelled()
        return bool(self._waiters)

    def _discard_cancelled(self) -> None:
        # Callers whose task was cancelled leave a done future at the head
        while self._waiters and self._waiters[0].done():
            self._waiters.popleft()

    def _schedule_drain(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._drain_handle is not None:
            return
        # retry_after() can report 0 before the slot actually frees on coarse clocks
        delay_ms = max(self.retry_after(), self._drain_floor_ms)
        self._drain_handle = call_later_ms(loop, delay_ms, self._drain)

    def _drain(self) -> None:
        self._drain_handle = None

        granted = 0
        while self._has_waiters() and self.try_acquire():
            self._waiters.popleft().set_result(True)
            granted += 1

        if granted:
            logger.debug(
                "rate_limit.drained",
                extra={"limiter": self.name, "granted": granted, "queued": len(self._waiters)},
            )

        if self._waiters:
            self._schedule_drain(resolve_loop(self._loop))


# Short alias used throughout the public API
RateLimiter = SlidingWindowRateLimiter


def _parse_strategy(value: RateLimitStrategy | str) -> RateLimitStrategy:
    try:
        return RateLimitStrategy(value)
    except ValueError:
        raise ConfigurationError(
            code="invalid_strategy",
            message=(
                f"Unknown rate limit strategy: '{value}'. "
                f"Supported strategies: {', '.join(s.value for s in RateLimitStrategy)}"
            ),
            details={"field": "strategy", "actual_value": value},
        ) from None
