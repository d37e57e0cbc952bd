"""Rate limiter interfaces.

Callers should depend on this abstraction (not the concrete implementation)
so other windowing schemes can be swapped in without touching call sites.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable


class RateLimitStrategy(StrEnum):
    """What ``acquire()`` does when no slot is available."""

    DROP = "drop"
    QUEUE = "queue"
    ERROR = "error"


@dataclass(frozen=True)
class RateLimitStatus:
    """Point-in-time view of a limiter.

    Attributes:
        allowed: Whether a slot is available right now.
        limit: Max acquisitions per window.
        remaining: Free slots in the current window.
        retry_after_ms: Time until the oldest slot frees up (0 when allowed).
        window_ms: Window size in milliseconds.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_ms: int
    window_ms: float


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    limit: int
    window_ms: float
    strategy: RateLimitStrategy

    @property
    @abstractmethod
    def queued(self) -> int:
        """Number of callers waiting for a slot."""
        raise NotImplementedError

    @abstractmethod
    def try_acquire(self) -> bool:
        """Consume a slot if one is free, without waiting.

        Returns:
            True if the slot was consumed.
        """
        raise NotImplementedError

    @abstractmethod
    async def acquire(self) -> bool:
        """Consume a slot, applying the overflow strategy when none is free."""
        raise NotImplementedError

    @abstractmethod
    def remaining(self) -> int:
        """Number of free slots in the current window."""
        raise NotImplementedError

    @abstractmethod
    def retry_after(self) -> int:
        """Milliseconds until the next slot frees up (0 if one is free)."""
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        """Forget all consumed slots and release every waiter."""
        raise NotImplementedError

    @abstractmethod
    def wrap(self, fn: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
        """Return an async function that acquires a slot before calling ``fn``."""
        raise NotImplementedError

    def status(self) -> RateLimitStatus:
        """Snapshot of the limiter without consuming anything."""

        remaining = self.remaining()
        return RateLimitStatus(
            allowed=remaining > 0,
            limit=self.limit,
            remaining=remaining,
            retry_after_ms=self.retry_after(),
            window_ms=self.window_ms,
        )
