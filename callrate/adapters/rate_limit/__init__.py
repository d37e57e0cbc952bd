"""Rate limiting adapters.

This package keeps the limiter behind a small abstraction so the in-memory
sliding window can be complemented by other schemes without changing the
code that acquires slots.
"""

from __future__ import annotations

from callrate.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitStatus,
    RateLimitStrategy,
)
from callrate.adapters.rate_limit.factory import create_rate_limiter
from callrate.adapters.rate_limit.sliding_window import RateLimiter, SlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "RateLimitStatus",
    "RateLimitStrategy",
    "RateLimiter",
    "SlidingWindowRateLimiter",
    "create_rate_limiter",
]
