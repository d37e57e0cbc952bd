"""Call-rate control primitives for asyncio code.

- throttle: run a function at most once per window (leading/trailing edges)
- debounce: run a function once a burst of calls goes quiet
- RateLimiter: sliding-window limiter with drop/queue/error overflow

Durations are expressed in milliseconds throughout.
"""

from __future__ import annotations

from callrate.adapters.rate_limit import (
    AbstractRateLimiter,
    RateLimiter,
    RateLimitStatus,
    RateLimitStrategy,
    SlidingWindowRateLimiter,
    create_rate_limiter,
)
from callrate.controllers import (
    DebouncedFunction,
    ThrottledFunction,
    debounce,
    throttle,
    throttle_leading,
    throttle_trailing,
)
from callrate.core.config import settings
from callrate.core.errors import CallRateError, ConfigurationError, RateLimitError
from callrate.core.logging import configure_logging

__all__ = [
    "AbstractRateLimiter",
    "CallRateError",
    "ConfigurationError",
    "DebouncedFunction",
    "RateLimitError",
    "RateLimitStatus",
    "RateLimitStrategy",
    "RateLimiter",
    "SlidingWindowRateLimiter",
    "ThrottledFunction",
    "configure_logging",
    "create_rate_limiter",
    "debounce",
    "settings",
    "throttle",
    "throttle_leading",
    "throttle_trailing",
]

__version__ = "0.1.0"
