"""Factory for building rate limiters from configuration."""

from __future__ import annotations

import asyncio

from callrate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitStrategy
from callrate.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from callrate.core.config import settings
from callrate.core.timing import Clock


def create_rate_limiter(
    limit: int | None = None,
    window_ms: float | None = None,
    strategy: RateLimitStrategy | str | None = None,
    *,
    clock: Clock | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
    name: str | None = None,
) -> AbstractRateLimiter:
    """Build a limiter, filling unspecified arguments from settings.

    Reads defaults from callrate.core.config.settings (CALLRATE_* environment
    variables). Explicit arguments always take precedence.

    Args:
        limit: Max acquisitions per window (default CALLRATE_DEFAULT_LIMIT).
        window_ms: Window size in ms (default CALLRATE_DEFAULT_WINDOW_MS).
        strategy: Overflow strategy (default CALLRATE_DEFAULT_STRATEGY).
        clock: Optional millisecond time source.
        loop: Optional event loop for waiters and drain timers.
        name: Optional label used in log records.

    Returns:
        AbstractRateLimiter: Configured limiter instance.

    Raises:
        ConfigurationError: If the resolved configuration is invalid.
    """
    cfg = settings.limiter

    return SlidingWindowRateLimiter(
        limit=cfg.default_limit if limit is None else limit,
        window_ms=cfg.default_window_ms if window_ms is None else window_ms,
        strategy=cfg.default_strategy if strategy is None else strategy,
        clock=clock,
        drain_floor_ms=cfg.drain_floor_ms,
        loop=loop,
        name=name,
    )
