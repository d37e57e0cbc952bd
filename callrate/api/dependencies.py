"""Rate limiting dependency for FastAPI routes.

This module binds callrate limiters to the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency instance only.
- Strategy-aware: "queue" limiters hold the request until a slot frees up,
  "drop" and "error" limiters answer 429 immediately.
- Optional per-client partitioning: pass ``key_func`` to get one limiter per
  API key / client address instead of a single shared budget.
"""

from __future__ import annotations

import hashlib
import logging
import math
from collections import OrderedDict
from typing import Callable

from fastapi import HTTPException, Request, status

from callrate.adapters.rate_limit.base import AbstractRateLimiter, RateLimitStatus
from callrate.adapters.rate_limit.factory import create_rate_limiter
from callrate.core.config import settings
from callrate.core.errors import ConfigurationError, RateLimitError
from callrate.core.logging import call_scope

logger = logging.getLogger(__name__)

KeyFunc = Callable[[Request], str]
LimiterFactory = Callable[[], AbstractRateLimiter]


def client_key(request: Request) -> str:
    """Build the limiter key for the current request.

    Uses the X-API-Key header when present, the client address otherwise.

    Args:
        request: FastAPI request.

    Returns:
        str: Namespaced limiter key.
    """

    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"api_key:{api_key}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _hash_limiter_key(key: str) -> str:
    """Hash the limiter key for logging without exposing secrets."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _is_idle(limiter: AbstractRateLimiter) -> bool:
    return limiter.queued == 0 and limiter.remaining() == limiter.limit


def build_rate_limit_headers(snapshot: RateLimitStatus) -> dict[str, str]:
    """Translate a limiter snapshot into HTTP throttling headers.

    Retry-After is expressed in whole seconds as required by HTTP.
    """

    return {
        "Retry-After": str(math.ceil(snapshot.retry_after_ms / 1000)),
        "X-RateLimit-Limit": str(snapshot.limit),
        "X-RateLimit-Remaining": str(snapshot.remaining),
    }


class RateLimitDependency:
    """FastAPI dependency enforcing a callrate limiter.

    Usage::

        limiter = RateLimiter(limit=10, window_ms=1000)
        @app.get("/quotes", dependencies=[Depends(RateLimitDependency(limiter))])
        async def quotes(): ...
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter | None = None,
        *,
        key_func: KeyFunc | None = None,
        limiter_factory: LimiterFactory | None = None,
        include_headers: bool | None = None,
        max_keys: int | None = None,
    ) -> None:
        """Configure the dependency.

        Args:
            limiter: Shared limiter for every request.
            key_func: Partition requests by key; one limiter per key.
            limiter_factory: Builds per-key limiters (default create_rate_limiter).
            include_headers: Add throttling headers to 429 responses
                (default CALLRATE_INCLUDE_HEADERS).
            max_keys: Most per-key limiters kept at once
                (default CALLRATE_MAX_TRACKED_KEYS).

        Raises:
            ConfigurationError: If both or neither of limiter/key_func are given,
                or max_keys is below 1.
        """
        if (limiter is None) == (key_func is None):
            raise ConfigurationError(
                code="invalid_dependency",
                message="Provide exactly one of limiter or key_func",
            )
        if max_keys is not None and max_keys < 1:
            raise ConfigurationError(
                code="invalid_dependency",
                message="max_keys must be >= 1",
                details={"field": "max_keys", "actual_value": max_keys},
            )

        self._limiter = limiter
        self._key_func = key_func
        self._limiter_factory = limiter_factory or create_rate_limiter
        self._limiters_by_key: OrderedDict[str, AbstractRateLimiter] = OrderedDict()
        self._max_keys = settings.limiter.max_tracked_keys if max_keys is None else max_keys
        self._include_headers = (
            settings.limiter.include_headers if include_headers is None else include_headers
        )

    @property
    def tracked_keys(self) -> int:
        """Number of per-key limiters currently held."""
        return len(self._limiters_by_key)

    def limiter_for(self, key: str | None) -> AbstractRateLimiter:
        """Return the limiter responsible for ``key``.

        Per-key limiters are kept in least-recently-used order. Idle ones
        (empty window, nobody queued) are dropped from the cold end on every
        miss, and the oldest limiters without waiters are dropped once
        ``max_keys`` is reached.
        """

        if self._limiter is not None:
            return self._limiter

        key = key or ""
        limiter = self._limiters_by_key.get(key)
        if limiter is not None:
            self._limiters_by_key.move_to_end(key)
            return limiter

        self._evict()
        limiter = self._limiter_factory()
        self._limiters_by_key[key] = limiter
        return limiter

    def _evict(self) -> None:
        by_key = self._limiters_by_key
        evicted = 0

        while by_key:
            oldest_key, oldest = next(iter(by_key.items()))
            if not _is_idle(oldest):
                break
            del by_key[oldest_key]
            evicted += 1

        if len(by_key) >= self._max_keys:
            # Busy limiters lose their budget here; waiters are never orphaned
            for key in [k for k, lim in by_key.items() if lim.queued == 0]:
                if len(by_key) < self._max_keys:
                    break
                del by_key[key]
                evicted += 1

        if evicted:
            logger.debug(
                "rate_limit.keys_evicted",
                extra={"evicted": evicted, "tracked_keys": len(by_key)},
            )

    async def __call__(self, request: Request) -> None:
        """Consume one slot for the request or answer HTTP 429.

        Raises:
            HTTPException: 429 Too Many Requests when the limiter refuses.
        """

        key = self._key_func(request) if self._key_func is not None else None
        limiter = self.limiter_for(key)
        key_hash = _hash_limiter_key(key) if key is not None else None

        with call_scope(key_hash=key_hash, path=request.url.path):
            try:
                allowed = await limiter.acquire()
            except RateLimitError:
                allowed = False

        if allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={"key_hash": key_hash, "limit": limiter.limit},
            )
            return

        snapshot = limiter.status()
        logger.warning(
            "rate_limit.refused",
            extra={
                "key_hash": key_hash,
                "limit": snapshot.limit,
                "window_ms": snapshot.window_ms,
                "retry_after_ms": snapshot.retry_after_ms,
                "path": request.url.path,
            },
        )

        headers = build_rate_limit_headers(snapshot) if self._include_headers else None
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers=headers,
        )
