"""FastAPI bindings. Requires the ``fastapi`` extra."""

from __future__ import annotations

from callrate.api.dependencies import RateLimitDependency, client_key
from callrate.api.exception_handlers import setup_exception_handlers

__all__ = ["RateLimitDependency", "client_key", "setup_exception_handlers"]
