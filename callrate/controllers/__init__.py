from __future__ import annotations

from callrate.controllers.debounce import DebouncedFunction, debounce
from callrate.controllers.throttle import (
    ThrottledFunction,
    throttle,
    throttle_leading,
    throttle_trailing,
)

__all__ = [
    "DebouncedFunction",
    "ThrottledFunction",
    "debounce",
    "throttle",
    "throttle_leading",
    "throttle_trailing",
]
