"""FastAPI exception handlers for callrate errors.

Routes that call wrapped functions (``limiter.wrap``) or use
``async with limiter`` let RateLimitError escape; these handlers turn it
into a consistent JSON 429 response.

Design:
- RateLimitError -> 429 Too Many Requests (with Retry-After when known)
- ConfigurationError -> 500 (a limiter was built wrong, server fault)
- Any other CallRateError -> 400
"""

from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from callrate.core.errors import CallRateError, ConfigurationError, RateLimitError

logger = logging.getLogger(__name__)


async def callrate_error_handler(request: Request, exc: CallRateError) -> JSONResponse:
    """Handle callrate errors with a consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: CallRateError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = 400
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitError):
        status_code = 429
        retry_after_ms = (exc.details or {}).get("retry_after")
        if retry_after_ms is not None:
            headers["Retry-After"] = str(math.ceil(retry_after_ms / 1000))
    elif isinstance(exc, ConfigurationError):
        status_code = 500

    logger.warning(
        "callrate_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )

    error_content: dict = {
        "code": exc.code,
        "message": exc.message,
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register callrate exception handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> from callrate.api.exception_handlers import setup_exception_handlers
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(CallRateError)(callrate_error_handler)
