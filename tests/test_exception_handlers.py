"""Tests for the FastAPI exception handlers.

Validates that callrate errors escaping a route are mapped to consistent
HTTP status codes and a stable JSON error format.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from callrate import RateLimiter
from callrate.api.exception_handlers import callrate_error_handler, setup_exception_handlers
from callrate.core.errors import CallRateError, ConfigurationError, RateLimitError


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers)


class TestCallRateErrorHandler:
    """Handler for CallRateError and subclasses."""

    def test_rate_limit_error_returns_429(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-rate-limit")
        async def test_endpoint():
            raise RateLimitError(5, 1000.0, retry_after=1500)

        response = client.get("/test-rate-limit")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "2"
        data = response.json()
        assert data["error"]["code"] == "rate_limit_exceeded"
        assert data["error"]["message"] == "Rate limit exceeded: 5 calls per 1000ms"
        assert data["error"]["details"]["limit"] == 5
        assert data["error"]["details"]["window_ms"] == 1000.0

    def test_rate_limit_error_without_retry_after_has_no_header(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-no-retry")
        async def test_endpoint():
            raise RateLimitError(1, 250)

        response = client.get("/test-no-retry")

        assert response.status_code == 429
        assert "Retry-After" not in response.headers

    def test_wrapped_function_refusal_becomes_429(
        self, client: TestClient, app_with_handlers: FastAPI, fake_clock
    ):
        limiter = RateLimiter(limit=1, window_ms=60_000, strategy="error", clock=fake_clock)

        @limiter.wrap
        async def fetch_quote() -> dict:
            return {"quote": 42}

        @app_with_handlers.get("/quote")
        async def quote():
            return await fetch_quote()

        assert client.get("/quote").json() == {"quote": 42}

        response = client.get("/quote")
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"

    def test_configuration_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-config")
        async def test_endpoint():
            RateLimiter(limit=0, window_ms=100)

        response = client.get("/test-config")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "invalid_limit"
        assert data["error"]["details"]["field"] == "limit"

    def test_other_errors_return_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-generic")
        async def test_endpoint():
            raise CallRateError(code="bad_call", message="Something about the call was wrong")

        response = client.get("/test-generic")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == {
            "code": "bad_call",
            "message": "Something about the call was wrong",
        }


class TestHandlerLogic:
    """Direct calls to the handler coroutine."""

    def test_handler_returns_consistent_structure(self):
        request = MagicMock()
        request.url.path = "/direct"

        exc = ConfigurationError(code="invalid_duration", message="wait_ms must be >= 0")
        response = asyncio.run(callrate_error_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert set(data["error"]) == {"code", "message"}


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert CallRateError in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert CallRateError in app.exception_handlers
