"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins CALLRATE_ENV to "testing" so no developer .env file leaks into
the settings used by the tests.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["CALLRATE_ENV"] = "testing"

import pytest


class FakeClock:
    """Deterministic millisecond clock used to test window arithmetic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, ms: float) -> None:
        self.current += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
