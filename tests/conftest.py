"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the environment before any module imports settings, so the suite
runs against the in-memory counter store and never needs a Redis server.
"""

import os

import pytest

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["STORE_BACKEND"] = "memory"

# Set default env vars that all tests might need
os.environ.setdefault("STORE_URL", "redis://:test-password@localhost:6379/15")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_RATE_LIMIT_STRATEGY", "check_then_act")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Deterministic monotonic clock used to drive window expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
