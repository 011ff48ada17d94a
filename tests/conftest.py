"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before anything imports the settings module.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123:7,test-api-key-456:8,test-anon-key")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from ratewarden.adapters.store.in_memory import InMemoryExpiringStore  # noqa: E402


class FakeClock:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryExpiringStore:
    return InMemoryExpiringStore(max_entries=None, clock=clock)
