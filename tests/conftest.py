"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import aigate`
works consistently in all tests, and provides the clock / Redis / store
fixtures used across the suite.
"""

import sys
from pathlib import Path

import pytest


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from aigate.storage.metrics_store import MetricsStore  # noqa: E402
from tests.utils import FakeClock, InMemoryRedis  # noqa: E402


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def redis(clock) -> InMemoryRedis:
    return InMemoryRedis(clock=clock)


@pytest.fixture()
def store(redis, clock) -> MetricsStore:
    return MetricsStore(redis, clock=clock)
