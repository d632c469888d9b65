"""
Pytest configuration and fixtures for RagBot tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work without an editable install
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from ragbot.cache.api_cache import ApiCache  # noqa: E402


class FakeClock:
    """Manually advanced clock for deterministic TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ApiCache:
    """Isolated cache instance driven by the fake clock."""
    return ApiCache(max_size=3, default_ttl=60.0, cleanup_interval=0.01, clock=clock)
