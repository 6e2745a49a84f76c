"""
Global pytest fixtures for the SURL Platform test suite.

Responsibilities:
    - Provide injectable clocks so expiration and TTL rules are tested without sleeping
    - Provide isolated in-memory shard backends and managers bound to them
    - Provide a fresh FastAPI TestClient via the app factory for integration tests

Why an app factory?
    Using `create_app()` with injected backends gives each test its own shards,
    cache and invalidation source, eliminating cross-test flakiness.
"""

import pytest
from fastapi.testclient import TestClient

from main import create_app
from surl_platform.cache.cache import ResultCache
from surl_platform.cache.invalidation import LocalInvalidationSource
from surl_platform.manager.url_manager import UrlManager
from surl_platform.storage.storage import MemoryBackend

NOW = 1_700_000_000


class FakeClock:
    """Unix-seconds clock that only moves when told to."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    """Fresh shard 0."""
    return MemoryBackend(shard_number=0)


@pytest.fixture
def manager(backend: MemoryBackend, clock: FakeClock) -> UrlManager:
    """UrlManager writing to the `backend` fixture, driven by the fake clock."""
    return UrlManager(backend, clock=clock)


@pytest.fixture
def source() -> LocalInvalidationSource:
    return LocalInvalidationSource()


@pytest.fixture
def shards(source):
    """Two shards (0 and 1) whose writes signal the shared invalidation source."""
    return [MemoryBackend(0, on_change=source.notify), MemoryBackend(1, on_change=source.notify)]


@pytest.fixture
def client(shards, source) -> TestClient:
    """
    TestClient for a redirect app over the `shards` fixture.

    Base URL is the TestClient's own host so requests pass strict checks if enabled.
    """
    app = create_app(
        backends=shards,
        base_url="http://testserver/",
        strict=False,
        cache=ResultCache(default_ttl=300),
        invalidation=[source],
    )
    return TestClient(app)
