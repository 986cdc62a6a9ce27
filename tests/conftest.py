"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Generator

import pytest
from prometheus_client import CollectorRegistry

from ordered_consumer.config import Settings, get_settings
from ordered_consumer.constants import LockReleaseMode
from ordered_consumer.lock.manager import LockManager
from ordered_consumer.observability.metrics import MetricsCollector
from tests.fakes import FakeClock, FakeRedis, InMemoryBus


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Make every test read settings fresh from its environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        log_level="DEBUG",
        log_format="console",
        lock_ttl_seconds=5,
        poll_interval_seconds=0.01,
        processing_base_delay_seconds=0.0,
        processing_jitter_seconds=0.0,
        metrics_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Clock the fake lock store expires keys against."""
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    """Lock store shared by every consumer in a test."""
    return FakeRedis(clock)


@pytest.fixture
def lock_manager(fake_redis: FakeRedis) -> LockManager:
    """Holder-checked lock manager over the fake store."""
    return LockManager(fake_redis, release_mode=LockReleaseMode.HOLDER, holder_id="consumer-1")


@pytest.fixture
def bus() -> InMemoryBus:
    """Ordered in-memory bus."""
    return InMemoryBus()


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> MetricsCollector:
    """Metrics collector with its own registry."""
    return MetricsCollector(registry=registry)
