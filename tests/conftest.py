"""
Pytest Configuration and Shared Test Fixtures

All fixtures defined here are available to every test module. Redis is
replaced by the in-memory FakeRedis from tests/test_fixtures, driven by a
FakeClock so expiry can be tested without sleeping.
"""

from unittest.mock import MagicMock

import pytest

from taskguard.core.config.settings import Settings
from taskguard.infrastructure.cache.distributed_store import DistributedStore
from taskguard.infrastructure.cache.redis_client import RedisClient
from taskguard.infrastructure.monitoring.metrics_collector import MetricsCollector
from tests.test_fixtures.fake_redis import FakeClock, FakeRedis


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Settings for tests: one Redis attempt (no retry sleeps) and small,
    round numbers for limits and breaker thresholds.
    """
    return Settings(
        ENVIRONMENT="test",
        REDIS_MAX_RETRIES=1,
        RATE_LIMIT_MAX=5,
        RATE_LIMIT_TTL=60,
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        LOG_FORMAT="console",
    )


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock):
    return FakeRedis(fake_clock)


@pytest.fixture
def redis_client(fake_redis, test_settings):
    return RedisClient.from_client(fake_redis, test_settings)


@pytest.fixture
def store(redis_client, test_settings):
    return DistributedStore(redis_client, test_settings)


@pytest.fixture
def mock_metrics():
    """MetricsCollector double; assert on the recorded calls."""
    return MagicMock(spec=MetricsCollector)
