"""
Unit Tests for RedisClient

Tests error translation, bounded retry and the batch dispatch table.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError, ResponseError, TimeoutError

from taskguard.core.config.settings import Settings
from taskguard.core.exceptions import StoreOperationError, StoreUnavailableError
from taskguard.infrastructure.cache.redis_client import (
    BATCH_DISPATCH,
    BatchAction,
    BatchOperation,
    RedisClient,
)


@pytest.mark.unit
class TestErrorTranslation:
    async def test_connection_error_becomes_unavailable(self, redis_client, fake_redis):
        fake_redis.down = True
        with pytest.raises(StoreUnavailableError) as exc_info:
            await redis_client.get("app:x")
        assert exc_info.value.details["operation"] == "get"
        assert exc_info.value.details["original_error"] == "ConnectionError"

    async def test_other_redis_error_becomes_operation_error(self, redis_client, fake_redis):
        fake_redis.data["app:x"] = {"member": 1.0}  # a sorted set
        with pytest.raises(StoreOperationError):
            await redis_client.get("app:x")

    async def test_transient_errors_are_retried(self):
        settings = Settings(REDIS_MAX_RETRIES=3, REDIS_RETRY_BASE_DELAY=0.001, REDIS_RETRY_MAX_DELAY=0.001)
        raw = MagicMock()
        raw.get = AsyncMock(side_effect=[TimeoutError("slow"), ConnectionError("reset"), "value"])
        client = RedisClient.from_client(raw, settings)

        assert await client.get("app:x") == "value"
        assert raw.get.await_count == 3

    @pytest.mark.filterwarnings("error::DeprecationWarning")
    async def test_backoff_uses_current_tenacity_api(self):
        settings = Settings(REDIS_MAX_RETRIES=2, REDIS_RETRY_BASE_DELAY=0.001, REDIS_RETRY_MAX_DELAY=0.001)
        raw = MagicMock()
        raw.get = AsyncMock(side_effect=[ConnectionError("reset"), "value"])
        client = RedisClient.from_client(raw, settings)

        assert await client.get("app:x") == "value"

    async def test_retry_budget_is_bounded(self):
        settings = Settings(REDIS_MAX_RETRIES=2, REDIS_RETRY_BASE_DELAY=0.001, REDIS_RETRY_MAX_DELAY=0.001)
        raw = MagicMock()
        raw.get = AsyncMock(side_effect=ConnectionError("down"))
        client = RedisClient.from_client(raw, settings)

        with pytest.raises(StoreUnavailableError):
            await client.get("app:x")
        assert raw.get.await_count == 2

    async def test_command_errors_are_not_retried(self):
        settings = Settings(REDIS_MAX_RETRIES=3)
        raw = MagicMock()
        raw.get = AsyncMock(side_effect=ResponseError("WRONGTYPE"))
        client = RedisClient.from_client(raw, settings)

        with pytest.raises(StoreOperationError):
            await client.get("app:x")
        assert raw.get.await_count == 1

    async def test_unconnected_client_is_unavailable(self, test_settings):
        client = RedisClient(test_settings)
        with pytest.raises(StoreUnavailableError):
            await client.get("app:x")

    async def test_ping_never_raises(self, redis_client, fake_redis):
        assert await redis_client.ping() is True
        fake_redis.down = True
        assert await redis_client.ping() is False


@pytest.mark.unit
class TestCommands:
    async def test_set_with_ttl_uses_setex(self, redis_client, fake_redis):
        await redis_client.set("app:x", "1", ttl=30)
        assert fake_redis.calls[-1] == "setex"
        assert await redis_client.ttl("app:x") == 30

    async def test_set_without_ttl_persists(self, redis_client, fake_redis):
        await redis_client.set("app:x", "1")
        assert fake_redis.calls[-1] == "set"
        assert await redis_client.ttl("app:x") == -1

    async def test_delete_without_keys_skips_round_trip(self, redis_client, fake_redis):
        assert await redis_client.delete() == 0
        assert fake_redis.calls == []

    async def test_xadd_trims_approximately(self, redis_client, fake_redis):
        for i in range(5):
            await redis_client.xadd("stream", {"payload": str(i)}, maxlen=3)
        assert len(fake_redis.data["stream"]) == 3


@pytest.mark.unit
class TestBatch:
    def test_dispatch_covers_every_action(self):
        assert set(BATCH_DISPATCH) == set(BatchAction)

    async def test_batch_runs_in_one_pipeline(self, redis_client, fake_redis):
        results = await redis_client.execute_batch([
            BatchOperation.setex("app:a", "1", 60),
            BatchOperation.set("app:b", "2"),
            BatchOperation.incr("app:n"),
            BatchOperation.zadd("app:z", "m", 5.0),
            BatchOperation.expire("app:z", 10),
            BatchOperation.delete("app:b"),
        ])

        assert results == [True, True, 1, 1, True, 1]
        assert fake_redis.calls.count("pipeline") == 1
        assert await redis_client.ttl("app:z") == 10

    async def test_empty_batch_is_a_no_op(self, redis_client, fake_redis):
        assert await redis_client.execute_batch([]) == []
        assert fake_redis.calls == []

    async def test_pipeline_failure_translated(self, redis_client, fake_redis):
        fake_redis.fail_on = {"pipeline"}
        with pytest.raises(StoreUnavailableError):
            await redis_client.execute_batch([BatchOperation.incr("app:n")])


@pytest.mark.unit
class TestLifecycle:
    async def test_disconnect_closes_client(self, redis_client, fake_redis):
        await redis_client.disconnect()
        assert fake_redis.closed
        assert not redis_client.is_connected()

    async def test_health_check_reports_unhealthy_when_down(self, redis_client, fake_redis):
        fake_redis.down = True
        health = await redis_client.health_check()
        assert health["status"] == "unhealthy"
        assert health["error"] == "ConnectionError"

    async def test_health_check_healthy(self, redis_client):
        health = await redis_client.health_check()
        assert health["status"] == "healthy"
        assert health["ping_latency_ms"] is not None
