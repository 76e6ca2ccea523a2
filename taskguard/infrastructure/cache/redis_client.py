"""
Redis Client with Connection Pooling

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution, retry, error translation)
        └── HealthMonitor (Health checks and pool metrics)

Error Translation:
    - redis ConnectionError / TimeoutError are retried with exponential
      backoff and jitter (tenacity); once the budget is spent they surface
      as StoreUnavailableError
    - any other RedisError surfaces as StoreOperationError
    - callers decide whether to fail soft or loud; this layer never
      swallows an error

Batching:
    Multi-command writes are described as BatchOperation records whose
    kind is the closed BatchAction enum. They run in one non-transactional
    pipeline (a single round trip).
"""

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from taskguard.core.config.constants import Stage
from taskguard.core.config.settings import Settings, get_settings
from taskguard.core.exceptions import StoreOperationError, StoreUnavailableError
from taskguard.core.logging.logger import get_logger

logger = get_logger(__name__)

# Tenacity needs a stdlib logger for before_sleep
_std_logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# BATCH OPERATIONS
# Closed set of pipelined commands
# =============================================================================


class BatchAction(str, Enum):
    """Commands that may appear in a pipelined batch."""

    SET = "set"
    SETEX = "setex"
    DELETE = "delete"
    ZADD = "zadd"
    EXPIRE = "expire"
    INCR = "incr"


@dataclass(frozen=True)
class BatchOperation:
    """
    One command inside a pipelined batch.

    Use the constructors rather than filling fields by hand; each action
    reads only the fields it needs.
    """

    action: BatchAction
    key: str
    value: str | None = None
    ttl: int | None = None
    member: str | None = None
    score: float | None = None

    @classmethod
    def set(cls, key: str, value: str) -> "BatchOperation":
        return cls(BatchAction.SET, key, value=value)

    @classmethod
    def setex(cls, key: str, value: str, ttl: int) -> "BatchOperation":
        return cls(BatchAction.SETEX, key, value=value, ttl=ttl)

    @classmethod
    def delete(cls, key: str) -> "BatchOperation":
        return cls(BatchAction.DELETE, key)

    @classmethod
    def zadd(cls, key: str, member: str, score: float) -> "BatchOperation":
        return cls(BatchAction.ZADD, key, member=member, score=score)

    @classmethod
    def expire(cls, key: str, ttl: int) -> "BatchOperation":
        return cls(BatchAction.EXPIRE, key, ttl=ttl)

    @classmethod
    def incr(cls, key: str) -> "BatchOperation":
        return cls(BatchAction.INCR, key)


# Every BatchAction has exactly one entry; there is no fallback branch.
BATCH_DISPATCH: dict[BatchAction, Callable[[Any, BatchOperation], Any]] = {
    BatchAction.SET: lambda pipe, op: pipe.set(op.key, op.value),
    BatchAction.SETEX: lambda pipe, op: pipe.setex(op.key, op.ttl, op.value),
    BatchAction.DELETE: lambda pipe, op: pipe.delete(op.key),
    BatchAction.ZADD: lambda pipe, op: pipe.zadd(op.key, {op.member: op.score}),
    BatchAction.EXPIRE: lambda pipe, op: pipe.expire(op.key, op.ttl),
    BatchAction.INCR: lambda pipe, op: pipe.incr(op.key),
}


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# Handles connection lifecycle and pooling
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Responsibility: Connection establishment, pooling, and cleanup.

    The pool is created once. If the first ping fails the client is kept:
    redis-py reconnects lazily on the next command, so the process can
    start while Redis is down and recover without a restart.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    def attach(self, client: redis.Redis) -> None:
        """Use an already-built client (tests, shared pools)."""
        self._client = client
        self._is_connected = True

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Redis client (built even when the ping fails)

        Raises:
            StoreUnavailableError: If the initial ping fails
        """
        if self._client is None:
            redis_settings = self._settings.redis
            self._pool = ConnectionPool(
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                db=redis_settings.REDIS_DB,
                password=redis_settings.REDIS_PASSWORD,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except (ConnectionError, TimeoutError) as e:
            self._is_connected = False
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise StoreUnavailableError.from_exception(
                e,
                message="Failed to connect to Redis",
                host=self._settings.redis.REDIS_HOST,
                port=self._settings.redis.REDIS_PORT,
            )

        self._is_connected = True
        logger.info(
            "Redis connected successfully",
            stage="REDIS.2",
            host=self._settings.redis.REDIS_HOST,
            port=self._settings.redis.REDIS_PORT,
            max_connections=self._settings.redis.REDIS_MAX_CONNECTIONS,
        )
        return self._client

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()

        self._client = None
        self._pool = None
        self._is_connected = False
        logger.info("Redis disconnected", stage="REDIS.3")

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Executes Redis commands with retry and error translation
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent retry and error handling.

    Responsibility: Command execution, bounded retry, error translation.

    Error Handling Strategy:
    - Retry ConnectionError / TimeoutError up to REDIS_MAX_RETRIES attempts
    - Log the failure with the operation name
    - Raise StoreUnavailableError or StoreOperationError with details
    """

    def __init__(self, redis_client: redis.Redis, settings: Settings):
        self._redis = redis_client
        redis_settings = settings.redis
        self._max_attempts = redis_settings.REDIS_MAX_RETRIES
        self._base_delay = redis_settings.REDIS_RETRY_BASE_DELAY
        self._max_delay = redis_settings.REDIS_RETRY_MAX_DELAY

    async def _run(self, operation: str, command: Callable[[], Awaitable[T]], **context) -> T:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=self._base_delay, max=self._max_delay)
                + wait_random(0, self._base_delay),
                retry=retry_if_exception_type((ConnectionError, TimeoutError)),
                before_sleep=before_sleep_log(_std_logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    return await command()
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                f"Redis {operation.upper()} failed: store unavailable",
                stage=Stage.RETRY.value,
                operation=operation,
                attempts=self._max_attempts,
                error=str(e),
            )
            raise StoreUnavailableError.from_exception(
                e, message=f"Redis {operation.upper()} failed", operation=operation, **context
            )
        except RedisError as e:
            logger.error(
                f"Redis {operation.upper()} failed",
                stage=f"REDIS.{operation.upper()}",
                operation=operation,
                error=str(e),
            )
            raise StoreOperationError.from_exception(
                e, message=f"Redis {operation.upper()} failed", operation=operation, **context
            )

    # -------------------------------------------------------------------------
    # Basic Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._run("get", lambda: self._redis.get(key), key=key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """SETEX when ttl > 0, plain SET otherwise."""
        if ttl and ttl > 0:
            result = await self._run("setex", lambda: self._redis.setex(key, ttl, value), key=key)
        else:
            result = await self._run("set", lambda: self._redis.set(key, value), key=key)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._run("delete", lambda: self._redis.delete(*keys), keys=len(keys))

    async def exists(self, *keys: str) -> int:
        return await self._run("exists", lambda: self._redis.exists(*keys), keys=len(keys))

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        if not keys:
            return []
        return await self._run("mget", lambda: self._redis.mget(list(keys)), keys=len(keys))

    async def incr(self, key: str) -> int:
        return await self._run("incr", lambda: self._redis.incr(key), key=key)

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._run("expire", lambda: self._redis.expire(key, ttl), key=key))

    async def ttl(self, key: str) -> int:
        """TTL in seconds, -1 if no TTL, -2 if the key does not exist."""
        return await self._run("ttl", lambda: self._redis.ttl(key), key=key)

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        """One SCAN round trip."""
        return await self._run(
            "scan", lambda: self._redis.scan(cursor=cursor, match=match, count=count), match=match
        )

    # -------------------------------------------------------------------------
    # Sorted Set Operations (sliding windows)
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        return await self._run("zadd", lambda: self._redis.zadd(key, mapping), key=key)

    async def zcard(self, key: str) -> int:
        return await self._run("zcard", lambda: self._redis.zcard(key), key=key)

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return await self._run(
            "zremrangebyscore",
            lambda: self._redis.zremrangebyscore(key, min_score, max_score),
            key=key,
        )

    # -------------------------------------------------------------------------
    # Stream Operations (notifications)
    # -------------------------------------------------------------------------

    async def xadd(self, name: str, fields: dict[str, str], maxlen: int | None = None) -> str:
        return await self._run(
            "xadd",
            lambda: self._redis.xadd(name, fields, maxlen=maxlen, approximate=True),
            stream=name,
        )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    async def execute_batch(self, operations: Sequence[BatchOperation]) -> list[Any]:
        """
        Run operations in one non-transactional pipeline.

        Returns:
            Per-operation results, in order
        """
        if not operations:
            return []

        async def run_pipeline() -> list[Any]:
            async with self._redis.pipeline(transaction=False) as pipe:
                for op in operations:
                    BATCH_DISPATCH[op.action](pipe, op)
                return await pipe.execute()

        return await self._run("pipeline", run_pipeline, commands=len(operations))

    async def info(self, section: str) -> dict[str, Any]:
        return await self._run("info", lambda: self._redis.info(section), section=section)

    async def ping(self) -> bool:
        return bool(await self._run("ping", self._redis.ping))


# =============================================================================
# LAYER 3: HEALTH MONITORING
# Health checks and connection pool metrics
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health and connection pool metrics.

    Metrics Tracked:
    - Connection status
    - Ping latency
    - Pool size and utilization (warning above 80%)
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Redis connection.

        STAGE-REDIS.HEALTH: Redis health check

        Returns:
            Dict with health status and metrics
        """
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "host": self._settings.redis.REDIS_HOST,
            "port": self._settings.redis.REDIS_PORT,
            "pool_size": 0,
            "pool_available": 0,
            "pool_utilization_pct": 0,
            "pool_warning": False,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = type(e).__name__
            return health

        pool = self._conn_mgr.get_pool()
        if pool and hasattr(pool, "_available_connections"):
            available = len(pool._available_connections)
            health["pool_size"] = pool.max_connections
            health["pool_available"] = available
            utilization = 100.0 * ((pool.max_connections - available) / pool.max_connections)
            health["pool_utilization_pct"] = round(utilization, 1)
            if utilization > 80:
                health["pool_warning"] = True
                logger.warning(
                    "Redis pool utilization high",
                    pool_utilization=utilization,
                    max_connections=pool.max_connections,
                )

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# Clean interface that coordinates all layers
# =============================================================================


class RedisClient:
    """
    Async Redis client with connection pooling, bounded retry and health checks.

    Usage:
        client = RedisClient(settings)
        await client.connect()

        await client.set("key", "value", ttl=3600)
        value = await client.get("key")

        await client.disconnect()

    Operations raise StoreUnavailableError / StoreOperationError; none of
    them swallow failures. A client that was never connected raises
    StoreUnavailableError.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)

    @classmethod
    def from_client(cls, client: redis.Redis, settings: Settings | None = None) -> "RedisClient":
        """Wrap an existing redis.asyncio client."""
        instance = cls(settings)
        instance._conn_mgr.attach(client)
        instance._executor = OperationExecutor(client, instance._settings)
        return instance

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        The executor is built even if the initial ping fails, so later
        commands reach Redis once it comes back.

        Raises:
            StoreUnavailableError: If the initial ping fails
        """
        try:
            await self._conn_mgr.connect()
        finally:
            client = self._conn_mgr.get_client()
            if client is not None and self._executor is None:
                self._executor = OperationExecutor(client, self._settings)

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()
        self._executor = None

    def is_connected(self) -> bool:
        return self._conn_mgr.is_connected()

    @property
    def executor(self) -> OperationExecutor:
        if self._executor is None:
            raise StoreUnavailableError(
                "Redis client not connected", details={"host": self._settings.redis.REDIS_HOST}
            )
        return self._executor

    # -------------------------------------------------------------------------
    # Delegate to OperationExecutor
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self.executor.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        return await self.executor.set(key, value, ttl)

    async def delete(self, *keys: str) -> int:
        return await self.executor.delete(*keys)

    async def exists(self, *keys: str) -> int:
        return await self.executor.exists(*keys)

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        return await self.executor.mget(keys)

    async def incr(self, key: str) -> int:
        return await self.executor.incr(key)

    async def expire(self, key: str, ttl: int) -> bool:
        return await self.executor.expire(key, ttl)

    async def ttl(self, key: str) -> int:
        return await self.executor.ttl(key)

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        return await self.executor.scan(cursor, match, count)

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        return await self.executor.zadd(key, mapping)

    async def zcard(self, key: str) -> int:
        return await self.executor.zcard(key)

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return await self.executor.zremrangebyscore(key, min_score, max_score)

    async def xadd(self, name: str, fields: dict[str, str], maxlen: int | None = None) -> str:
        return await self.executor.xadd(name, fields, maxlen)

    async def execute_batch(self, operations: Sequence[BatchOperation]) -> list[Any]:
        return await self.executor.execute_batch(operations)

    async def info(self, section: str) -> dict[str, Any]:
        return await self.executor.info(section)

    async def ping(self) -> bool:
        """Check Redis connection health without raising."""
        try:
            return await self.executor.ping()
        except (StoreUnavailableError, StoreOperationError):
            return False

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()
