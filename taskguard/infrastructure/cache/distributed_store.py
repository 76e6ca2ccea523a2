#!/usr/bin/env python3
"""
Distributed Store - namespaced JSON cache on Redis

Architecture:
    DistributedStore (Public API)
        ├── Key building (<namespace>:<key>)
        ├── Serialization (orjson)
        └── RedisClient (retry, error translation)

Failure Policy:
    Read path fails soft:
        get / mget / exists / stats return "absent" (None, all-None, False,
        {}) when the store errors, and log a warning. An undecodable stored
        payload also reads as absent.
    Write path fails loud:
        set / delete / delete_by_pattern / clear / mset / increment and the
        sorted-set primitives propagate StoreError to the caller.

Pattern deletion walks the keyspace with SCAN and deletes batch by batch.
It is not atomic: keys created during the walk may survive, and a failure
part-way leaves earlier batches deleted.
"""

import inspect
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import orjson

from taskguard.core.config.constants import Stage
from taskguard.core.config.settings import Settings, get_settings
from taskguard.core.exceptions import SerializationError, StoreError
from taskguard.core.logging.logger import get_logger, log_stage
from taskguard.infrastructure.cache.redis_client import BatchOperation, RedisClient
from taskguard.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

_GLOB_SPECIAL = "\\*?[]"


class _DefaultTTL:
    """Marker asking ``set`` for the configured CACHE_DEFAULT_TTL."""

    def __repr__(self) -> str:
        return "DEFAULT_TTL"


DEFAULT_TTL = _DefaultTTL()


def escape_pattern(text: str) -> str:
    """Escape glob metacharacters so ``text`` matches only itself in SCAN MATCH."""
    return "".join(f"\\{char}" if char in _GLOB_SPECIAL else char for char in text)


@dataclass(frozen=True)
class CacheEntry:
    """One item for ``mset``. ``ttl_seconds`` of None or 0 stores without expiry."""

    key: str
    value: Any
    ttl_seconds: int | None = None


class DistributedStore:
    """
    Namespaced key-value cache shared by every instance.

    STAGE-2: Distributed store

    Usage:
        store = DistributedStore(redis_client)
        await store.set("user:42", {"name": "Ada"}, ttl_seconds=60)
        await store.get("user:42")                 # {"name": "Ada"}
        await store.delete_by_pattern("user:*")    # 1
    """

    def __init__(self, redis_client: RedisClient, settings: Settings | None = None):
        self._redis = redis_client
        self._settings = settings or get_settings()
        cache_settings = self._settings.cache
        self.default_namespace = cache_settings.CACHE_NAMESPACE
        self.default_ttl = cache_settings.CACHE_DEFAULT_TTL
        self._scan_count = cache_settings.CACHE_SCAN_COUNT
        self._metrics = get_metrics_collector()

    # -------------------------------------------------------------------------
    # Keys & serialization
    # -------------------------------------------------------------------------

    def build_key(self, key: str, namespace: str | None = None) -> str:
        return f"{namespace or self.default_namespace}:{key}"

    @staticmethod
    def _encode(value: Any, key: str) -> str:
        try:
            return orjson.dumps(value).decode("utf-8")
        except TypeError as e:
            raise SerializationError.from_exception(
                e, message="Value is not JSON serializable", key=key
            )

    @staticmethod
    def _decode(raw: str | None, key: str) -> Any:
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Discarding undecodable cache payload", stage=Stage.CACHE.value, key=key)
            return None

    def _record_failure(self, operation: str, error: StoreError, **context) -> None:
        self._metrics.record_store_error(operation, type(error).__name__)
        logger.warning(
            f"Store {operation} failed, treating as absent",
            stage=Stage.CACHE.value,
            operation=operation,
            error_type=type(error).__name__,
            **context,
        )

    # -------------------------------------------------------------------------
    # Read path (fail soft)
    # -------------------------------------------------------------------------

    async def get(self, key: str, namespace: str | None = None) -> Any:
        """
        Fetch and decode a value.

        Returns:
            The stored value, or None when missing, expired, undecodable or
            when the store is unavailable
        """
        full_key = self.build_key(key, namespace)
        try:
            raw = await self._redis.get(full_key)
        except StoreError as e:
            self._record_failure("get", e, key=full_key)
            return None

        ns = namespace or self.default_namespace
        if raw is None:
            self._metrics.record_cache_miss(ns)
            return None
        self._metrics.record_cache_hit(ns)
        return self._decode(raw, full_key)

    async def exists(self, key: str, namespace: str | None = None) -> bool:
        full_key = self.build_key(key, namespace)
        try:
            return await self._redis.exists(full_key) == 1
        except StoreError as e:
            self._record_failure("exists", e, key=full_key)
            return False

    async def mget(self, keys: Sequence[str], namespace: str | None = None) -> list[Any]:
        """Positional results; a failed round trip yields all None."""
        if not keys:
            return []
        full_keys = [self.build_key(key, namespace) for key in keys]
        try:
            raws = await self._redis.mget(full_keys)
        except StoreError as e:
            self._record_failure("mget", e, keys=len(full_keys))
            return [None] * len(keys)
        return [self._decode(raw, full_key) for raw, full_key in zip(raws, full_keys)]

    async def stats(self) -> dict[str, Any]:
        """Server-side hit/miss counters and keyspace summary, {} on failure."""
        try:
            server_stats = await self._redis.info("stats")
            keyspace = await self._redis.info("keyspace")
        except StoreError as e:
            self._record_failure("info", e)
            return {}
        return {
            "hits": server_stats.get("keyspace_hits"),
            "misses": server_stats.get("keyspace_misses"),
            "keyspace": keyspace,
        }

    # -------------------------------------------------------------------------
    # Write path (fail loud)
    # -------------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | _DefaultTTL | None = None,
        namespace: str | None = None,
    ) -> None:
        """
        Store a JSON-encoded value.

        Args:
            key: Key inside the namespace
            value: Any JSON-serializable value
            ttl_seconds: None or 0 stores without expiry, DEFAULT_TTL applies
                CACHE_DEFAULT_TTL
            namespace: Overrides the default namespace

        Raises:
            SerializationError: Value cannot be encoded
            StoreError: Store unavailable or rejected the write
        """
        full_key = self.build_key(key, namespace)
        payload = self._encode(value, full_key)
        ttl = self.default_ttl if ttl_seconds is DEFAULT_TTL else ttl_seconds
        await self._redis.set(full_key, payload, ttl=ttl if ttl and ttl > 0 else None)
        log_stage(logger, Stage.CACHE.value, "Cache set", level="debug", key=full_key, ttl=ttl)

    async def delete(self, key: str, namespace: str | None = None) -> bool:
        """Returns True if a key was removed."""
        full_key = self.build_key(key, namespace)
        return await self._redis.delete(full_key) > 0

    async def delete_by_pattern(self, pattern: str, namespace: str | None = None) -> int:
        """
        Delete every key in the namespace matching a glob pattern.

        Callers embedding untrusted text in ``pattern`` should pass it
        through ``escape_pattern`` first.

        Returns:
            Number of keys deleted
        """
        match = self.build_key(pattern, namespace)
        cursor = 0
        deleted = 0
        while True:
            cursor, keys = await self._redis.scan(cursor, match, self._scan_count)
            if keys:
                deleted += await self._redis.delete(*keys)
            if int(cursor) == 0:
                break

        log_stage(logger, Stage.CACHE.value, "Pattern delete", pattern=match, deleted=deleted)
        return deleted

    async def clear(self, namespace: str | None = None) -> int:
        """Delete every key in a namespace."""
        return await self.delete_by_pattern("*", namespace)

    async def mset(self, entries: Iterable[CacheEntry], namespace: str | None = None) -> None:
        """Write several entries in one pipelined round trip."""
        operations = []
        for entry in entries:
            full_key = self.build_key(entry.key, namespace)
            payload = self._encode(entry.value, full_key)
            if entry.ttl_seconds and entry.ttl_seconds > 0:
                operations.append(BatchOperation.setex(full_key, payload, entry.ttl_seconds))
            else:
                operations.append(BatchOperation.set(full_key, payload))
        await self._redis.execute_batch(operations)

    async def increment(self, key: str, namespace: str | None = None) -> int:
        return await self._redis.incr(self.build_key(key, namespace))

    async def get_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Any],
        ttl_seconds: int | _DefaultTTL | None = None,
        namespace: str | None = None,
    ) -> Any:
        """
        Cache-aside read.

        A miss (or an unavailable store) computes the value; writing it back
        is best-effort so a store outage never fails the caller.
        """
        cached = await self.get(key, namespace)
        if cached is not None:
            return cached

        value = compute_fn()
        if inspect.isawaitable(value):
            value = await value

        try:
            await self.set(key, value, ttl_seconds, namespace)
        except StoreError as e:
            self._record_failure("set", e, key=self.build_key(key, namespace))
        return value

    # -------------------------------------------------------------------------
    # Sorted-set primitives (errors propagate; callers own the policy)
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, member: str, score: float, namespace: str | None = None) -> int:
        return await self._redis.zadd(self.build_key(key, namespace), {member: score})

    async def zcard(self, key: str, namespace: str | None = None) -> int:
        return await self._redis.zcard(self.build_key(key, namespace))

    async def zremrangebyscore(
        self, key: str, min_score: float, max_score: float, namespace: str | None = None
    ) -> int:
        return await self._redis.zremrangebyscore(self.build_key(key, namespace), min_score, max_score)

    async def ttl(self, key: str, namespace: str | None = None) -> int:
        return await self._redis.ttl(self.build_key(key, namespace))

    async def expire(self, key: str, ttl_seconds: int, namespace: str | None = None) -> bool:
        return await self._redis.expire(self.build_key(key, namespace), ttl_seconds)

    async def execute_batch(self, operations: Sequence[BatchOperation]) -> list[Any]:
        """Run already-namespaced operations in one pipeline."""
        return await self._redis.execute_batch(operations)

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        return await self._redis.ping()

    async def health_check(self) -> dict[str, Any]:
        health = await self._redis.health_check()
        health["namespace"] = self.default_namespace
        return health
