"""
Cache Module

Redis client and the namespaced distributed store built on it.
"""

from taskguard.infrastructure.cache.distributed_store import (
    DEFAULT_TTL,
    CacheEntry,
    DistributedStore,
    escape_pattern,
)
from taskguard.infrastructure.cache.redis_client import (
    BatchAction,
    BatchOperation,
    RedisClient,
)

__all__ = [
    "DEFAULT_TTL",
    "BatchAction",
    "BatchOperation",
    "CacheEntry",
    "DistributedStore",
    "RedisClient",
    "escape_pattern",
]
