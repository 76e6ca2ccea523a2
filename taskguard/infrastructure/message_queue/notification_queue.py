"""
Notification Queue

Fire-and-forget producer for task notifications on a Redis Stream.

Each submission is one XADD with an approximate MAXLEN, guarded by the
"notification-queue" circuit breaker. A notification that cannot be queued
is dropped with a warning; the request that triggered it carries on.

Message layout on the stream:
    {"payload": <orjson-encoded message>}
"""

from typing import Any

import orjson

from taskguard.core.config.constants import Stage
from taskguard.core.config.settings import Settings, get_settings
from taskguard.core.exceptions import CircuitBreakerError, SerializationError, StoreError
from taskguard.core.logging.logger import get_logger
from taskguard.core.resilience.circuit_breaker import CircuitBreakerRegistry
from taskguard.infrastructure.cache.redis_client import RedisClient
from taskguard.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

QUEUE_BREAKER_NAME = "notification-queue"


class MessageSerializer:
    """Payload ↔ stream-field conversion."""

    @staticmethod
    def serialize(message: dict[str, Any]) -> dict[str, str]:
        try:
            return {"payload": orjson.dumps(message, default=str).decode("utf-8")}
        except TypeError as e:
            raise SerializationError(f"Notification is not serializable: {e}") from e

    @staticmethod
    def deserialize(fields: dict[str, str]) -> dict[str, Any]:
        return orjson.loads(fields["payload"])


class NotificationQueue:
    """
    Usage:
        queue = NotificationQueue(redis_client, registry)
        queued = await queue.submit({"event": "task.assigned", "task_id": 7})
    """

    def __init__(
        self,
        redis_client: RedisClient,
        registry: CircuitBreakerRegistry,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        queue_settings = (settings or get_settings()).queue
        self._redis = redis_client
        self._registry = registry
        self.stream_name = queue_settings.NOTIFICATION_QUEUE_NAME
        self._max_len = queue_settings.NOTIFICATION_QUEUE_MAXLEN
        self._serializer = MessageSerializer()
        self._metrics = metrics or get_metrics_collector()

    async def submit(self, message: dict[str, Any]) -> bool:
        """
        Queue one notification.

        Returns:
            True when the stream accepted it, False when it was dropped
        """
        try:
            fields = self._serializer.serialize(message)
            message_id = await self._registry.execute(
                QUEUE_BREAKER_NAME,
                lambda: self._redis.xadd(self.stream_name, fields, maxlen=self._max_len),
            )
        except (StoreError, CircuitBreakerError, SerializationError) as e:
            self._metrics.record_queue_submission(self.stream_name, "dropped")
            logger.warning(
                "Notification dropped",
                stage=Stage.QUEUE.value,
                stream=self.stream_name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        self._metrics.record_queue_submission(self.stream_name, "queued")
        logger.debug(
            "Notification queued",
            stage=Stage.QUEUE.value,
            stream=self.stream_name,
            message_id=message_id,
        )
        return True
