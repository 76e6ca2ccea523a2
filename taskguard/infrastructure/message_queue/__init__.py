"""
Message Queue Module

Redis Streams producer for task notifications.
"""

from taskguard.infrastructure.message_queue.notification_queue import (
    QUEUE_BREAKER_NAME,
    MessageSerializer,
    NotificationQueue,
)

__all__ = ["QUEUE_BREAKER_NAME", "MessageSerializer", "NotificationQueue"]
