"""
Distributed Store Exceptions

All exceptions related to the shared key-value store (Redis).
"""

from taskguard.core.exceptions.base import TaskGuardError


class StoreError(TaskGuardError):
    """Base exception for store errors."""
    pass


class StoreUnavailableError(StoreError):
    """
    Raised when the store cannot be reached.

    Transient connection and timeout errors are retried first; this is
    raised once the retry budget is exhausted.

    Common causes:
    - Redis server is down
    - Network partition
    - Socket timeout
    """
    pass


class StoreOperationError(StoreError):
    """
    Raised when the store rejects a command.

    Common causes:
    - WRONGTYPE (key holds a different data type)
    - Out of memory
    - Client not connected
    """
    pass


class SerializationError(TaskGuardError):
    """
    Raised when a value cannot be encoded for storage.

    This is a caller error, not a store failure: it is raised even while
    the store is healthy.
    """
    pass
