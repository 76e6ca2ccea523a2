"""
Authentication Exceptions
"""

from taskguard.core.config.constants import INVALID_REFRESH_TOKEN_MESSAGE
from taskguard.core.exceptions.base import TaskGuardError


class AuthenticationError(TaskGuardError):
    """Base exception for authentication errors."""
    pass


class InvalidOrExpiredCredentialError(AuthenticationError):
    """
    Raised for any refresh credential that cannot be exchanged.

    Unknown, expired, replayed, malformed and wrongly-signed credentials
    all produce the same message so callers cannot tell them apart.
    """

    def __init__(self, message: str = INVALID_REFRESH_TOKEN_MESSAGE, request_id: str | None = None):
        super().__init__(message, request_id=request_id)
