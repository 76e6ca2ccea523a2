"""
API Models
"""

from taskguard.application.api.models.auth import (
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    TokenPairResponse,
)

__all__ = ["LogoutRequest", "LogoutResponse", "RefreshRequest", "TokenPairResponse"]
