"""
API Routes
"""

from taskguard.application.api.routes.auth import router as auth_router
from taskguard.application.api.routes.health import router as health_router

__all__ = ["auth_router", "health_router"]
