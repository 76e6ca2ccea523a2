#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Builds the resilience components once per process in the lifespan and
stores them on ``app.state``:

    RedisClient ─▶ DistributedStore ─┬─▶ SlidingWindowLimiter ─▶ RequestGate
                                     └─▶ RefreshTokenStore ─▶ SessionTokenService
    CircuitBreakerRegistry (logging + metrics observers)
    NotificationQueue (RedisClient + breaker "notification-queue")

If Redis is unreachable at startup the app still starts: the limiter
fails open, cache reads miss, token rotation is refused and readiness
reports 503 until the store answers again.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from taskguard.application.api.middleware.error_handler import (
    ErrorHandlingMiddleware,
    register_exception_handlers,
)
from taskguard.application.api.middleware.rate_limit import RequestGate
from taskguard.application.api.middleware.request_context import RequestContextMiddleware
from taskguard.application.api.routes.auth import router as auth_router
from taskguard.application.api.routes.health import router as health_router
from taskguard.auth.refresh_token_store import RefreshTokenStore
from taskguard.auth.session_tokens import SessionTokenService
from taskguard.core.config.constants import (
    HEADER_RATE_LIMIT,
    HEADER_RATE_REMAINING,
    HEADER_RATE_RESET,
    HEADER_REQUEST_ID,
    HEADER_RETRY_AFTER,
    Stage,
)
from taskguard.core.config.settings import Settings, get_settings
from taskguard.core.exceptions import StoreUnavailableError
from taskguard.core.logging.logger import get_logger, setup_logging
from taskguard.core.resilience.circuit_breaker import CircuitBreakerRegistry
from taskguard.core.resilience.observers import LoggingBreakerObserver, MetricsBreakerObserver
from taskguard.core.resilience.rate_limiter import RateLimitRule, SlidingWindowLimiter
from taskguard.infrastructure.cache.distributed_store import DistributedStore
from taskguard.infrastructure.cache.redis_client import RedisClient
from taskguard.infrastructure.message_queue.notification_queue import NotificationQueue
from taskguard.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


# ============================================================================
# Component wiring
# ============================================================================


def build_components(app: FastAPI, redis_client: RedisClient, settings: Settings) -> None:
    """Create every request-path component and attach it to ``app.state``."""
    metrics = get_metrics_collector()

    store = DistributedStore(redis_client, settings)
    limiter = SlidingWindowLimiter(
        store,
        RateLimitRule(limit=settings.rate_limit.RATE_LIMIT_MAX, window_ms=settings.rate_limit.window_ms),
        metrics=metrics,
    )
    breakers = CircuitBreakerRegistry.from_settings(
        settings,
        observers=[LoggingBreakerObserver(), MetricsBreakerObserver(metrics)],
    )
    refresh_tokens = RefreshTokenStore(store, settings, metrics=metrics)

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.store = store
    app.state.limiter = limiter
    app.state.breakers = breakers
    app.state.refresh_tokens = refresh_tokens
    app.state.sessions = SessionTokenService(refresh_tokens, settings)
    app.state.notifications = NotificationQueue(redis_client, breakers, settings, metrics)
    app.state.request_gate = RequestGate(
        limiter,
        enabled=settings.rate_limit.RATE_LIMIT_ENABLED,
        trust_forwarded_for=settings.rate_limit.TRUST_FORWARDED_FOR,
    )


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Settings | None = None, redis_client: RedisClient | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Defaults to the process settings
        redis_client: Pre-built client; when given the lifespan neither
            connects nor disconnects it
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
        logger.info(
            "Starting taskguard",
            stage=Stage.INITIALIZATION.value,
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION,
        )

        owns_client = redis_client is None
        client = redis_client or RedisClient(settings)
        if owns_client:
            try:
                await client.connect()
            except StoreUnavailableError as e:
                logger.error(
                    "Redis unavailable at startup, running degraded",
                    stage=Stage.INITIALIZATION.value,
                    error=str(e),
                )

        build_components(app, client, settings)
        logger.info("Application startup complete", stage=Stage.INITIALIZATION.value)

        try:
            yield
        finally:
            logger.info("Shutting down application", stage=Stage.CLEANUP.value)
            if owns_client:
                await client.disconnect()
            logger.info("Application shutdown complete", stage=Stage.CLEANUP.value)

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Task manager API: rate limiting, refresh tokens and circuit breakers",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ========================================================================
    # MIDDLEWARE REGISTRATION
    # ========================================================================
    # Executed in reverse order of registration: request context runs first
    # so every log line (including errors) carries the request ID.
    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development"),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            HEADER_REQUEST_ID,
            HEADER_RATE_LIMIT,
            HEADER_RATE_REMAINING,
            HEADER_RATE_RESET,
            HEADER_RETRY_AFTER,
        ],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)

    # ========================================================================
    # ROUTER REGISTRATION
    # ========================================================================
    base_path = settings.app.API_BASE_PATH
    app.include_router(health_router, prefix=base_path)
    app.include_router(auth_router, prefix=base_path)

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics():
        metrics = get_metrics_collector()
        return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
