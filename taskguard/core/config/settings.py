#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
taskguard resilience layer. All configuration is centralized here so the
store, limiter, breaker registry and token store read the same values.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped read-only views (settings.redis, settings.rate_limit, ...)
- Easy testing with reload_settings()
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskguard.core.config.constants import (
    DEFAULT_CACHE_TTL,
    DEFAULT_NAMESPACE,
    MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    SCAN_BATCH_SIZE,
)
from taskguard.core.config.durations import parse_duration

DEV_JWT_SECRET = "dev-access-secret-change-me"
DEV_JWT_REFRESH_SECRET = "dev-refresh-secret-change-me"


class RedisSettings(BaseSettings):
    """
    Redis connection configuration.

    STAGE-0.1: Redis connection configuration

    Architectural Decision: Connection pooling with bounded retry
    - Socket timeouts bound every call
    - Transient errors are retried with exponential backoff and jitter
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_MAX_RETRIES: int = Field(default=MAX_RETRIES, description="Attempts per command on transient errors")
    REDIS_RETRY_BASE_DELAY: float = Field(default=RETRY_BASE_DELAY, description="Initial backoff in seconds")
    REDIS_RETRY_MAX_DELAY: float = Field(default=RETRY_MAX_DELAY, description="Maximum backoff in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Distributed store configuration.

    STAGE-2: Namespace and TTL defaults
    """

    CACHE_DEFAULT_TTL: int = Field(default=DEFAULT_CACHE_TTL, description="Default entry TTL in seconds")
    CACHE_NAMESPACE: str = Field(default=DEFAULT_NAMESPACE, description="Default key namespace")
    CACHE_SCAN_COUNT: int = Field(default=SCAN_BATCH_SIZE, description="SCAN batch hint for pattern deletes")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting configuration.

    STAGE-1: Sliding window thresholds

    Architectural Decision: Sorted-set sliding window on the shared store
    - Limits are shared by every instance behind the load balancer
    - Fails open when the store is unreachable
    """

    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable request admission control")
    RATE_LIMIT_MAX: int = Field(default=100, description="Requests allowed per window")
    RATE_LIMIT_TTL: int = Field(default=60, description="Window length in seconds")
    TRUST_FORWARDED_FOR: bool = Field(default=False, description="Use first X-Forwarded-For hop as client IP")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def window_ms(self) -> int:
        return self.RATE_LIMIT_TTL * 1000


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for fault tolerance.

    STAGE-CB: Circuit breaker thresholds

    Architectural Decision: Error percentage over a rolling window
    - A breaker trips only after a minimum number of calls
    - State is process-local
    """

    CIRCUIT_BREAKER_ENABLED: bool = Field(default=True, description="Enable circuit breakers")
    CIRCUIT_BREAKER_TIMEOUT: int = Field(default=3000, description="Call timeout in milliseconds")
    CIRCUIT_BREAKER_ERROR_THRESHOLD: float = Field(default=50, description="Failure percentage that opens the circuit")
    CIRCUIT_BREAKER_RESET_TIMEOUT: int = Field(default=30000, description="Milliseconds before a trial call")
    CIRCUIT_BREAKER_VOLUME_THRESHOLD: int = Field(default=10, description="Minimum calls before tripping")
    CIRCUIT_BREAKER_ROLLING_WINDOW: int = Field(default=10000, description="Measurement window in milliseconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class AuthSettings(BaseSettings):
    """
    Token signing configuration.

    STAGE-3: Access and refresh credential lifetimes
    """

    JWT_SECRET: str = Field(default=DEV_JWT_SECRET, description="Access token signing secret")
    JWT_EXPIRATION: str = Field(default="1d", description="Access token lifetime")
    JWT_REFRESH_SECRET: str = Field(default=DEV_JWT_REFRESH_SECRET, description="Refresh token signing secret")
    JWT_REFRESH_EXPIRATION: str = Field(default="7d", description="Refresh token lifetime")
    JWT_ALGORITHM: str = Field(default="HS256", description="Signing algorithm")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def access_ttl_seconds(self) -> int:
        return parse_duration(self.JWT_EXPIRATION)

    @property
    def refresh_ttl_seconds(self) -> int:
        return parse_duration(self.JWT_REFRESH_EXPIRATION)


class QueueSettings(BaseSettings):
    """Notification queue configuration."""

    NOTIFICATION_QUEUE_NAME: str = Field(default="task-notifications", description="Redis stream name")
    NOTIFICATION_QUEUE_MAXLEN: int = Field(default=10000, description="Approximate stream length cap")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Task Manager API", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from taskguard.core.config.settings import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        window_ms = settings.rate_limit.window_ms
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_MAX_RETRIES: int = Field(default=MAX_RETRIES, description="Attempts per command on transient errors")
    REDIS_RETRY_BASE_DELAY: float = Field(default=RETRY_BASE_DELAY, description="Initial backoff in seconds")
    REDIS_RETRY_MAX_DELAY: float = Field(default=RETRY_MAX_DELAY, description="Maximum backoff in seconds")

    # Cache settings
    CACHE_DEFAULT_TTL: int = Field(default=DEFAULT_CACHE_TTL, description="Default entry TTL in seconds")
    CACHE_NAMESPACE: str = Field(default=DEFAULT_NAMESPACE, description="Default key namespace")
    CACHE_SCAN_COUNT: int = Field(default=SCAN_BATCH_SIZE, description="SCAN batch hint for pattern deletes")

    # Rate Limiting settings
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable request admission control")
    RATE_LIMIT_MAX: int = Field(default=100, description="Requests allowed per window")
    RATE_LIMIT_TTL: int = Field(default=60, description="Window length in seconds")
    TRUST_FORWARDED_FOR: bool = Field(default=False, description="Use first X-Forwarded-For hop as client IP")

    # Circuit Breaker settings
    CIRCUIT_BREAKER_ENABLED: bool = Field(default=True, description="Enable circuit breakers")
    CIRCUIT_BREAKER_TIMEOUT: int = Field(default=3000, description="Call timeout in milliseconds")
    CIRCUIT_BREAKER_ERROR_THRESHOLD: float = Field(default=50, description="Failure percentage that opens the circuit")
    CIRCUIT_BREAKER_RESET_TIMEOUT: int = Field(default=30000, description="Milliseconds before a trial call")
    CIRCUIT_BREAKER_VOLUME_THRESHOLD: int = Field(default=10, description="Minimum calls before tripping")
    CIRCUIT_BREAKER_ROLLING_WINDOW: int = Field(default=10000, description="Measurement window in milliseconds")

    # Auth settings
    JWT_SECRET: str = Field(default=DEV_JWT_SECRET, description="Access token signing secret")
    JWT_EXPIRATION: str = Field(default="1d", description="Access token lifetime")
    JWT_REFRESH_SECRET: str = Field(default=DEV_JWT_REFRESH_SECRET, description="Refresh token signing secret")
    JWT_REFRESH_EXPIRATION: str = Field(default="7d", description="Refresh token lifetime")
    JWT_ALGORITHM: str = Field(default="HS256", description="Signing algorithm")

    # Queue settings
    NOTIFICATION_QUEUE_NAME: str = Field(default="task-notifications", description="Redis stream name")
    NOTIFICATION_QUEUE_MAXLEN: int = Field(default=10000, description="Approximate stream length cap")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Task Manager API", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("JWT_EXPIRATION", "JWT_REFRESH_EXPIRATION")
    @classmethod
    def validate_duration(cls, v):
        """Reject lifetimes that cannot be parsed, instead of silently defaulting."""
        parse_duration(v)
        return v

    @field_validator("CIRCUIT_BREAKER_ERROR_THRESHOLD")
    @classmethod
    def validate_error_threshold(cls, v):
        if not 0 < v <= 100:
            raise ValueError("CIRCUIT_BREAKER_ERROR_THRESHOLD must be in (0, 100]")
        return v

    @field_validator(
        "RATE_LIMIT_MAX",
        "RATE_LIMIT_TTL",
        "CIRCUIT_BREAKER_TIMEOUT",
        "CIRCUIT_BREAKER_RESET_TIMEOUT",
        "CIRCUIT_BREAKER_VOLUME_THRESHOLD",
        "CIRCUIT_BREAKER_ROLLING_WINDOW",
        "CACHE_SCAN_COUNT",
        "REDIS_MAX_RETRIES",
    )
    @classmethod
    def validate_positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @model_validator(mode="after")
    def validate_production_secrets(self):
        """Production must not run with the development signing secrets."""
        if self.ENVIRONMENT == "production" and (
            self.JWT_SECRET == DEV_JWT_SECRET or self.JWT_REFRESH_SECRET == DEV_JWT_REFRESH_SECRET
        ):
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be set in production")
        return self

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_MAX_RETRIES=self.REDIS_MAX_RETRIES,
            REDIS_RETRY_BASE_DELAY=self.REDIS_RETRY_BASE_DELAY,
            REDIS_RETRY_MAX_DELAY=self.REDIS_RETRY_MAX_DELAY,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_NAMESPACE=self.CACHE_NAMESPACE,
            CACHE_SCAN_COUNT=self.CACHE_SCAN_COUNT,
        )

    @property
    def rate_limit(self) -> 'RateLimitSettings':
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_ENABLED=self.RATE_LIMIT_ENABLED,
            RATE_LIMIT_MAX=self.RATE_LIMIT_MAX,
            RATE_LIMIT_TTL=self.RATE_LIMIT_TTL,
            TRUST_FORWARDED_FOR=self.TRUST_FORWARDED_FOR,
        )

    @property
    def circuit_breaker(self) -> 'CircuitBreakerSettings':
        """Get circuit breaker settings."""
        return CircuitBreakerSettings(
            CIRCUIT_BREAKER_ENABLED=self.CIRCUIT_BREAKER_ENABLED,
            CIRCUIT_BREAKER_TIMEOUT=self.CIRCUIT_BREAKER_TIMEOUT,
            CIRCUIT_BREAKER_ERROR_THRESHOLD=self.CIRCUIT_BREAKER_ERROR_THRESHOLD,
            CIRCUIT_BREAKER_RESET_TIMEOUT=self.CIRCUIT_BREAKER_RESET_TIMEOUT,
            CIRCUIT_BREAKER_VOLUME_THRESHOLD=self.CIRCUIT_BREAKER_VOLUME_THRESHOLD,
            CIRCUIT_BREAKER_ROLLING_WINDOW=self.CIRCUIT_BREAKER_ROLLING_WINDOW,
        )

    @property
    def auth(self) -> 'AuthSettings':
        """Get token signing settings."""
        return AuthSettings(
            JWT_SECRET=self.JWT_SECRET,
            JWT_EXPIRATION=self.JWT_EXPIRATION,
            JWT_REFRESH_SECRET=self.JWT_REFRESH_SECRET,
            JWT_REFRESH_EXPIRATION=self.JWT_REFRESH_EXPIRATION,
            JWT_ALGORITHM=self.JWT_ALGORITHM,
        )

    @property
    def queue(self) -> 'QueueSettings':
        """Get notification queue settings."""
        return QueueSettings(
            NOTIFICATION_QUEUE_NAME=self.NOTIFICATION_QUEUE_NAME,
            NOTIFICATION_QUEUE_MAXLEN=self.NOTIFICATION_QUEUE_MAXLEN,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            DEBUG=self.DEBUG,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
