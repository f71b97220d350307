"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat required fields as constructor arguments.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "Notes API",
        description="Service name shown in the OpenAPI document",
    )
    version: str = Field(
        "1.0.0",
        description="Service version reported by the health endpoint",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    host: str = Field(
        "0.0.0.0",
        description="Bind address used by the uvicorn runner",
    )
    port: int = Field(
        3000,
        description="Bind port used by the uvicorn runner",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' (structured) or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Request throttling policies.

    Three named policies share one algorithm and differ only in numbers and
    key namespace: ``standard`` applies to every route, ``api`` to general
    API traffic and ``strict`` to brute-force sensitive routes.
    """

    enabled: bool = Field(
        True,
        description="Enable request rate limiting",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on limited responses",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Prefer the first X-Forwarded-For entry over the socket peer address",
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Interval between sweeps of expired in-memory records",
        gt=0,
    )

    standard_window_ms: int = Field(
        15 * 60 * 1000,
        description="Standard policy window in milliseconds",
        ge=1,
    )
    standard_max_requests: int = Field(
        100,
        description="Standard policy request ceiling per window",
        ge=1,
    )
    standard_message: str = Field(
        "Too many requests, please try again later",
        description="Standard policy rejection message",
    )

    api_window_ms: int = Field(
        60 * 1000,
        description="API policy window in milliseconds",
        ge=1,
    )
    api_max_requests: int = Field(
        60,
        description="API policy request ceiling per window",
        ge=1,
    )
    api_message: str = Field(
        "API rate limit exceeded, please slow down",
        description="API policy rejection message",
    )

    strict_window_ms: int = Field(
        15 * 60 * 1000,
        description="Strict policy window in milliseconds (login, bulk delete)",
        ge=1,
    )
    strict_max_requests: int = Field(
        10,
        description="Strict policy request ceiling per window",
        ge=1,
    )
    strict_message: str = Field(
        "Too many attempts, please try again later",
        description="Strict policy rejection message",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared store used for cross-process rate limiting.

    Leaving ``url`` unset keeps every process on its own in-memory store.
    """

    url: str | None = Field(
        None,
        description="Redis connection URL (e.g., redis://localhost:6379/0)",
    )
    connect_timeout_seconds: float = Field(
        5.0,
        description="Upper bound for the startup/reconnect handshake",
        gt=0,
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Per-command socket timeout",
        gt=0,
    )
    check_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for one rate limit check against Redis",
        gt=0,
    )
    reconnect_interval_seconds: float = Field(
        30.0,
        description="Interval between reconnection attempts while degraded",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance composed from domain-specific settings
settings = Settings()
