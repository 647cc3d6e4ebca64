"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Rate limit policies are part of the static configuration. They are read once
when the process starts and are never mutated at runtime.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
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


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class PolicyConfig(BaseModel):
    """Raw policy entry as it appears in configuration.

    ``unverified_max_count`` falls back to ``max_count`` when omitted, so an
    action without a dedicated unverified ceiling treats both tiers alike.
    """

    window_seconds: int = Field(..., ge=1, description="Fixed window length in seconds")
    max_count: int = Field(..., ge=1, description="Ceiling for verified subjects")
    unverified_max_count: int | None = Field(
        None,
        ge=1,
        description="Ceiling for unverified subjects (defaults to max_count)",
    )

    @model_validator(mode="after")
    def _check_ceilings(self) -> "PolicyConfig":
        if self.unverified_max_count is not None and self.unverified_max_count > self.max_count:
            raise ValueError("unverified_max_count must be <= max_count")
        return self


DEFAULT_POLICIES: dict[str, PolicyConfig] = {
    "create_reel": PolicyConfig(window_seconds=3600, max_count=5, unverified_max_count=2),
    "create_post": PolicyConfig(window_seconds=1800, max_count=6, unverified_max_count=3),
    "send_message": PolicyConfig(window_seconds=300, max_count=40, unverified_max_count=15),
}


def _default_policies() -> dict[str, PolicyConfig]:
    return dict(DEFAULT_POLICIES)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Admission control configuration.

    ``policies`` accepts a JSON object in the ``RATE_LIMIT_POLICIES``
    environment variable, e.g.
    ``{"create_post": {"window_seconds": 1800, "max_count": 6, "unverified_max_count": 3}}``.
    When set it replaces the default policy set entirely.
    """

    enabled: bool = Field(
        True,
        description="Enforce action rate limits on protected routes",
    )
    backend: str = Field(
        "memory",
        description="Counter store backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL for the redis backend",
    )
    redis_key_prefix: str = Field(
        "rate_limit",
        description="Namespace prefix for counter keys in Redis",
    )
    redis_socket_timeout_seconds: float = Field(
        0.5,
        description="Socket connect/read timeout for the Redis client",
        gt=0,
    )
    store_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for one evaluation; exceeding it counts as store failure",
        gt=0,
    )
    fail_open_actions: str | None = Field(
        None,
        description="Comma-separated action types allowed through when the store is down",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    lock_stripes: int = Field(
        64,
        description="In-memory store spreads keys over this many locks",
        ge=1,
    )
    sweep_batch: int = Field(
        8,
        description="Most expired in-memory records a single increment evicts",
        ge=1,
    )
    policies: dict[str, PolicyConfig] = Field(
        default_factory=_default_policies,
        description="Mapping of action type to policy",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
