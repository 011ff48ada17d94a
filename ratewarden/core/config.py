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

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_store_settings() -> "StoreSettings":
    """Build store settings from environment.

    See _build_app_settings() for rationale about the type ignore.
    """

    return StoreSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class StoreSettings(BaseSettings):
    """Expiring key-value store configuration.

    The in-memory backend is per-process only. Use the Redis backend when the
    API runs with more than one worker so every worker shares the counters.
    """

    backend: str = Field(
        "memory",
        description="Store backend name (memory or redis)",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL (required for the redis backend)",
    )
    namespace: str = Field(
        "ratewarden",
        description="Namespace prepended to every key written to Redis",
    )
    key_prefix: str = Field(
        "ratewarden_",
        description="Prefix applied by limiters before the hashed logical key",
    )
    max_entries: int = Field(
        10_000,
        description="Maximum number of records kept by the in-memory store",
        ge=1,
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Redis socket timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format (json or plain)")
    output: str = Field("stdout", description="Log destination (stdout or file)")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


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
        description=(
            "Comma-separated list of valid API keys. An entry may carry the "
            "owning user id as key:user_id"
        ),
    )
    admin_api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated list of keys allowed to clear rate limits. "
            "Clearing is disabled when unset"
        ),
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable the global request limit per caller",
    )
    rate_limit_requests: int = Field(
        120,
        description="Maximum number of API requests allowed per window (per caller)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Global request limit window size in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    rate_limit_fail_open: bool = Field(
        True,
        description="Allow requests through when the store is unavailable",
    )

    action_max_attempts: int = Field(
        60,
        description="Maximum attempts per action and caller within one window",
        ge=1,
    )
    action_decay_seconds: int = Field(
        60,
        description="Window size in seconds for per-action limits",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
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
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
