"""Package configuration using Pydantic Settings.

Configuration is environment-aware:
- CALLRATE_ENV selects a .env.{environment} file to load
- Supports: development, testing, staging, production (other names map to .env.{name})
- Without CALLRATE_ENV no file is read; only the process environment counts

Only limiter defaults and logging live here. Per-instance arguments passed
to throttle/debounce/RateLimiter always win over these values.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


CALLRATE_ENV = os.getenv("CALLRATE_ENV") or None

# Resolve .env files relative to the working directory of the host process
PROJECT_ROOT = Path.cwd()

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}


def resolve_env_file(env: str | None, root: Path = PROJECT_ROOT) -> Path | None:
    """Return the .env file for ``env`` if one exists under ``root``.

    Args:
        env: Environment name, usually CALLRATE_ENV. None disables file loading.
        root: Directory holding the .env files.

    Returns:
        Path to an existing file, or None.
    """

    if not env:
        return None
    env_path = root / ENV_FILE_MAP.get(env, f".env.{env}")
    return env_path if env_path.is_file() else None


_env_file = resolve_env_file(CALLRATE_ENV)

# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


def _build_limiter_settings() -> "LimiterSettings":
    """Build limiter settings from environment."""

    return LimiterSettings()


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


class LimiterSettings(BaseSettings):
    """Defaults for rate limiters built without explicit arguments."""

    drain_floor_ms: float = Field(
        10.0,
        description="Minimum delay between drain attempts of the wait queue",
        gt=0,
    )
    default_strategy: Literal["drop", "queue", "error"] = Field(
        "drop",
        description="Overflow strategy used when none is given",
    )
    default_limit: int = Field(
        10,
        description="Maximum number of acquisitions per window for factory-built limiters",
        ge=1,
    )
    default_window_ms: float = Field(
        1000.0,
        description="Sliding window size in milliseconds for factory-built limiters",
        gt=0,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when refusing HTTP calls",
    )
    max_tracked_keys: int = Field(
        10_000,
        description="Upper bound on per-client limiters kept by the HTTP dependency",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="CALLRATE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level name",
    )
    format: Literal["json", "plain"] = Field(
        "json",
        description="json for structured lines, plain for human-readable output",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where log lines are written",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file at this size; 0 disables rotation",
        ge=0,
    )
    backup_count: int = Field(
        3,
        description="Number of rotated files to keep",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Environments (callrate_env, None when CALLRATE_ENV is unset):
    - development: Local development (uses .env.development)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    callrate_env: str | None = CALLRATE_ENV
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
