"""
Daemon Configuration
====================

Environment-sourced configuration for the AUTOCLAUDE daemon.

Values are read from the process environment after loading an optional
``.env`` file. Durations are configured in milliseconds (matching the UI's
settings screen) and exposed in seconds.

Environment Variables:
    DATABASE_URL            SQLAlchemy database URL (required)
    POLL_INTERVAL_MS        Delay between poll cycles (default: 10000)
    MAX_BACKOFF_MS          Upper bound for error backoff (default: 300000)
    WORK_DIR                Root directory for task workspaces (default: /tmp/autoclaude)
    INSTANCE_ID             Lease owner identifier (default: autoclaude-<start ms>)
    CLAUDE_MODEL            Model passed to the Claude CLI (default: sonnet)
    MAX_CONCURRENT          New tasks taken per cycle (default: 1)
    CLAIM_TIMEOUT_MS        Age after which a lease is stale (default: 3600000)
    MAX_RETRY_ATTEMPTS      Failed attempts before a task is skipped (default: 3)
    CLAUDE_TIMEOUT_MS       Wall-clock limit per Claude run (default: 600000)
    GIT_TIMEOUT_MS          Wall-clock limit per git/gh command (default: 300000)
    CLEANUP_ON_SUCCESS      Remove the workspace after a PR is opened (default: true)
    COLUMN_CACHE_TTL_MS     Column role cache lifetime (default: 60000)
    EVENT_RETENTION_HOURS   Age of activity events purged while idle (default: 24)
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from dotenv import load_dotenv

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_MS = 10_000
DEFAULT_MAX_BACKOFF_MS = 300_000  # 5 minutes
DEFAULT_WORK_DIR = "/tmp/autoclaude"
DEFAULT_CLAUDE_MODEL = "sonnet"
DEFAULT_MAX_CONCURRENT = 1
DEFAULT_CLAIM_TIMEOUT_MS = 3_600_000  # 1 hour
DEFAULT_MAX_RETRY_ATTEMPTS = 3
DEFAULT_CLAUDE_TIMEOUT_MS = 600_000  # 10 minutes
DEFAULT_GIT_TIMEOUT_MS = 300_000
DEFAULT_COLUMN_CACHE_TTL_MS = 60_000
DEFAULT_EVENT_RETENTION_HOURS = 24


class ConfigError(Exception):
    """Raised when required configuration is missing."""


def _default_instance_id() -> str:
    return f"autoclaude-{int(time.time() * 1000)}"


def require_env(name: str, environ: dict | None = None) -> str:
    """Return a required environment variable or raise ConfigError."""
    env = os.environ if environ is None else environ
    value = env.get(name)
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def parse_int_with_default(value: str | None, default: int, name: str) -> int:
    """
    Parse a non-negative integer setting.

    Invalid or negative values log a warning and fall back to the default
    rather than stopping the daemon.
    """
    if not value:
        return default
    try:
        parsed = int(value, 10)
    except ValueError:
        parsed = -1
    if parsed < 0:
        logger.warning(
            "Invalid configuration value, using default",
            setting=name,
            value=value,
            default=default,
        )
        return default
    return parsed


@dataclass
class DaemonConfig:
    """Configuration for one daemon process."""

    database_url: str
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS
    work_dir: Path = field(default_factory=lambda: Path(DEFAULT_WORK_DIR))
    instance_id: str = field(default_factory=_default_instance_id)
    claude_model: str = DEFAULT_CLAUDE_MODEL
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    claim_timeout_ms: int = DEFAULT_CLAIM_TIMEOUT_MS
    max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS
    claude_timeout_ms: int = DEFAULT_CLAUDE_TIMEOUT_MS
    git_timeout_ms: int = DEFAULT_GIT_TIMEOUT_MS
    cleanup_on_success: bool = True
    column_cache_ttl_ms: int = DEFAULT_COLUMN_CACHE_TTL_MS
    event_retention_hours: int = DEFAULT_EVENT_RETENTION_HOURS

    @classmethod
    def from_env(
        cls, environ: dict | None = None, env_file: Path | None = None
    ) -> DaemonConfig:
        """
        Create config from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (tests)
            env_file: Optional .env file loaded before reading os.environ

        Raises:
            ConfigError: If DATABASE_URL is not set
        """
        if environ is None:
            load_dotenv(env_file)
            environ = dict(os.environ)

        def _int(name: str, default: int) -> int:
            return parse_int_with_default(environ.get(name), default, name)

        return cls(
            database_url=require_env("DATABASE_URL", environ),
            poll_interval_ms=_int("POLL_INTERVAL_MS", DEFAULT_POLL_INTERVAL_MS),
            max_backoff_ms=_int("MAX_BACKOFF_MS", DEFAULT_MAX_BACKOFF_MS),
            work_dir=Path(environ.get("WORK_DIR") or DEFAULT_WORK_DIR),
            instance_id=environ.get("INSTANCE_ID") or _default_instance_id(),
            claude_model=environ.get("CLAUDE_MODEL") or DEFAULT_CLAUDE_MODEL,
            max_concurrent=_int("MAX_CONCURRENT", DEFAULT_MAX_CONCURRENT),
            claim_timeout_ms=_int("CLAIM_TIMEOUT_MS", DEFAULT_CLAIM_TIMEOUT_MS),
            max_retry_attempts=_int("MAX_RETRY_ATTEMPTS", DEFAULT_MAX_RETRY_ATTEMPTS),
            claude_timeout_ms=_int("CLAUDE_TIMEOUT_MS", DEFAULT_CLAUDE_TIMEOUT_MS),
            git_timeout_ms=_int("GIT_TIMEOUT_MS", DEFAULT_GIT_TIMEOUT_MS),
            # Only an explicit "false" disables cleanup
            cleanup_on_success=environ.get("CLEANUP_ON_SUCCESS", "").lower()
            != "false",
            column_cache_ttl_ms=_int(
                "COLUMN_CACHE_TTL_MS", DEFAULT_COLUMN_CACHE_TTL_MS
            ),
            event_retention_hours=_int(
                "EVENT_RETENTION_HOURS", DEFAULT_EVENT_RETENTION_HOURS
            ),
        )

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def max_backoff(self) -> float:
        return self.max_backoff_ms / 1000

    @property
    def claim_timeout(self) -> float:
        return self.claim_timeout_ms / 1000

    @property
    def claude_timeout(self) -> float:
        return self.claude_timeout_ms / 1000

    @property
    def git_timeout(self) -> float:
        return self.git_timeout_ms / 1000

    @property
    def column_cache_ttl(self) -> float:
        return self.column_cache_ttl_ms / 1000
