"""
Sentry Error Tracking
=====================

Optional error reporting for the daemon.

Configuration:
- SENTRY_DSN: Required to enable Sentry
- SENTRY_TRACES_SAMPLE_RATE: Performance sample rate (0-1, default: 0.1)
- SENTRY_ENVIRONMENT: Environment tag (default: production)

Privacy Note:
- Usernames are masked from file paths
- Repository URLs and task text are not attached to events
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration

logger = structlog.get_logger(__name__)

_sentry_initialized = False
_sentry_enabled = False

DEFAULT_TRACE_SAMPLE_RATE = 0.1

_HOME_DIR_RE = re.compile(r"/(Users|home)/[^/]+(?=/|$)")


def _mask_user_paths(text: str) -> str:
    """Mask usernames in home directory paths: /home/name/x -> /home/***/x."""
    return _HOME_DIR_RE.sub(r"/\1/***", text) if text else text


def _mask_object_paths(obj: Any, _depth: int = 0) -> Any:
    if _depth > 50 or obj is None:
        return obj
    if isinstance(obj, str):
        return _mask_user_paths(obj)
    if isinstance(obj, list):
        return [_mask_object_paths(item, _depth + 1) for item in obj]
    if isinstance(obj, dict):
        return {key: _mask_object_paths(value, _depth + 1) for key, value in obj.items()}
    return obj


def _before_send(event: dict, hint: dict) -> dict | None:
    """Apply path masking to an event before it leaves the process."""
    if not _sentry_enabled:
        return None

    for exception in event.get("exception", {}).get("values", []):
        for frame in exception.get("stacktrace", {}).get("frames", []):
            for key in ("filename", "abs_path"):
                if key in frame:
                    frame[key] = _mask_user_paths(frame[key])
        if "value" in exception:
            exception["value"] = _mask_user_paths(exception["value"])

    if "message" in event:
        event["message"] = _mask_user_paths(event["message"])

    for key in ("tags", "contexts", "extra"):
        if key in event:
            event[key] = _mask_object_paths(event[key])

    if "user" in event:
        event["user"] = {}

    return event


def init_sentry(component: str = "autoclaude-daemon", release: str | None = None) -> bool:
    """
    Initialize Sentry when SENTRY_DSN is configured.

    Returns:
        True if Sentry was initialized, False otherwise
    """
    global _sentry_initialized, _sentry_enabled

    if _sentry_initialized:
        return _sentry_enabled
    _sentry_initialized = True

    dsn = os.environ.get("SENTRY_DSN", "")
    if not dsn:
        logger.debug("[Sentry] No SENTRY_DSN configured - error reporting disabled")
        return False

    traces_sample_rate = DEFAULT_TRACE_SAMPLE_RATE
    try:
        env_rate = os.environ.get("SENTRY_TRACES_SAMPLE_RATE")
        if env_rate:
            parsed = float(env_rate)
            if 0 <= parsed <= 1:
                traces_sample_rate = parsed
    except ValueError:
        pass

    logging_integration = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR,
    )

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
            release=release,
            traces_sample_rate=traces_sample_rate,
            before_send=_before_send,
            integrations=[logging_integration],
            send_default_pii=False,
        )
    except Exception as e:
        # A malformed DSN must not stop the daemon
        logger.warning("[Sentry] Failed to initialize - invalid DSN configuration", error=str(e))
        return False

    sentry_sdk.set_tag("component", component)
    _sentry_enabled = True
    logger.info("[Sentry] Initialized", component=component, release=release)
    return True


def capture_exception(error: BaseException, **kwargs) -> None:
    """
    Report an exception. Safe to call when Sentry is not initialized.

    Args:
        error: The exception to capture
        **kwargs: Extra context attached to the event
    """
    if not _sentry_enabled:
        return

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in kwargs.items():
                scope.set_extra(key, _mask_object_paths(value))
            sentry_sdk.capture_exception(error)
    except Exception as e:
        logger.error("[Sentry] Failed to capture exception", error=str(e))


def is_enabled() -> bool:
    return _sentry_enabled
