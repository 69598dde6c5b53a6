"""
Logging Setup
=============

structlog over stdlib logging. Controlled via environment variables:
  - DEBUG=true     Enable debug level
  - LOG_JSON=true  Emit JSON lines instead of console output

Per-task context (task_id, project_id) is bound with
``structlog.contextvars.bound_contextvars`` and merged into every line.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("true", "1", "yes", "on")


def setup_logging(*, debug: bool | None = None, json_output: bool | None = None) -> None:
    """Configure structlog for the daemon."""
    if debug is None:
        debug = _env_flag("DEBUG")
    if json_output is None:
        json_output = _env_flag("LOG_JSON")

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
