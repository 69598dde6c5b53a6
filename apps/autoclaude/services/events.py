"""
Activity Events
===============

Step-by-step progress rows for the UI's AUTOCLAUDE activity feed.

Emission is best-effort: the feed is observability, so a failed insert is
logged and never interrupts task processing.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import delete, insert
from sqlalchemy.engine import Engine

from autoclaude.core.store import autoclaude_events, utcnow

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Event types understood by the activity feed."""

    TASK_STARTED = "task_started"
    CLONING_REPO = "cloning_repo"
    CREATING_BRANCH = "creating_branch"
    RUNNING_CLAUDE = "running_claude"
    COMMITTING = "committing"
    CREATING_PR = "creating_pr"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    FEEDBACK_STARTED = "feedback_started"
    FEEDBACK_COMPLETED = "feedback_completed"


def safe_serialize_metadata(metadata: dict[str, Any] | None) -> str:
    """Serialize event metadata, dropping values JSON cannot represent."""
    if not metadata or not isinstance(metadata, dict):
        return "{}"

    sanitized = {}
    for key, value in metadata.items():
        if value is None or callable(value):
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        sanitized[str(key)] = value
    return json.dumps(sanitized)


class EventEmitter:
    def __init__(
        self,
        engine: Engine,
        instance_id: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.instance_id = instance_id
        self._clock = clock

    def emit(
        self,
        project_id: str,
        event_type: EventType,
        message: str,
        task_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        event_value = EventType(event_type).value
        stmt = insert(autoclaude_events).values(
            project_id=project_id,
            task_id=task_id,
            event_type=event_value,
            message=message,
            metadata=safe_serialize_metadata(metadata),
            created_at=self._clock(),
            daemon_instance=self.instance_id,
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except Exception as e:
            logger.warning(
                "Failed to emit event", event_type=event_value, error=str(e)
            )

    def cleanup_old_events(self, max_age_hours: int = 24) -> int:
        """Delete events older than ``max_age_hours``. Returns rows removed."""
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    delete(autoclaude_events).where(autoclaude_events.c.created_at < cutoff)
                )
        except Exception as e:
            logger.warning("Failed to clean up old events", error=str(e))
            return 0
        return result.rowcount
