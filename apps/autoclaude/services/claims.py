"""
Claim Coordinator
=================

Lease protocol over the shared task store.

A lease is the ``(claimed_at, claimed_by)`` pair on a task. Several daemon
instances may poll the same store, so a claim is a single conditional UPDATE:
it only matches when the task has no lease or its lease is older than the
claim timeout, and the row count tells the caller whether it won. Every other
transition is also one UPDATE in its own transaction.

Store errors propagate. Whether a transition was written decides whether the
caller goes on to do external work, so they are never swallowed here.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.engine import Engine

from autoclaude.core.store import tasks, utcnow

logger = structlog.get_logger(__name__)

# last_error is advisory UI text; tool output can be very long
MAX_ERROR_LENGTH = 10_000


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 15] + "\n...[truncated]"


def lease_is_free(claim_timeout_seconds: float, now: datetime):
    """SQL condition: no lease, or a lease taken at or before ``now - timeout``."""
    cutoff = now - timedelta(seconds=claim_timeout_seconds)
    return or_(tasks.c.claimed_at.is_(None), tasks.c.claimed_at <= cutoff)


class ClaimCoordinator:
    """Claims, resolves and fails tasks on behalf of one daemon instance."""

    def __init__(
        self,
        engine: Engine,
        instance_id: str,
        claim_timeout_seconds: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.instance_id = instance_id
        self.claim_timeout_seconds = claim_timeout_seconds
        self._clock = clock

    def claim(self, task_id: str, in_progress_column_id: str) -> bool:
        """
        Take the lease on a task and move it to the in-progress column.

        Returns:
            True if this instance now holds the lease. False means another
            instance holds a live lease; it is not an error.
        """
        now = self._clock()
        stmt = (
            update(tasks)
            .where(
                and_(
                    tasks.c.id == task_id,
                    lease_is_free(self.claim_timeout_seconds, now),
                )
            )
            .values(
                claimed_at=now,
                claimed_by=self.instance_id,
                kanban_column_id=in_progress_column_id,
            )
        )
        with self.engine.begin() as conn:
            claimed = conn.execute(stmt).rowcount > 0

        if claimed:
            logger.info("Claimed task", task_id=task_id, instance=self.instance_id)
        else:
            logger.debug("Claim lost or task no longer eligible", task_id=task_id)
        return claimed

    def resolve(self, task_id: str, pr_url: str, resolved_column_id: str) -> None:
        """Record the PR, clear lease/feedback/error, move to the resolved column."""
        stmt = (
            update(tasks)
            .where(tasks.c.id == task_id)
            .values(
                kanban_column_id=resolved_column_id,
                pr_url=pr_url,
                feedback=None,
                last_error=None,
                claimed_at=None,
                claimed_by=None,
            )
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
        logger.info("Resolved task", task_id=task_id, pr_url=pr_url)

    def record_error(
        self, task_id: str, message: str, target_column_id: str | None
    ) -> int:
        """
        Record a failed attempt and release the lease.

        Args:
            task_id: Task that failed
            message: Failure text shown in the UI
            target_column_id: Column to move the task to (backlog for new
                tasks); None leaves the column unchanged

        Returns:
            The task's attempt count after the increment
        """
        values = {
            "last_error": truncate_error(message),
            "attempt_count": tasks.c.attempt_count + 1,
            "claimed_at": None,
            "claimed_by": None,
        }
        if target_column_id is not None:
            values["kanban_column_id"] = target_column_id

        with self.engine.begin() as conn:
            conn.execute(update(tasks).where(tasks.c.id == task_id).values(**values))
            attempt_count = conn.execute(
                select(tasks.c.attempt_count).where(tasks.c.id == task_id)
            ).scalar_one_or_none()

        logger.warning(
            "Recorded task error",
            task_id=task_id,
            attempt_count=attempt_count,
            error=message[:200],
        )
        return attempt_count or 0

    def record_feedback_error(self, task_id: str, message: str) -> int:
        """
        Fail a feedback attempt without leaving the in-progress column.

        The feedback stays on the row so the next poll finds the task as a
        feedback task again instead of starting the new-task path.
        """
        return self.record_error(task_id, message, target_column_id=None)

    def clear_feedback(self, task_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(update(tasks).where(tasks.c.id == task_id).values(feedback=None))

    def release(self, task_id: str) -> bool:
        """Drop this instance's own lease without counting an attempt."""
        stmt = (
            update(tasks)
            .where(and_(tasks.c.id == task_id, tasks.c.claimed_by == self.instance_id))
            .values(claimed_at=None, claimed_by=None)
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0
