"""
Task Selector
=============

Builds each poll cycle's candidate lists across all projects.

The SQL query applies the eligibility rules that live in the tables (opt-in
flag, project repo and pause flag, lease, retry ceiling). Column roles are
inferred per project, so the role check runs on the fetched rows through the
shared ``ColumnRoleCache``.

Selection is only a hint: a candidate may be claimed by another instance
before this one gets to it, which ``ClaimCoordinator.claim`` detects.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import and_, select
from sqlalchemy.engine import Engine

from autoclaude.core.models import ColumnRoles, TaskWithRepo
from autoclaude.core.store import projects, tasks, utcnow

from .claims import lease_is_free
from .columns import ColumnRoleCache

logger = structlog.get_logger(__name__)


@dataclass
class SelectedTask:
    """A candidate task together with its project's column roles."""

    task: TaskWithRepo
    roles: ColumnRoles


class TaskSelector:
    def __init__(
        self,
        engine: Engine,
        column_cache: ColumnRoleCache,
        claim_timeout_seconds: float = 3600.0,
        max_retry_attempts: int = 3,
        max_concurrent: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.column_cache = column_cache
        self.claim_timeout_seconds = claim_timeout_seconds
        self.max_retry_attempts = max_retry_attempts
        self.max_concurrent = max_concurrent
        self._clock = clock

    def _eligible_base(self):
        return and_(
            tasks.c.autoclaude_enabled.is_(True),
            projects.c.repo_url.is_not(None),
            projects.c.autoclaude_paused.is_(False),
            lease_is_free(self.claim_timeout_seconds, self._clock()),
            tasks.c.attempt_count < self.max_retry_attempts,
        )

    def _query(self, *conditions) -> list[TaskWithRepo]:
        stmt = (
            select(tasks, projects.c.repo_url)
            .join(projects, tasks.c.project_id == projects.c.id)
            .where(self._eligible_base(), *conditions)
            .order_by(tasks.c.created_at.asc(), tasks.c.id.asc())
        )
        with self.engine.connect() as conn:
            return [TaskWithRepo.from_row(row._mapping) for row in conn.execute(stmt)]

    def _in_role(
        self, candidates: Iterable[TaskWithRepo], role: str
    ) -> list[SelectedTask]:
        selected = []
        for task in candidates:
            roles = self.column_cache.get(task.project_id)
            if roles is None:
                logger.debug("Project columns unavailable", project_id=task.project_id)
                continue
            if task.kanban_column_id == getattr(roles, role):
                selected.append(SelectedTask(task=task, roles=roles))
        return selected

    def get_feedback_tasks(self) -> list[SelectedTask]:
        """Resolved tasks sent back with feedback, oldest first."""
        candidates = self._query(
            tasks.c.pr_url.is_not(None),
            tasks.c.feedback.is_not(None),
            tasks.c.feedback != "",
        )
        return self._in_role(candidates, "in_progress")

    def get_claimable_tasks(self) -> list[SelectedTask]:
        """New tasks in their project's backlog, oldest first, capped per cycle."""
        return self._in_role(self._query(), "backlog")[: self.max_concurrent]
