"""
Task Store Models
=================

Row types read from the shared task store. The UI owns these tables; the
daemon only reads them and updates the AUTOCLAUDE fields on ``tasks``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

STATUS_TODO = "todo"


@dataclass
class Task:
    """A kanban task row."""

    id: str
    text: str
    project_id: str
    status: str = STATUS_TODO
    kanban_column_id: str | None = None
    autoclaude_enabled: bool = False
    claimed_at: datetime | None = None
    claimed_by: str | None = None
    attempt_count: int = 0
    last_error: str | None = None
    pr_url: str | None = None
    feedback: str | None = None
    created_at: datetime | None = None

    @property
    def is_feedback_task(self) -> bool:
        """A resolved task that a reviewer sent back with feedback."""
        return bool(self.pr_url) and bool(self.feedback)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Task:
        return cls(
            id=str(row["id"]),
            text=row.get("text") or "",
            project_id=str(row["project_id"]),
            status=row.get("status") or STATUS_TODO,
            kanban_column_id=(
                str(row["kanban_column_id"])
                if row.get("kanban_column_id") is not None
                else None
            ),
            autoclaude_enabled=bool(row.get("autoclaude_enabled")),
            claimed_at=row.get("claimed_at"),
            claimed_by=row.get("claimed_by"),
            attempt_count=row.get("attempt_count") or 0,
            last_error=row.get("last_error"),
            pr_url=row.get("pr_url"),
            feedback=row.get("feedback"),
            created_at=row.get("created_at"),
        )


@dataclass
class TaskWithRepo(Task):
    """A task joined with its project's repository URL."""

    repo_url: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> TaskWithRepo:
        task = Task.from_row(row)
        return cls(**vars(task), repo_url=row.get("repo_url") or "")


@dataclass(frozen=True)
class ColumnRoles:
    """Column ids holding each processing state for one project."""

    backlog: str
    in_progress: str
    resolved: str
