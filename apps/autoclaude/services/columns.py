"""
Column Role Inference
=====================

Maps a project's kanban columns to the three roles the daemon needs
(backlog, in-progress, resolved) without the UI storing a role field.

Column names are matched case-insensitively against substring patterns; roles
left unmatched fall back to position among the columns not yet taken (first,
middle, last). A project whose roles cannot all be assigned, or whose backlog
column would double as another role, is unavailable and its tasks are not
processed.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.engine import Engine

from autoclaude.core.models import ColumnRoles
from autoclaude.core.store import kanban_columns

BACKLOG_PATTERNS = ("backlog", "todo", "to do", "to-do")
IN_PROGRESS_PATTERNS = ("in progress", "in-progress", "doing", "wip", "working")
RESOLVED_PATTERNS = ("done", "resolved", "complete", "completed", "finished")

# Assignment order matters: a column taken by an earlier role is skipped
ROLE_PATTERNS = (
    ("backlog", BACKLOG_PATTERNS),
    ("in_progress", IN_PROGRESS_PATTERNS),
    ("resolved", RESOLVED_PATTERNS),
)


def classify_columns(columns: Sequence[tuple[str, str]]) -> ColumnRoles | None:
    """
    Infer column roles for one project.

    Args:
        columns: ``(column_id, column_name)`` pairs in position order

    Returns:
        ColumnRoles, or None when a role is still unassigned after fallback or
        the backlog column would also serve as another role
    """
    assigned: dict[str, str] = {}
    taken: set[str] = set()

    for role, patterns in ROLE_PATTERNS:
        for column_id, name in columns:
            if column_id in taken:
                continue
            lowered = (name or "").lower()
            if any(pattern in lowered for pattern in patterns):
                assigned[role] = column_id
                taken.add(column_id)
                break

    ids = [column_id for column_id, _ in columns]
    if ids:
        if "backlog" not in assigned:
            assigned["backlog"] = _first_untaken(ids, taken, ids[0])
            taken.add(assigned["backlog"])
        if "resolved" not in assigned:
            assigned["resolved"] = _first_untaken(ids[::-1], taken, ids[-1])
            taken.add(assigned["resolved"])
        if "in_progress" not in assigned:
            untaken = [i for i in ids if i not in taken]
            if not untaken:
                # Sharing with resolved is tolerated, sharing with backlog is not
                untaken = [i for i in ids if i != assigned["backlog"]]
            if untaken:
                assigned["in_progress"] = untaken[len(untaken) // 2]

    if not all(role in assigned for role, _ in ROLE_PATTERNS):
        return None
    backlog = assigned["backlog"]
    if backlog in (assigned["in_progress"], assigned["resolved"]):
        return None

    return ColumnRoles(
        backlog=backlog,
        in_progress=assigned["in_progress"],
        resolved=assigned["resolved"],
    )


def _first_untaken(ids: Sequence[str], taken: set[str], default: str) -> str:
    return next((i for i in ids if i not in taken), default)


def fetch_project_columns(engine: Engine, project_id: str) -> list[tuple[str, str]]:
    """Read a project's columns in board order."""
    query = (
        select(kanban_columns.c.id, kanban_columns.c.name)
        .where(kanban_columns.c.project_id == project_id)
        .order_by(kanban_columns.c.position, kanban_columns.c.id)
    )
    with engine.connect() as conn:
        return [(str(row.id), row.name) for row in conn.execute(query)]


@dataclass
class _CacheEntry:
    roles: ColumnRoles | None
    expires_at: float


class ColumnRoleCache:
    """
    Per-project cache of inferred roles with a time-to-live.

    Column edits in the UI become visible once the entry expires; that lag is
    bounded by ``ttl_seconds``. Unavailable projects are cached too, so a
    project without columns is not re-queried every cycle.
    """

    def __init__(
        self,
        fetch_columns: Callable[[str], Sequence[tuple[str, str]]],
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_columns = fetch_columns
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    @classmethod
    def for_engine(
        cls,
        engine: Engine,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> ColumnRoleCache:
        return cls(
            lambda project_id: fetch_project_columns(engine, project_id),
            ttl_seconds=ttl_seconds,
            clock=clock,
        )

    def get(self, project_id: str) -> ColumnRoles | None:
        now = self._clock()
        entry = self._entries.get(project_id)
        if entry is not None and now < entry.expires_at:
            return entry.roles

        roles = classify_columns(list(self._fetch_columns(project_id)))
        self._entries[project_id] = _CacheEntry(roles=roles, expires_at=now + self.ttl_seconds)
        return roles

    def invalidate(self, project_id: str | None = None) -> None:
        if project_id is None:
            self._entries.clear()
        else:
            self._entries.pop(project_id, None)
