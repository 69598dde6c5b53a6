"""
Task Store
==========

SQLAlchemy Core mirror of the tables the daemon touches. The production
schema is created by the UI's migrations; ``create_schema`` exists for local
development databases and tests.

Ids are stored as text so the same statements run against PostgreSQL (uuid
columns, compared against string parameters) and SQLite.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine

metadata = MetaData()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


projects = Table(
    "projects",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", Text, nullable=False, default=""),
    Column("repo_url", Text, nullable=True),
    Column("autoclaude_paused", Boolean, nullable=False, default=True),
)

kanban_columns = Table(
    "kanban_columns",
    metadata,
    Column("id", String(64), primary_key=True),
    Column(
        "project_id",
        String(64),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", Text, nullable=False),
    Column("position", Integer, nullable=False, default=0),
    Index("idx_kanban_columns_project_id", "project_id"),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("text", Text, nullable=False, default=""),
    Column("status", String(32), nullable=False, default="todo"),
    Column(
        "project_id",
        String(64),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("kanban_column_id", String(64), nullable=True),
    Column("autoclaude_enabled", Boolean, nullable=False, default=False),
    Column("claimed_at", DateTime(timezone=True), nullable=True),
    Column("claimed_by", Text, nullable=True),
    Column("attempt_count", Integer, nullable=False, default=0),
    Column("last_error", Text, nullable=True),
    Column("pr_url", Text, nullable=True),
    Column("feedback", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index(
        "idx_tasks_autoclaude_poll",
        "kanban_column_id",
        "autoclaude_enabled",
        "claimed_at",
    ),
)

autoclaude_events = Table(
    "autoclaude_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "task_id",
        String(64),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column(
        "project_id",
        String(64),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("event_type", String(64), nullable=False),
    Column("message", Text, nullable=False),
    Column("metadata", Text, nullable=False, default="{}"),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("daemon_instance", Text, nullable=True),
    Index("idx_autoclaude_events_recent", "created_at"),
)


def create_store_engine(database_url: str, **kwargs) -> Engine:
    """Create the engine shared by the selector, coordinator and event emitter."""
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def create_schema(engine: Engine) -> None:
    """Create the mirrored tables if they do not exist."""
    metadata.create_all(engine)
