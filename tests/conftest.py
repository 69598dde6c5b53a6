#!/usr/bin/env python3
"""
Pytest Configuration and Shared Fixtures
=========================================

Provides common test fixtures for the AUTOCLAUDE daemon test suite.
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest

# Add apps directory to path so the autoclaude package imports
sys.path.insert(0, str(Path(__file__).parent.parent / "apps"))

from sqlalchemy import insert, select  # noqa: E402

from autoclaude.core.commands import CommandResult  # noqa: E402
from autoclaude.core.config import DaemonConfig  # noqa: E402
from autoclaude.core.store import (  # noqa: E402
    create_schema,
    create_store_engine,
    kanban_columns,
    projects,
    tasks,
)

START_TIME = datetime(2025, 1, 6, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# CLOCK
# =============================================================================


class FakeClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    """Monotonic seconds counter for TTL and interval checks."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> float:
        self.value += seconds
        return self.value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


# =============================================================================
# STORE
# =============================================================================


@pytest.fixture
def engine(tmp_path: Path) -> Generator:
    """File-backed SQLite store with the schema created."""
    store_engine = create_store_engine(f"sqlite:///{tmp_path / 'store.db'}")
    create_schema(store_engine)
    yield store_engine
    store_engine.dispose()


class StoreSeeder:
    """Inserts projects, columns and tasks for tests."""

    def __init__(self, engine, clock: FakeClock):
        self.engine = engine
        self.clock = clock
        self._created = 0

    def project(
        self,
        project_id: str = "p1",
        repo_url: str | None = "https://github.com/acme/widgets",
        paused: bool = False,
        columns: list[tuple[str, str]] | None = None,
    ) -> str:
        with self.engine.begin() as conn:
            conn.execute(
                insert(projects).values(
                    id=project_id,
                    name=f"Project {project_id}",
                    repo_url=repo_url,
                    autoclaude_paused=paused,
                )
            )
        if columns is None:
            columns = [
                (f"{project_id}-c1", "Backlog"),
                (f"{project_id}-c2", "Doing"),
                (f"{project_id}-c3", "Done"),
            ]
        self.columns(project_id, columns)
        return project_id

    def columns(self, project_id: str, columns: list[tuple[str, str]]) -> None:
        if not columns:
            return
        with self.engine.begin() as conn:
            conn.execute(
                insert(kanban_columns),
                [
                    {"id": column_id, "project_id": project_id, "name": name, "position": i}
                    for i, (column_id, name) in enumerate(columns)
                ],
            )

    def task(
        self,
        task_id: str,
        project_id: str = "p1",
        column_id: str | None = None,
        text: str = "Add a health check endpoint",
        enabled: bool = True,
        **values,
    ) -> str:
        # Distinct creation times keep selection order deterministic
        self._created += 1
        values.setdefault("created_at", self.clock.now + timedelta(seconds=self._created))
        with self.engine.begin() as conn:
            conn.execute(
                insert(tasks).values(
                    id=task_id,
                    project_id=project_id,
                    kanban_column_id=column_id or f"{project_id}-c1",
                    text=text,
                    autoclaude_enabled=enabled,
                    **values,
                )
            )
        return task_id

    def get_task(self, task_id: str) -> dict:
        with self.engine.connect() as conn:
            row = conn.execute(select(tasks).where(tasks.c.id == task_id)).one()
        return dict(row._mapping)


@pytest.fixture
def seed(engine, clock) -> StoreSeeder:
    return StoreSeeder(engine, clock)


@pytest.fixture
def config(tmp_path: Path) -> DaemonConfig:
    return DaemonConfig(
        database_url="sqlite://",
        work_dir=tmp_path / "work",
        instance_id="instance-a",
        poll_interval_ms=10_000,
        max_backoff_ms=300_000,
    )


# =============================================================================
# COMMAND RUNNER
# =============================================================================


@dataclass
class RecordedCall:
    cmd: str
    args: list[str]
    cwd: object = None
    timeout: float | None = None
    env: dict | None = None
    input_data: str | None = None

    @property
    def argv(self) -> list[str]:
        return [self.cmd] + list(self.args)


@dataclass
class FakeCommandRunner:
    """
    Scripted CommandRunner.

    ``script(prefix, ...)`` registers a response for commands whose argv starts
    with ``prefix``; the most recently registered match wins. Unscripted
    commands succeed with empty output.
    """

    calls: list[RecordedCall] = field(default_factory=list)
    _responses: list[tuple[tuple[str, ...], Callable]] = field(default_factory=list)

    def script(
        self,
        prefix: list[str],
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        side_effect: Callable | None = None,
    ) -> None:
        def respond(call: RecordedCall) -> CommandResult:
            if side_effect is not None:
                side_effect(call)
            return CommandResult(
                args=call.argv,
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
                timed_out=timed_out,
            )

        self._responses.append((tuple(prefix), respond))

    def run(self, cmd, args, cwd=None, timeout=None, env=None, input_data=None):
        call = RecordedCall(cmd, list(args), cwd, timeout, env, input_data)
        self.calls.append(call)
        for prefix, respond in reversed(self._responses):
            if tuple(call.argv[: len(prefix)]) == prefix:
                return respond(call)
        return CommandResult(args=call.argv, returncode=0)

    def argvs(self) -> list[list[str]]:
        return [call.argv for call in self.calls]

    def called(self, prefix: list[str]) -> bool:
        return any(argv[: len(prefix)] == prefix for argv in self.argvs())


@pytest.fixture
def runner() -> FakeCommandRunner:
    return FakeCommandRunner()
