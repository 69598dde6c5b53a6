"""
Processing Pipeline
===================

Drives one claimed task to a terminal outcome:

    new task:      clone -> branch -> claude -> commit/push -> PR -> resolve
    feedback task: clone -> checkout branch -> claude -> commit/push -> resolve

Every path ends in exactly one terminal coordinator call (``resolve``,
``record_error`` or ``record_feedback_error``). Failures of external steps
(non-zero exit, timeout, invalid repo URL, filesystem errors) are contained to
the task's row. Store errors are not caught here; they reach the poll loop,
which backs off, and the task's lease expires for another attempt.
"""

from __future__ import annotations

import structlog
from structlog.contextvars import bound_contextvars

from autoclaude.core.claude_cli import ClaudeCLI
from autoclaude.core.commands import CommandError
from autoclaude.core.config import DaemonConfig
from autoclaude.core.git_workspace import GitWorkspace, branch_name_for
from autoclaude.core.github_cli import GitHubCLI
from autoclaude.core.models import TaskWithRepo

from .claims import ClaimCoordinator
from .events import EventEmitter, EventType
from .selector import SelectedTask

logger = structlog.get_logger(__name__)

# Errors of a single task's external steps
TASK_STEP_ERRORS = (CommandError, ValueError, OSError)

NO_CHANGES_ERROR = "No changes to commit"
NO_FEEDBACK_CHANGES_ERROR = "No changes made while addressing feedback"

PR_TITLE_MAX = 72


class TaskStepFailed(Exception):
    """A pipeline step failed; the message is recorded on the task."""


def pr_title_for(task: TaskWithRepo) -> str:
    first_line = (task.text.strip().splitlines() or ["Untitled task"])[0].strip()
    if len(first_line) > PR_TITLE_MAX:
        first_line = first_line[: PR_TITLE_MAX - 3].rstrip() + "..."
    return f"[AUTOCLAUDE] {first_line}"


def pr_body_for(task: TaskWithRepo, summary: str) -> str:
    body = f"## Task\n\n{task.text.strip()}\n\n"
    if summary.strip():
        body += f"## Summary\n\n{summary.strip()[:4000]}\n\n"
    body += f"---\nOpened by AUTOCLAUDE for task `{task.id}`."
    return body


def feedback_context_for(task: TaskWithRepo) -> str:
    return (
        f"You previously worked on this task:\n\n{task.text.strip()}\n\n"
        f"A pull request exists at {task.pr_url}. "
        "A reviewer sent it back with feedback. Address the feedback on the "
        "current branch."
    )


class ProcessingPipeline:
    def __init__(
        self,
        coordinator: ClaimCoordinator,
        workspace: GitWorkspace,
        github: GitHubCLI,
        claude: ClaudeCLI,
        events: EventEmitter,
        config: DaemonConfig,
    ):
        self.coordinator = coordinator
        self.workspace = workspace
        self.github = github
        self.claude = claude
        self.events = events
        self.max_retry_attempts = config.max_retry_attempts
        self.cleanup_on_success = config.cleanup_on_success

    def _emit(self, task: TaskWithRepo, event_type: EventType, message: str, **metadata) -> None:
        self.events.emit(task.project_id, event_type, message, task_id=task.id, metadata=metadata)

    def _run_claude(self, task: TaskWithRepo, work_dir, objective: str, context: str | None = None):
        self._emit(task, EventType.RUNNING_CLAUDE, "Running Claude")
        result = self.claude.run(work_dir, objective, context=context)
        if not result.success:
            reason = result.error or "Claude run failed"
            if result.timed_out:
                reason = f"Claude timed out: {reason}"
            raise TaskStepFailed(reason)
        return result

    # ------------------------------------------------------------------
    # New tasks
    # ------------------------------------------------------------------

    def process_new_task(self, selected: SelectedTask) -> bool:
        """
        Implement a claimed backlog task and open a PR for it.

        Returns:
            True if the task was resolved, False if an error was recorded
        """
        task, roles = selected.task, selected.roles
        branch_name = branch_name_for(task.id)

        with bound_contextvars(task_id=task.id, project_id=task.project_id):
            logger.info("Processing new task", attempt=task.attempt_count + 1)
            self._emit(task, EventType.TASK_STARTED, "Started working on task")

            try:
                self._emit(task, EventType.CLONING_REPO, "Cloning repository")
                work_dir = self.workspace.clone_or_pull(task.repo_url, task.id)

                self._emit(task, EventType.CREATING_BRANCH, f"Creating branch {branch_name}")
                self.workspace.create_branch(work_dir, branch_name)

                claude_result = self._run_claude(task, work_dir, task.text)

                self._emit(task, EventType.COMMITTING, "Committing changes")
                commit = self.workspace.commit_and_push(
                    work_dir,
                    f"{pr_title_for(task)}\n\nTask: {task.id}",
                    branch_name,
                    force=True,
                )
                if not commit.committed:
                    raise TaskStepFailed(NO_CHANGES_ERROR)

                self._emit(task, EventType.CREATING_PR, "Opening pull request")
                pr_url = self.github.create_pr(
                    work_dir,
                    pr_title_for(task),
                    pr_body_for(task, claude_result.output),
                    branch_name,
                )
            except (TaskStepFailed, *TASK_STEP_ERRORS) as e:
                self._fail_new_task(task, roles.backlog, str(e))
                return False

            self.coordinator.resolve(task.id, pr_url, roles.resolved)
            self._emit(task, EventType.TASK_COMPLETED, "Pull request opened", pr_url=pr_url)

            if self.cleanup_on_success:
                self.workspace.cleanup(task.id)
            return True

    def _fail_new_task(self, task: TaskWithRepo, backlog_column_id: str, message: str) -> None:
        attempts = self.coordinator.record_error(task.id, message, backlog_column_id)
        self._emit(
            task,
            EventType.TASK_FAILED,
            f"Task failed: {message[:200]}",
            attempt_count=attempts,
            retries_exhausted=attempts >= self.max_retry_attempts,
        )

    # ------------------------------------------------------------------
    # Feedback tasks
    # ------------------------------------------------------------------

    def process_feedback_task(self, selected: SelectedTask) -> bool:
        """
        Address reviewer feedback on an existing task branch.

        On failure the task stays in-progress with its feedback, so it is
        retried as a feedback task rather than restarted from the backlog.
        """
        task, roles = selected.task, selected.roles
        branch_name = branch_name_for(task.id)
        feedback = task.feedback or ""

        with bound_contextvars(task_id=task.id, project_id=task.project_id):
            logger.info("Processing feedback", attempt=task.attempt_count + 1)
            self._emit(task, EventType.FEEDBACK_STARTED, "Addressing feedback")

            try:
                self._emit(task, EventType.CLONING_REPO, "Cloning repository")
                work_dir = self.workspace.clone_or_pull(task.repo_url, task.id)
                self.workspace.checkout_branch(work_dir, branch_name)

                claude_result = self._run_claude(
                    task, work_dir, feedback, context=feedback_context_for(task)
                )

                self._emit(task, EventType.COMMITTING, "Committing feedback changes")
                commit = self.workspace.commit_and_push(
                    work_dir, f"Address review feedback\n\nTask: {task.id}", branch_name
                )
                if not commit.committed:
                    raise TaskStepFailed(NO_FEEDBACK_CHANGES_ERROR)
            except (TaskStepFailed, *TASK_STEP_ERRORS) as e:
                self._fail_feedback_task(task, str(e))
                return False

            self._comment_on_pr(work_dir, branch_name, feedback, claude_result.output)
            pr_url = self.github.get_pr_url(work_dir, branch_name) or task.pr_url or ""

            self.coordinator.clear_feedback(task.id)
            self.coordinator.resolve(task.id, pr_url, roles.resolved)
            self._emit(task, EventType.FEEDBACK_COMPLETED, "Feedback addressed", pr_url=pr_url)

            if self.cleanup_on_success:
                self.workspace.cleanup(task.id)
            return True

    def _comment_on_pr(self, work_dir, branch_name: str, feedback: str, summary: str) -> None:
        comment = f"Addressed feedback:\n\n> {feedback.strip()[:2000]}"
        if summary.strip():
            comment += f"\n\n{summary.strip()[:4000]}"
        try:
            self.github.add_pr_comment(work_dir, branch_name, comment)
        except CommandError as e:
            # The pushed commit is the result; the comment is a courtesy
            logger.warning("Failed to comment on pull request", error=str(e))

    def _fail_feedback_task(self, task: TaskWithRepo, message: str) -> None:
        attempts = self.coordinator.record_feedback_error(task.id, message)
        self._emit(
            task,
            EventType.TASK_FAILED,
            f"Feedback failed: {message[:200]}",
            attempt_count=attempts,
            retries_exhausted=attempts >= self.max_retry_attempts,
            feedback=True,
        )
