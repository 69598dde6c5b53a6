"""
Task Workspaces
===============

Git operations on the per-task clone used by the processing pipeline.

Each task gets ``<work_dir>/<task_id>/<repo_name>``. A workspace left behind by
an earlier attempt is reused (reset to the default branch and pulled); a
directory that is not a usable checkout is removed and cloned again, so
workspaces are never orphaned across attempts.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path

import structlog

from .commands import CommandResult, CommandRunner, check_result
from .git_executable import find_executable, get_isolated_git_env

logger = structlog.get_logger(__name__)

BRANCH_PREFIX = "autoclaude/task-"

# Only GitHub/GitLab HTTPS or SSH remotes are cloned
VALID_REPO_URL_PATTERNS = [
    re.compile(r"^https://github\.com/[\w.-]+/[\w.-]+(?:\.git)?$"),
    re.compile(r"^https://gitlab\.com/[\w.-]+/[\w.-]+(?:\.git)?$"),
    re.compile(r"^git@github\.com:[\w.-]+/[\w.-]+(?:\.git)?$"),
    re.compile(r"^git@gitlab\.com:[\w.-]+/[\w.-]+(?:\.git)?$"),
]

_BRANCH_NAME_RE = re.compile(r"^[\w\-/]+$")
_PATH_COMPONENT_RE = re.compile(r"^[\w\-]+$")

FALLBACK_DEFAULT_BRANCHES = ["main", "master", "develop"]


def validate_repo_url(url: str) -> bool:
    return any(pattern.match(url) for pattern in VALID_REPO_URL_PATTERNS)


def validate_branch_name(branch_name: str) -> None:
    if not _BRANCH_NAME_RE.match(branch_name):
        raise ValueError(f"Invalid branch name: {branch_name}")


def branch_name_for(task_id: str) -> str:
    """Deterministic branch name for a task, shared by every attempt."""
    return f"{BRANCH_PREFIX}{task_id}"


def repo_name_from_url(repo_url: str) -> str:
    name = repo_url.rstrip("/").split("/")[-1].split(":")[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or "repo"


@dataclass
class CommitResult:
    committed: bool
    message: str | None = None


class GitWorkspace:
    """Clone, branch, commit and push inside per-task directories."""

    def __init__(
        self,
        runner: CommandRunner,
        work_root: Path,
        timeout: float = 300.0,
        git: str | None = None,
    ):
        self.runner = runner
        self.work_root = Path(work_root)
        self.timeout = timeout
        self.git = git or find_executable("git")

    def _git(
        self, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> CommandResult:
        result = self.runner.run(
            self.git,
            args,
            cwd=cwd,
            timeout=self.timeout,
            env=get_isolated_git_env(),
        )
        if check:
            check_result(result, f"git {args[0]} failed: {result.error_text}")
        return result

    def task_dir(self, task_id: str) -> Path:
        if not _PATH_COMPONENT_RE.match(task_id):
            raise ValueError(f"Invalid task id for workspace path: {task_id}")
        return self.work_root / task_id

    def repo_dir(self, repo_url: str, task_id: str) -> Path:
        return self.task_dir(task_id) / repo_name_from_url(repo_url)

    def get_default_branch(self, work_dir: Path) -> str:
        result = self._git(
            ["symbolic-ref", "refs/remotes/origin/HEAD", "--short"],
            cwd=work_dir,
            check=False,
        )
        if result.ok and result.stdout.strip():
            return result.stdout.strip().removeprefix("origin/")

        for branch in FALLBACK_DEFAULT_BRANCHES:
            verify = self._git(
                ["rev-parse", "--verify", f"origin/{branch}"],
                cwd=work_dir,
                check=False,
            )
            if verify.ok:
                return branch
        return "main"

    def clone_or_pull(self, repo_url: str, task_id: str) -> Path:
        """
        Return an up-to-date checkout of the repository for this task.

        Raises:
            ValueError: If the repository URL is not an accepted remote
            CommandError: If clone, checkout or pull fails
        """
        if not validate_repo_url(repo_url):
            raise ValueError(f"Invalid repository URL format: {repo_url}")

        work_dir = self.repo_dir(repo_url, task_id)

        if work_dir.exists() and not (work_dir / ".git").exists():
            logger.warning("Removing unusable workspace", task_id=task_id)
            shutil.rmtree(work_dir, ignore_errors=True)

        if work_dir.exists():
            logger.info("Pulling latest changes", task_id=task_id)
            default_branch = self.get_default_branch(work_dir)
            self._git(["checkout", default_branch], cwd=work_dir)
            self._git(["pull"], cwd=work_dir)
        else:
            logger.info("Cloning repository", task_id=task_id)
            work_dir.parent.mkdir(parents=True, exist_ok=True)
            self._git(["clone", repo_url, str(work_dir)])

        return work_dir

    def create_branch(self, work_dir: Path, branch_name: str) -> None:
        """Create a fresh branch, replacing a leftover local one from a retry."""
        validate_branch_name(branch_name)

        if self._git(["checkout", "-b", branch_name], cwd=work_dir, check=False).ok:
            return

        logger.info("Branch exists, recreating from default branch", branch=branch_name)
        default_branch = self.get_default_branch(work_dir)
        self._git(["checkout", default_branch], cwd=work_dir)
        self._git(["branch", "-D", branch_name], cwd=work_dir, check=False)
        self._git(["checkout", "-b", branch_name], cwd=work_dir)

    def checkout_branch(self, work_dir: Path, branch_name: str) -> None:
        """Check out an existing task branch and sync it with the remote."""
        validate_branch_name(branch_name)

        # The branch may not exist on the remote yet
        self._git(["fetch", "origin", branch_name], cwd=work_dir, check=False)

        if not self._git(["checkout", branch_name], cwd=work_dir, check=False).ok:
            self._git(
                ["checkout", "-b", branch_name, f"origin/{branch_name}"], cwd=work_dir
            )

        pull = self._git(
            ["pull", "--rebase", "origin", branch_name], cwd=work_dir, check=False
        )
        if not pull.ok:
            logger.info(
                "Could not pull latest, proceeding with local state",
                branch=branch_name,
            )

    def commit_and_push(
        self, work_dir: Path, message: str, branch_name: str, force: bool = False
    ) -> CommitResult:
        """
        Stage everything, commit and push the branch.

        With ``force`` the push uses ``--force-with-lease``, so a branch rebuilt
        from the default branch on a retry replaces the one an earlier attempt
        pushed. Feedback pushes stay fast-forward only.
        """
        validate_branch_name(branch_name)

        self._git(["add", "-A"], cwd=work_dir)

        # Exit code 0 means nothing is staged
        staged = self._git(["diff", "--staged", "--quiet"], cwd=work_dir, check=False)
        if staged.ok:
            logger.info("No changes to commit", branch=branch_name)
            return CommitResult(committed=False, message="No changes to commit")

        self._git(["commit", "-m", message], cwd=work_dir)
        push = ["push", "-u", "origin", branch_name]
        if force:
            push.insert(1, "--force-with-lease")
        self._git(push, cwd=work_dir)
        return CommitResult(committed=True)

    def cleanup(self, task_id: str) -> None:
        task_dir = self.task_dir(task_id)
        if task_dir.exists():
            shutil.rmtree(task_dir, ignore_errors=True)
