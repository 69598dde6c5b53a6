"""
GitHub CLI Wrapper
==================

Pull request operations through ``gh``. Arguments are passed as an argv list,
so titles, bodies and comments need no shell escaping.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from .commands import CommandError, CommandRunner, check_result
from .git_executable import find_executable

logger = structlog.get_logger(__name__)


class GitHubCLI:
    def __init__(self, runner: CommandRunner, timeout: float = 120.0, gh: str | None = None):
        self.runner = runner
        self.timeout = timeout
        self.gh = gh or find_executable("gh")

    def _gh(self, args: list[str], cwd: Path | None = None):
        return self.runner.run(self.gh, args, cwd=cwd, timeout=self.timeout)

    def create_pr(self, work_dir: Path, title: str, body: str, branch_name: str) -> str:
        """
        Open a pull request for the branch and return its URL.

        If a PR already exists for the branch (a retry after a push that
        succeeded), its URL is returned instead.

        Raises:
            CommandError: If no PR could be created or found
        """
        result = self._gh(
            ["pr", "create", "--title", title, "--body", body, "--head", branch_name],
            cwd=work_dir,
        )
        if result.ok:
            # gh prints the PR URL as the last line
            lines = result.stdout.strip().splitlines()
            return lines[-1].strip() if lines else ""

        if "already exists" in result.error_text:
            existing = self.get_pr_url(work_dir, branch_name)
            if existing:
                logger.info("Reusing existing pull request", branch=branch_name)
                return existing

        raise CommandError(result, f"gh pr create failed: {result.error_text}")

    def get_pr_url(self, work_dir: Path, branch_name: str) -> str | None:
        result = self._gh(
            ["pr", "view", branch_name, "--json", "url", "-q", ".url"], cwd=work_dir
        )
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def add_pr_comment(self, work_dir: Path, branch_name: str, comment: str) -> None:
        result = self._gh(
            ["pr", "comment", branch_name, "--body", comment], cwd=work_dir
        )
        check_result(result, f"gh pr comment failed: {result.error_text}")
