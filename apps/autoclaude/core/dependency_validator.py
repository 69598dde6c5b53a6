"""
Dependency Validator
====================

Validates that the external CLIs the daemon shells out to are installed and
authenticated before the poll loop starts. Every cycle would fail the same
way without them, so a failure here stops the process.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .commands import CommandRunner
from .git_executable import find_executable

logger = structlog.get_logger(__name__)


class DependencyValidationError(Exception):
    """A required CLI tool is missing or not authenticated."""


@dataclass(frozen=True)
class DependencyCheck:
    label: str
    tool: str
    args: tuple[str, ...]
    hint: str


DEPENDENCY_CHECKS = (
    DependencyCheck(
        label="claude CLI found",
        tool="claude",
        args=("--version",),
        hint="claude CLI not found. Install with: npm install -g @anthropic-ai/claude-code",
    ),
    DependencyCheck(
        label="git found",
        tool="git",
        args=("--version",),
        hint="git not found. Please install git.",
    ),
    DependencyCheck(
        label="gh CLI found",
        tool="gh",
        args=("--version",),
        hint="gh CLI not found. Install from: https://cli.github.com",
    ),
    DependencyCheck(
        label="gh CLI authenticated",
        tool="gh",
        args=("auth", "status"),
        hint="gh CLI not authenticated. Run: gh auth login",
    ),
)


def validate_cli_dependencies(runner: CommandRunner, timeout: float = 30.0) -> None:
    """
    Run each dependency check in order.

    Raises:
        DependencyValidationError: On the first failing check, carrying the
            install or authentication hint for that tool.
    """
    logger.info("Validating dependencies...")

    for check in DEPENDENCY_CHECKS:
        result = runner.run(find_executable(check.tool), list(check.args), timeout=timeout)
        if not result.ok:
            logger.error("Dependency check failed", check=check.label, detail=result.error_text)
            raise DependencyValidationError(check.hint)
        logger.info(f"  ✓ {check.label}")

    logger.info("All dependencies validated")
