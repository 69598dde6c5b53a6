#!/usr/bin/env python3
"""
Tests for dependency_validator module.

Tests cover:
- Every CLI check runs in order when all tools are present
- The first failing check stops validation with its install/auth hint
- Executables are resolved through find_executable
"""

from unittest.mock import patch

import pytest

from autoclaude.core.dependency_validator import (
    DEPENDENCY_CHECKS,
    DependencyValidationError,
    validate_cli_dependencies,
)

# =============================================================================
# TESTS FOR validate_cli_dependencies
# =============================================================================


@pytest.fixture(autouse=True)
def bare_executables():
    """Resolve tools to their bare names so argv prefixes are predictable."""
    with patch("autoclaude.core.dependency_validator.find_executable", side_effect=lambda name: name):
        yield


class TestValidateCliDependencies:
    """Tests for validate_cli_dependencies function."""

    def test_all_checks_pass(self, runner):
        validate_cli_dependencies(runner)

        assert runner.argvs() == [
            ["claude", "--version"],
            ["git", "--version"],
            ["gh", "--version"],
            ["gh", "auth", "status"],
        ]

    def test_missing_claude_stops_immediately(self, runner):
        runner.script(["claude"], returncode=-1, stderr="Executable not found: claude")

        with pytest.raises(DependencyValidationError, match="npm install -g @anthropic-ai/claude-code"):
            validate_cli_dependencies(runner)

        assert runner.argvs() == [["claude", "--version"]]

    def test_missing_git(self, runner):
        runner.script(["git"], returncode=127)

        with pytest.raises(DependencyValidationError, match="git not found"):
            validate_cli_dependencies(runner)

    def test_missing_gh(self, runner):
        runner.script(["gh", "--version"], returncode=127)

        with pytest.raises(DependencyValidationError, match="cli.github.com"):
            validate_cli_dependencies(runner)

    def test_gh_not_authenticated(self, runner):
        """gh installed but logged out should point at `gh auth login`."""
        runner.script(["gh", "auth", "status"], returncode=1, stderr="You are not logged into any GitHub hosts")

        with pytest.raises(DependencyValidationError, match="gh auth login"):
            validate_cli_dependencies(runner)

    def test_timeout_is_passed_through(self, runner):
        validate_cli_dependencies(runner, timeout=5.0)

        assert {call.timeout for call in runner.calls} == {5.0}

    def test_timed_out_check_fails(self, runner):
        runner.script(["claude"], returncode=-1, timed_out=True)

        with pytest.raises(DependencyValidationError):
            validate_cli_dependencies(runner)


class TestDependencyChecks:
    """Tests for the check table itself."""

    def test_every_check_has_a_hint(self):
        for check in DEPENDENCY_CHECKS:
            assert check.hint, f"{check.label} needs a hint"

    def test_authentication_checked_after_install(self):
        labels = [check.label for check in DEPENDENCY_CHECKS]
        assert labels.index("gh CLI found") < labels.index("gh CLI authenticated")
