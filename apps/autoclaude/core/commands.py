"""
Command Runner
==============

Single seam through which the daemon invokes external CLIs (git, gh, claude).

The pipeline only depends on exit codes and output text, so every call site
goes through a ``CommandRunner``. Tests substitute a scripted runner; the
daemon uses ``SubprocessCommandRunner``.

A command that times out or cannot be started is reported as a failed
``CommandResult`` (returncode -1) rather than an exception, the same way a
non-zero exit is.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

# Seconds between SIGTERM and SIGKILL for a timed-out command
DEFAULT_TERMINATE_GRACE = 10.0


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def error_text(self) -> str:
        """Best description of a failure for ``last_error``."""
        return (
            self.stderr.strip()
            or self.stdout.strip()
            or f"Exit code: {self.returncode}"
        )


class CommandError(Exception):
    """An external command exited non-zero, timed out, or could not start."""

    def __init__(self, result: CommandResult, message: str | None = None):
        self.result = result
        super().__init__(message or result.error_text)


def check_result(result: CommandResult, message: str | None = None) -> CommandResult:
    """Raise CommandError unless the command succeeded."""
    if not result.ok:
        raise CommandError(result, message)
    return result


class CommandRunner(Protocol):
    """Capability to run an external command."""

    def run(
        self,
        cmd: str,
        args: list[str],
        cwd: Path | str | None = None,
        timeout: float | None = None,
        env: dict | None = None,
        input_data: str | None = None,
    ) -> CommandResult: ...


@dataclass
class SubprocessCommandRunner:
    """
    Runs commands with ``subprocess.Popen``.

    On timeout the process gets SIGTERM, then SIGKILL if it has not exited
    after ``terminate_grace`` seconds.
    """

    terminate_grace: float = DEFAULT_TERMINATE_GRACE
    default_env: dict | None = field(default=None, repr=False)

    def run(
        self,
        cmd: str,
        args: list[str],
        cwd: Path | str | None = None,
        timeout: float | None = None,
        env: dict | None = None,
        input_data: str | None = None,
    ) -> CommandResult:
        argv = [cmd] + list(args)
        logger.debug("Running command", cmd=cmd, argc=len(args), cwd=str(cwd))

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.PIPE if input_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=env if env is not None else self.default_env,
            )
        except FileNotFoundError:
            return CommandResult(
                args=argv,
                returncode=-1,
                stderr=f"Executable not found: {cmd}. Please ensure it is installed and in PATH.",
            )
        except OSError as e:
            return CommandResult(
                args=argv, returncode=-1, stderr=f"Failed to start {cmd}: {e}"
            )

        try:
            stdout, stderr = proc.communicate(input=input_data, timeout=timeout)
        except subprocess.TimeoutExpired:
            stdout, stderr = self._terminate(proc)
            logger.warning("Command timed out", cmd=cmd, timeout=timeout)
            return CommandResult(
                args=argv,
                returncode=-1,
                stdout=stdout or "",
                stderr=f"Command timed out after {timeout} seconds",
                timed_out=True,
            )

        return CommandResult(
            args=argv,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    def _terminate(self, proc: subprocess.Popen) -> tuple[str, str]:
        proc.terminate()
        try:
            return proc.communicate(timeout=self.terminate_grace)
        except subprocess.TimeoutExpired:
            proc.kill()
            return proc.communicate()
