"""
Claude Code CLI
===============

Single-shot invocation of the ``claude`` CLI inside a task workspace.

The prompt is written to stdin and the CLI is asked for its JSON result
envelope, which is validated with pydantic. A run counts as successful only
when the process exits zero and the envelope does not report an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .commands import CommandRunner
from .git_executable import find_executable

logger = structlog.get_logger(__name__)


class ClaudeRunOutput(BaseModel):
    """Result envelope printed by ``claude --print --output-format json``."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field("result", description="Message type, 'result' for the final envelope")
    subtype: str | None = Field(None, description="'success' or an error subtype")
    is_error: bool = Field(False, description="Whether the run ended in an error")
    result: str = Field("", description="Final assistant text")
    session_id: str | None = None
    num_turns: int | None = None
    duration_ms: int | None = None
    total_cost_usd: float | None = None


@dataclass
class ClaudeResult:
    success: bool
    output: str
    error: str | None = None
    timed_out: bool = False
    cost_usd: float | None = None


def build_prompt(objective: str, context: str | None = None) -> str:
    if context:
        return f"{context}\n\n---\n\nTask: {objective}"
    return objective


class ClaudeCLI:
    def __init__(
        self,
        runner: CommandRunner,
        model: str = "sonnet",
        timeout: float = 600.0,
        claude: str | None = None,
    ):
        self.runner = runner
        self.model = model
        self.timeout = timeout
        self.claude = claude or find_executable("claude")

    def run(self, work_dir: Path, objective: str, context: str | None = None) -> ClaudeResult:
        """Run one prompt to completion in ``work_dir``."""
        args = [
            "--print",
            "--output-format",
            "json",
            "--model",
            self.model,
            # Required for unattended runs; the workspace is a throwaway clone
            "--dangerously-skip-permissions",
        ]
        logger.info("Running claude", model=self.model, cwd=str(work_dir))

        result = self.runner.run(
            self.claude,
            args,
            cwd=work_dir,
            timeout=self.timeout,
            input_data=build_prompt(objective, context),
        )

        envelope = self._parse_output(result.stdout)
        output = envelope.result if envelope else result.stdout

        if not result.ok:
            return ClaudeResult(
                success=False,
                output=output,
                error=result.error_text,
                timed_out=result.timed_out,
            )

        if envelope is not None and envelope.is_error:
            return ClaudeResult(
                success=False,
                output=output,
                error=envelope.result or f"Claude run ended with {envelope.subtype}",
                cost_usd=envelope.total_cost_usd,
            )

        return ClaudeResult(
            success=True,
            output=output,
            cost_usd=envelope.total_cost_usd if envelope else None,
        )

    @staticmethod
    def _parse_output(stdout: str) -> ClaudeRunOutput | None:
        text = stdout.strip()
        if not text:
            return None
        try:
            return ClaudeRunOutput.model_validate_json(text)
        except ValidationError:
            logger.debug("Claude output is not a JSON envelope, using raw text")
            return None
