"""Controllers for the operator CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from claude_mcp.config import Settings
from claude_mcp.runner.models import Outcome
from claude_mcp.runner.service import build_task_request, run_task


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for a one-off Claude task."""

    prompt: str
    session_id: str | None
    working_dir: Path | None
    timeout_seconds: int | None
    config_path: Path | None
    as_json: bool = False


@dataclass(slots=True)
class ShowConfigCommand:
    """CLI input for printing the resolved settings."""

    config_path: Path | None


@dataclass(slots=True)
class RunTaskResult:
    """Rendered run output plus the success flag used for the exit code."""

    lines: list[str]
    success: bool


class ClaudeCliController:
    """Executes CLI commands against the runner service."""

    def run(self, command: RunTaskCommand) -> RunTaskResult:
        settings = Settings.from_env(config_path=command.config_path)
        request = build_task_request(
            prompt=command.prompt,
            working_dir=command.working_dir or Path.cwd(),
            settings=settings.runner,
            session_id=command.session_id,
            timeout_seconds=command.timeout_seconds,
        )
        outcome = run_task(request, settings=settings)
        if command.as_json:
            lines = [json.dumps(outcome.to_payload(), ensure_ascii=False, indent=2)]
        else:
            lines = render_outcome_lines(outcome)
        return RunTaskResult(lines=lines, success=outcome.success)

    def show_config(self, command: ShowConfigCommand) -> list[str]:
        return Settings.from_env(config_path=command.config_path).describe()


def render_outcome_lines(outcome: Outcome) -> list[str]:
    """Plain-text rendering of an outcome."""

    lines = [
        f"success: {str(outcome.success).lower()}",
        f"SESSION_ID: {outcome.session_id or '-'}",
    ]
    if outcome.error is not None:
        lines.append(f"error: {outcome.error.kind.value}")
        if outcome.error.classification:
            lines.append(f"classification: {outcome.error.classification}")
        if outcome.error.reason_code:
            lines.append(f"reason_code: {outcome.error.reason_code}")
        if outcome.error.matched_pattern:
            lines.append(f"matched_pattern: {outcome.error.matched_pattern}")
        lines.extend(f"  {part}" for part in outcome.error.detail.splitlines())
    if outcome.stats is not None:
        stats = outcome.stats.to_payload()
        if stats:
            lines.append("stats: " + " ".join(f"{key}={value}" for key, value in stats.items()))
    for warning in outcome.warnings:
        lines.append(f"warning: {warning}")
    if outcome.message:
        lines.append("message:")
        lines.extend(outcome.message.splitlines())
    return lines
