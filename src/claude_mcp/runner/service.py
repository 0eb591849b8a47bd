"""Request validation and end-to-end execution of one Claude task."""

from __future__ import annotations

import logging
from pathlib import Path

from claude_mcp.config import RunnerSettings, Settings, resolve_timeout_seconds
from claude_mcp.runner.classifier import classify_outcome
from claude_mcp.runner.invocation import build_run_args
from claude_mcp.runner.models import (
    FailureKind,
    InvalidInputError,
    Outcome,
    ProcessSpawnError,
    TaskRequest,
)
from claude_mcp.runner.process import ProcessRunner

logger = logging.getLogger(__name__)


def build_task_request(
    *,
    prompt: str,
    working_dir: Path,
    settings: RunnerSettings,
    session_id: str | None = None,
    timeout_seconds: int | None = None,
) -> TaskRequest:
    """Validate caller input and freeze it together with the operator settings."""

    if not isinstance(prompt, str) or not prompt.strip():
        raise InvalidInputError("PROMPT is required and must be a non-empty string.")

    try:
        resolved_dir = working_dir.resolve(strict=True)
    except OSError as error:
        raise InvalidInputError(
            f"working directory does not exist or is not accessible: {working_dir} ({error})",
        ) from error
    if not resolved_dir.is_dir():
        raise InvalidInputError(f"working directory is not a directory: {working_dir}")

    return TaskRequest(
        prompt=prompt,
        working_dir=resolved_dir,
        # An empty string means "start a new session", never a resume token.
        session_id=session_id or None,
        additional_args=tuple(settings.additional_args),
        timeout_seconds=resolve_timeout_seconds(
            timeout_seconds if timeout_seconds is not None else settings.timeout_seconds,
        ),
    )


def build_runner(settings: RunnerSettings) -> ProcessRunner:
    """Create a process runner configured with the operator limits."""

    return ProcessRunner(
        max_line_bytes=settings.max_line_bytes,
        max_stderr_bytes=settings.max_stderr_bytes,
        max_agent_message_bytes=settings.max_agent_message_bytes,
        max_all_message_bytes=settings.max_all_message_bytes,
        kill_grace_seconds=settings.kill_grace_seconds,
    )


def run_task(
    request: TaskRequest,
    *,
    settings: Settings,
    runner: ProcessRunner | None = None,
) -> Outcome:
    """Run the Claude CLI for ``request`` and classify what happened."""

    argv = build_run_args(
        prompt=request.prompt,
        session_id=request.session_id,
        additional_args=request.additional_args,
        executable=settings.claude_bin,
    )
    active_runner = runner or build_runner(settings.runner)

    logger.info(
        "Running Claude task: resume=%s extra_args=%d cwd=%s",
        request.session_id is not None,
        len(request.additional_args),
        request.working_dir,
    )
    try:
        result, exit_info = active_runner.run(
            argv,
            working_dir=request.working_dir,
            timeout_seconds=request.timeout_seconds,
        )
    except ProcessSpawnError as error:
        logger.error("Claude CLI could not be started: %s", error)
        return Outcome.failure(FailureKind.SPAWN_FAILED, str(error))

    outcome = classify_outcome(result, exit_info)
    if outcome.success:
        logger.info("Claude task succeeded: session_id=%s", outcome.session_id)
    else:
        logger.warning(
            "Claude task failed: kind=%s session_id=%s",
            outcome.error.kind.value if outcome.error is not None else None,
            outcome.session_id,
        )
    return outcome
