"""Combine the folded run result and the process exit into one ``Outcome``."""

from __future__ import annotations

from collections import Counter

from claude_mcp.runner.events import REASON_INVALID_JSON, REASON_UNRECOGNIZED_PREFIX
from claude_mcp.runner.failure_hints import hint_for_process_failure
from claude_mcp.runner.models import (
    FailureKind,
    Outcome,
    OutcomeError,
    ProcessExitInfo,
    RunResult,
    Unparseable,
)

MESSAGE_SEPARATOR = "\n"

_MAX_WARNING_SAMPLES = 3
_SAMPLE_PREVIEW_CHARS = 120
_STDOUT_TAIL_LINES = 20


def classify_outcome(result: RunResult, exit_info: ProcessExitInfo) -> Outcome:
    """Decide the final outcome; the first matching rule wins."""

    warnings = unparseable_warnings(result.unparseable)
    message = MESSAGE_SEPARATOR.join(result.agent_messages)
    stderr = exit_info.stderr.strip()

    error: OutcomeError | None = None
    if exit_info.timed_out:
        error = OutcomeError(
            kind=FailureKind.TIMEOUT,
            detail=f"Claude execution timed out after {exit_info.timeout_seconds} seconds",
        )
    elif exit_info.exit_code != 0 and not result.completed:
        hint = hint_for_process_failure(
            exit_code=exit_info.exit_code,
            stderr=stderr,
            stdout_tail=_plain_stdout_tail(result.unparseable),
        )
        detail = f"claude command failed with exit code: {exit_info.exit_code}"
        if stderr:
            detail = f"{detail}\nStderr: {stderr}"
        error = OutcomeError(
            kind=FailureKind.PROCESS_FAILED,
            detail=detail,
            reason_code=hint.reason_code,
            matched_pattern=hint.matched_pattern,
        )
    elif result.completed and result.error_type is not None:
        detail = f"Claude error: {result.error_detail or result.error_type}"
        if stderr:
            detail = f"{detail}\nStderr: {stderr}"
        error = OutcomeError(
            kind=FailureKind.EXTERNAL_ERROR,
            detail=detail,
            classification=result.error_type,
        )
    elif not result.session_id:
        error = OutcomeError(
            kind=FailureKind.SESSION_INIT_FAILED,
            detail="Failed to get SESSION_ID from the Claude session.",
        )
    elif not result.agent_messages:
        error = OutcomeError(
            kind=FailureKind.EMPTY_RESPONSE,
            detail="No agent_messages returned; check Claude CLI output.",
        )

    if error is None:
        if exit_info.exit_code != 0:
            warnings = (
                *warnings,
                f"claude exited with code {exit_info.exit_code} after reporting completion",
            )
        if stderr:
            warnings = (*warnings, f"Stderr: {stderr}")
        return Outcome(
            success=True,
            session_id=result.session_id,
            message=message,
            warnings=warnings,
            agent_messages_truncated=result.agent_messages_truncated,
            stats=result.stats,
        )

    return Outcome(
        success=False,
        session_id=result.session_id,
        message=message,
        error=error,
        warnings=warnings,
        agent_messages_truncated=result.agent_messages_truncated,
        stats=result.stats,
    )


def unparseable_warnings(entries: list[Unparseable]) -> tuple[str, ...]:
    """Summarize skipped lines as non-fatal warnings, one per reason."""

    if not entries:
        return ()

    by_reason: dict[str, list[Unparseable]] = {}
    for entry in entries:
        by_reason.setdefault(entry.reason, []).append(entry)

    warnings: list[str] = []
    unrecognized: Counter[str] = Counter()
    for reason, group in by_reason.items():
        if reason.startswith(f"{REASON_UNRECOGNIZED_PREFIX}:"):
            unrecognized[reason.split(":", 1)[1]] += len(group)
            continue
        samples = "; ".join(_preview(entry.raw) for entry in group[:_MAX_WARNING_SAMPLES])
        warnings.append(f"Skipped {len(group)} stdout line(s) ({reason}): {samples}")

    if unrecognized:
        kinds = ", ".join(f"{kind} x{count}" for kind, count in sorted(unrecognized.items()))
        warnings.append(f"Ignored unrecognized stream events: {kinds}")
    return tuple(warnings)


def _plain_stdout_tail(entries: list[Unparseable]) -> str:
    # Non-JSON stdout is where the CLI prints errors such as "API Error: 529".
    plain = [entry.raw for entry in entries if entry.reason == REASON_INVALID_JSON]
    return "\n".join(plain[-_STDOUT_TAIL_LINES:])


def _preview(raw: str) -> str:
    if len(raw) <= _SAMPLE_PREVIEW_CHARS:
        return raw
    return f"{raw[:_SAMPLE_PREVIEW_CHARS]}..."
