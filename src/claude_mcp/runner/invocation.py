"""Argument vector construction for Claude CLI runs."""

from __future__ import annotations

from collections.abc import Sequence

from claude_mcp.runner.models import InvalidInputError

DEFAULT_EXECUTABLE = "claude"

# Non-interactive, single-shot, line-delimited JSON events.
# The CLI refuses stream-json together with --print unless --verbose is set.
BASE_FLAGS: tuple[str, ...] = ("--print", "--output-format", "stream-json", "--verbose")

RESUME_FLAG = "--resume"
END_OF_OPTIONS = "--"


def build_run_args(
    *,
    prompt: str,
    session_id: str | None = None,
    additional_args: Sequence[str] = (),
    executable: str = DEFAULT_EXECUTABLE,
) -> list[str]:
    """Return the argv for one run; the prompt is always the last element."""

    if not isinstance(prompt, str) or not prompt.strip():
        raise InvalidInputError("PROMPT is required and must be a non-empty string.")
    if not executable.strip():
        raise InvalidInputError("Claude executable name is empty.")

    argv = [executable, *BASE_FLAGS]
    argv.extend(additional_args)
    if session_id:
        argv.extend([RESUME_FLAG, session_id])
    argv.extend([END_OF_OPTIONS, prompt])
    return argv
