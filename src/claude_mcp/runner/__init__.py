"""Subprocess execution and stream-json interpretation for the Claude CLI.

The package is split the way a run flows through it: ``invocation`` builds
the argument vector, ``process`` spawns the CLI and reads its stdout line by
line, ``events`` decodes each line into typed events, ``accumulator`` folds
them into a ``RunResult`` and ``classifier`` turns the frozen result plus the
exit status into the ``Outcome`` handed back to the caller.
"""

from claude_mcp.runner.models import (
    FailureKind,
    InvalidInputError,
    Outcome,
    OutcomeError,
    ProcessExitInfo,
    ProcessSpawnError,
    RunnerError,
    RunResult,
    TaskRequest,
)

__all__ = [
    "FailureKind",
    "InvalidInputError",
    "Outcome",
    "OutcomeError",
    "ProcessExitInfo",
    "ProcessSpawnError",
    "RunResult",
    "RunnerError",
    "TaskRequest",
]
