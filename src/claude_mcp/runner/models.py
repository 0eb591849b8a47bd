"""Domain models for Claude CLI runs and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union


class FailureKind(str, Enum):
    """Normalized failure classes reported on a failed outcome."""

    INVALID_INPUT = "invalid_input"
    SPAWN_FAILED = "spawn_failed"
    TIMEOUT = "timeout"
    PROCESS_FAILED = "process_failed"
    SESSION_INIT_FAILED = "session_init_failed"
    EMPTY_RESPONSE = "empty_response"
    EXTERNAL_ERROR = "external_error"


class RunnerError(RuntimeError):
    """Base error raised before a run can produce a result."""

    kind: FailureKind = FailureKind.PROCESS_FAILED


class InvalidInputError(RunnerError, ValueError):
    """Malformed task request, rejected before any process is spawned."""

    kind = FailureKind.INVALID_INPUT


class ProcessSpawnError(RunnerError):
    """The CLI executable could not be started."""

    kind = FailureKind.SPAWN_FAILED


@dataclass(frozen=True, slots=True)
class TaskRequest:
    """One validated invocation of the Claude CLI."""

    prompt: str
    working_dir: Path
    session_id: str | None = None
    additional_args: tuple[str, ...] = ()
    timeout_seconds: int = 600


@dataclass(frozen=True, slots=True)
class CompletionStats:
    """Usage figures reported by the terminal result event."""

    total_cost_usd: float | None = None
    duration_ms: int | None = None
    num_turns: int | None = None

    def to_payload(self) -> dict[str, object]:
        """Serialize only the figures the CLI reported."""

        return {
            key: value
            for key, value in (
                ("total_cost_usd", self.total_cost_usd),
                ("duration_ms", self.duration_ms),
                ("num_turns", self.num_turns),
            )
            if value is not None
        }


@dataclass(frozen=True, slots=True)
class AssistantText:
    """One text chunk produced by the assistant."""

    text: str


@dataclass(frozen=True, slots=True)
class SessionStarted:
    """Conversation identifier announced by the CLI."""

    session_id: str


@dataclass(frozen=True, slots=True)
class Completed:
    """Terminal result event."""

    success: bool
    error_type: str | None = None
    result_text: str | None = None
    stats: CompletionStats | None = None


@dataclass(frozen=True, slots=True)
class Unparseable:
    """A line that could not be mapped onto a known event."""

    raw: str
    reason: str


StreamedEvent = Union[AssistantText, SessionStarted, Completed, Unparseable]


@dataclass(slots=True)
class RunResult:
    """State folded from the event stream of one run."""

    session_id: str | None = None
    agent_messages: list[str] = field(default_factory=list)
    all_messages: list[dict[str, Any]] = field(default_factory=list)
    completed: bool = False
    error_type: str | None = None
    error_detail: str | None = None
    stats: CompletionStats | None = None
    unparseable: list[Unparseable] = field(default_factory=list)
    agent_messages_bytes: int = 0
    agent_messages_truncated: bool = False
    all_messages_bytes: int = 0
    all_messages_truncated: bool = False


@dataclass(frozen=True, slots=True)
class ProcessExitInfo:
    """How the CLI process ended."""

    exit_code: int | None
    timed_out: bool
    stderr: str = ""
    duration_seconds: float = 0.0
    timeout_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class OutcomeError:
    """Structured error attached to a failed outcome."""

    kind: FailureKind
    detail: str
    classification: str | None = None
    reason_code: str | None = None
    matched_pattern: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"kind": self.kind.value, "detail": self.detail}
        if self.classification is not None:
            payload["classification"] = self.classification
        if self.reason_code is not None:
            payload["reason_code"] = self.reason_code
        if self.matched_pattern is not None:
            payload["matched_pattern"] = self.matched_pattern
        return payload


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of one tool call, ready to be serialized by the transport."""

    success: bool
    session_id: str | None = None
    message: str = ""
    error: OutcomeError | None = None
    warnings: tuple[str, ...] = ()
    agent_messages_truncated: bool = False
    stats: CompletionStats | None = None

    def __post_init__(self) -> None:
        if self.success and (not self.session_id or not self.message):
            raise ValueError("A successful outcome needs a session id and a message.")
        if not self.success and self.error is None:
            raise ValueError("A failed outcome needs an error.")

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        detail: str,
        *,
        session_id: str | None = None,
        message: str = "",
        warnings: tuple[str, ...] = (),
        classification: str | None = None,
        reason_code: str | None = None,
    ) -> Outcome:
        """Build a failed outcome with a structured error."""

        return cls(
            success=False,
            session_id=session_id,
            message=message,
            error=OutcomeError(
                kind=kind,
                detail=detail,
                classification=classification,
                reason_code=reason_code,
            ),
            warnings=warnings,
        )

    def to_payload(self) -> dict[str, object]:
        """Serialize into the tool response shape."""

        payload: dict[str, object] = {
            "success": self.success,
            "SESSION_ID": self.session_id or "",
            "message": self.message,
        }
        if self.error is not None:
            payload["error"] = self.error.to_payload()
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.agent_messages_truncated:
            payload["agent_messages_truncated"] = True
        if self.stats is not None:
            stats = self.stats.to_payload()
            if stats:
                payload["stats"] = stats
        return payload
