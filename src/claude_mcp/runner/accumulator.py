"""Fold streamed events into the running ``RunResult``."""

from __future__ import annotations

import json
from typing import Any

from claude_mcp.runner.events import ParsedLine
from claude_mcp.runner.models import (
    AssistantText,
    Completed,
    RunResult,
    SessionStarted,
    StreamedEvent,
    Unparseable,
)

AGENT_MESSAGES_TRUNCATED_MARKER = "[... Agent messages truncated due to size limit ...]"

DEFAULT_MAX_AGENT_MESSAGE_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_ALL_MESSAGE_BYTES = 50 * 1024 * 1024


class ResultAccumulator:
    """Owns the ``RunResult`` of one run while its output is streaming."""

    def __init__(
        self,
        *,
        max_agent_message_bytes: int = DEFAULT_MAX_AGENT_MESSAGE_BYTES,
        max_all_message_bytes: int = DEFAULT_MAX_ALL_MESSAGE_BYTES,
    ) -> None:
        self.state = RunResult()
        self._max_agent_message_bytes = max_agent_message_bytes
        self._max_all_message_bytes = max_all_message_bytes

    def feed(self, parsed: ParsedLine) -> None:
        """Apply every event decoded from one line, logging its payload first."""

        if parsed.payload is not None:
            record_payload(self.state, parsed.payload, max_bytes=self._max_all_message_bytes)
        for event in parsed.events:
            if isinstance(event, Unparseable) and parsed.payload is not None:
                # Decoded but unrecognized: the payload itself is already in the log.
                self.state.unparseable.append(event)
                continue
            apply_event(
                self.state,
                event,
                max_agent_message_bytes=self._max_agent_message_bytes,
                max_all_message_bytes=self._max_all_message_bytes,
            )


def apply_event(
    state: RunResult,
    event: StreamedEvent,
    *,
    max_agent_message_bytes: int = DEFAULT_MAX_AGENT_MESSAGE_BYTES,
    max_all_message_bytes: int = DEFAULT_MAX_ALL_MESSAGE_BYTES,
) -> RunResult:
    """Apply one event to ``state`` and return it."""

    if isinstance(event, SessionStarted):
        if not state.session_id:
            state.session_id = event.session_id
    elif isinstance(event, AssistantText):
        _append_agent_message(state, event.text, max_bytes=max_agent_message_bytes)
    elif isinstance(event, Completed):
        state.completed = True
        state.error_type = event.error_type
        state.error_detail = event.result_text if not event.success else None
        if event.stats is not None:
            state.stats = event.stats
    elif isinstance(event, Unparseable):
        state.unparseable.append(event)
        record_payload(
            state,
            {"type": "unparseable", "reason": event.reason, "raw": event.raw},
            max_bytes=max_all_message_bytes,
        )
    else:  # pragma: no cover
        raise TypeError(f"Unsupported stream event: {event!r}")
    return state


def record_payload(state: RunResult, payload: dict[str, Any], *, max_bytes: int) -> None:
    """Append a decoded line to the diagnostic log within its byte limit."""

    if state.all_messages_truncated:
        return
    size = len(json.dumps(payload, ensure_ascii=False))
    if state.all_messages_bytes + size > max_bytes:
        state.all_messages_truncated = True
        return
    state.all_messages_bytes += size
    state.all_messages.append(payload)


def _append_agent_message(state: RunResult, text: str, *, max_bytes: int) -> None:
    if state.agent_messages_truncated:
        return
    size = len(text.encode("utf-8", "replace"))
    if state.agent_messages_bytes + size > max_bytes:
        state.agent_messages.append(AGENT_MESSAGES_TRUNCATED_MARKER)
        state.agent_messages_truncated = True
        return
    state.agent_messages_bytes += size
    state.agent_messages.append(text)
