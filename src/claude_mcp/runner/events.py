"""Decoding of Claude CLI ``--output-format stream-json`` lines."""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from claude_mcp.runner.models import (
    AssistantText,
    Completed,
    CompletionStats,
    SessionStarted,
    StreamedEvent,
    Unparseable,
)

REASON_INVALID_JSON = "invalid_json"
REASON_NOT_AN_OBJECT = "not_an_object"
REASON_MISSING_SESSION_ID = "missing_session_id"
REASON_LINE_TOO_LONG = "line_too_long"
REASON_UNRECOGNIZED_PREFIX = "unrecognized_event"

_SESSION_EVENT_TYPES = frozenset({"session"})
_UNKNOWN_ERROR_TYPE = "unknown_error"
# JSON escapes can decode to lone surrogates, which cannot be encoded as UTF-8.
_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


@dataclass(frozen=True, slots=True)
class ParsedLine:
    """Events decoded from one stdout line plus the decoded payload, if any."""

    payload: dict[str, Any] | None
    events: tuple[StreamedEvent, ...]


def parse_line(line: str) -> ParsedLine:
    """Decode one line of streamed output; never raises on bad input."""

    text = line.strip()
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        return ParsedLine(payload=None, events=(Unparseable(raw=text, reason=REASON_INVALID_JSON),))
    if not isinstance(payload, dict):
        return ParsedLine(
            payload=None,
            events=(Unparseable(raw=text, reason=REASON_NOT_AN_OBJECT),),
        )
    return ParsedLine(payload=payload, events=tuple(_decode_payload(payload, text)))


def oversized_line(preview: str) -> ParsedLine:
    """Event for a line dropped because it exceeded the per-line byte limit."""

    return ParsedLine(payload=None, events=(Unparseable(raw=preview, reason=REASON_LINE_TOO_LONG),))


def _decode_payload(payload: dict[str, Any], raw: str) -> list[StreamedEvent]:
    event_type = payload.get("type")

    if event_type == "system" and payload.get("subtype") == "init":
        return _decode_session(payload.get("session_id"), raw)
    if event_type in _SESSION_EVENT_TYPES:
        return _decode_session(payload.get("session_id") or payload.get("id"), raw)

    if event_type == "assistant":
        events: list[StreamedEvent] = _tagged_session(payload)
        events.extend(AssistantText(text=chunk) for chunk in _assistant_text_chunks(payload))
        return events

    if event_type == "result":
        events = _tagged_session(payload)
        events.append(_decode_result(payload))
        return events

    if event_type == "error":
        events = _tagged_session(payload)
        events.append(_decode_error(payload))
        return events

    label = event_type if isinstance(event_type, str) and event_type else "<missing>"
    return [Unparseable(raw=raw, reason=f"{REASON_UNRECOGNIZED_PREFIX}:{label}")]


def _decode_session(value: object, raw: str) -> list[StreamedEvent]:
    if isinstance(value, str) and value.strip():
        return [SessionStarted(session_id=_clean_text(value.strip()))]
    return [Unparseable(raw=raw, reason=REASON_MISSING_SESSION_ID)]


def _tagged_session(payload: dict[str, Any]) -> list[StreamedEvent]:
    # Every stream-json event is stamped with the conversation id.
    value = payload.get("session_id")
    if isinstance(value, str) and value.strip():
        return [SessionStarted(session_id=_clean_text(value.strip()))]
    return []


def _assistant_text_chunks(payload: dict[str, Any]) -> list[str]:
    chunks: list[str] = []
    message = payload.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            chunks.append(content)
        elif isinstance(content, list):
            for block in content:
                if not isinstance(block, dict) or block.get("type") != "text":
                    continue
                text = block.get("text")
                if isinstance(text, str):
                    chunks.append(text)
    text = payload.get("text")
    if isinstance(text, str):
        chunks.append(text)
    return [_clean_text(chunk) for chunk in chunks if chunk]


def _decode_result(payload: dict[str, Any]) -> Completed:
    explicit = payload.get("success")
    if isinstance(explicit, bool):
        success = explicit
    else:
        success = not bool(payload.get("is_error", False))

    result_text = payload.get("result")
    return Completed(
        success=success,
        error_type=None if success else _error_type(payload),
        result_text=_clean_text(result_text) if isinstance(result_text, str) else None,
        stats=_completion_stats(payload),
    )


def _decode_error(payload: dict[str, Any]) -> Completed:
    error = payload.get("error")
    message: str | None = None
    if isinstance(error, dict):
        raw_message = error.get("message")
        message = raw_message if isinstance(raw_message, str) else None
    elif isinstance(error, str):
        message = error
    return Completed(
        success=False,
        error_type=_error_type(payload, fallback="error"),
        result_text=_clean_text(message) if message is not None else None,
    )


def _error_type(payload: dict[str, Any], *, fallback: str = _UNKNOWN_ERROR_TYPE) -> str:
    error_type = payload.get("error_type")
    if isinstance(error_type, str) and error_type:
        return _clean_text(error_type)
    error = payload.get("error")
    if isinstance(error, dict):
        nested = error.get("type")
        if isinstance(nested, str) and nested:
            return _clean_text(nested)
    subtype = payload.get("subtype")
    if isinstance(subtype, str) and subtype and subtype != "success":
        return _clean_text(subtype)
    return fallback


def _completion_stats(payload: dict[str, Any]) -> CompletionStats | None:
    cost = payload.get("total_cost_usd")
    duration = payload.get("duration_ms")
    turns = payload.get("num_turns")
    stats = CompletionStats(
        total_cost_usd=float(cost) if _is_number(cost) else None,
        duration_ms=int(duration) if _is_number(duration) else None,
        num_turns=int(turns) if _is_number(turns) else None,
    )
    if stats == CompletionStats():
        return None
    return stats


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _clean_text(text: str) -> str:
    return _LONE_SURROGATE.sub("\ufffd", text)
