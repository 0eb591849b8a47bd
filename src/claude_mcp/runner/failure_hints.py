"""Deterministic hints for why the Claude CLI exited with an error."""

from __future__ import annotations

from dataclasses import dataclass

_AGENT = "claude"

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "payment",
    "credit balance",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
    "please run /login",
    "oauth token",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_SESSION_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "no conversation found",
    "session not found",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "overloaded",
    "429",
    "529",
    "try again later",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "connection reset",
    "connection refused",
    "network error",
    "econnreset",
    "etimedout",
    "could not resolve host",
)

_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
    ("access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
    ("model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    ("session_not_found", _SESSION_NOT_FOUND_PATTERNS),
    ("rate_limit_transient", _RATE_LIMIT_PATTERNS),
    ("backend_transient", _GENERIC_TRANSIENT_PATTERNS),
)


@dataclass(frozen=True, slots=True)
class FailureHint:
    """Pattern-based diagnosis of a failed CLI run."""

    reason_code: str
    matched_pattern: str | None = None


def hint_for_process_failure(
    *,
    exit_code: int | None,
    stderr: str,
    stdout_tail: str = "",
) -> FailureHint:
    """Map stderr and trailing unparsed stdout onto a stable reason code, first rule wins."""

    haystack = f"{stderr}\n{stdout_tail}".lower()
    for rule, patterns in _RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return FailureHint(reason_code=f"{_AGENT}_{rule}", matched_pattern=pattern)

    if exit_code is not None and exit_code < 0:
        return FailureHint(reason_code=f"{_AGENT}_killed_by_signal")

    return FailureHint(reason_code=f"{_AGENT}_non_retryable")


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
