"""Runtime configuration for the Claude MCP server."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from claude_mcp.runner.accumulator import (
    DEFAULT_MAX_AGENT_MESSAGE_BYTES,
    DEFAULT_MAX_ALL_MESSAGE_BYTES,
)
from claude_mcp.runner.invocation import DEFAULT_EXECUTABLE
from claude_mcp.runner.process import (
    DEFAULT_KILL_GRACE_SECONDS,
    DEFAULT_MAX_LINE_BYTES,
    DEFAULT_MAX_STDERR_BYTES,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "claude-mcp.config.json"
CONFIG_PATH_ENV = "CLAUDE_MCP_CONFIG_PATH"
CLAUDE_BIN_ENV = "CLAUDE_BIN"

DEFAULT_TIMEOUT_SECONDS = 600
MAX_TIMEOUT_SECONDS = 3_600


@dataclass(slots=True)
class RunnerSettings:
    """Per-run limits and operator-supplied CLI flags."""

    additional_args: tuple[str, ...] = ()
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    max_stderr_bytes: int = DEFAULT_MAX_STDERR_BYTES
    max_agent_message_bytes: int = DEFAULT_MAX_AGENT_MESSAGE_BYTES
    max_all_message_bytes: int = DEFAULT_MAX_ALL_MESSAGE_BYTES
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS


@dataclass(slots=True)
class Settings:
    """Application settings."""

    claude_bin: str = DEFAULT_EXECUTABLE
    config_path: Path | None = None
    runner: RunnerSettings = field(default_factory=RunnerSettings)

    @classmethod
    def from_env(cls, config_path: Path | None = None) -> Settings:
        """Load settings from the environment and the optional JSON config file."""

        explicit = config_path is not None or bool(os.getenv(CONFIG_PATH_ENV, "").strip())
        resolved_path = config_path or resolve_config_path()
        loaded: dict[str, object] | None = None
        if resolved_path is not None:
            loaded = load_config_file(resolved_path, explicit=explicit)
        file_config = loaded or {}
        claude_bin = os.getenv(CLAUDE_BIN_ENV, "").strip() or DEFAULT_EXECUTABLE

        return cls(
            claude_bin=claude_bin,
            config_path=resolved_path if loaded is not None else None,
            runner=RunnerSettings(
                additional_args=_clean_additional_args(file_config.get("additional_args")),
                timeout_seconds=resolve_timeout_seconds(file_config.get("timeout_secs")),
            ),
        )

    def describe(self) -> list[str]:
        """Human-readable summary for the CLI."""

        source = str(self.config_path) if self.config_path is not None else "<defaults>"
        args = " ".join(self.runner.additional_args) or "<none>"
        return [
            f"config: {source}",
            f"claude_bin: {self.claude_bin}",
            f"additional_args: {args}",
            f"timeout_seconds: {self.runner.timeout_seconds}",
        ]


def resolve_config_path() -> Path | None:
    """Return the explicit config path from the environment, else the local default."""

    env_path = os.getenv(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path)
    try:
        return Path.cwd() / CONFIG_FILE_NAME
    except OSError:
        return None


def load_config_file(path: Path, *, explicit: bool = False) -> dict[str, object] | None:
    """Read the JSON config file; None when it is absent or unusable.

    A missing file is only worth a warning when the operator named it explicitly.
    """

    if not path.is_file():
        if explicit:
            logger.warning("Config file %s does not exist, using defaults", path)
        return None
    try:
        payload = json.loads(path.read_text("utf-8"))
    except OSError as error:
        logger.warning("Failed to read config %s: %s", path, error)
        return None
    except (json.JSONDecodeError, RecursionError) as error:
        logger.warning("Failed to parse config %s: %s", path, error)
        return None
    if not isinstance(payload, dict):
        logger.warning("Ignoring config %s: expected a JSON object", path)
        return None
    return payload


def resolve_timeout_seconds(value: object) -> int:
    """Default missing or non-positive timeouts and clamp large ones."""

    if isinstance(value, bool) or not isinstance(value, int | float):
        if value is not None:
            logger.warning("Ignoring non-numeric timeout_secs: %r", value)
        return DEFAULT_TIMEOUT_SECONDS
    if value <= 0:
        return DEFAULT_TIMEOUT_SECONDS
    return max(1, min(int(value), MAX_TIMEOUT_SECONDS))


def _clean_additional_args(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        logger.warning("Ignoring additional_args: expected a list of strings, got %r", value)
        return ()
    cleaned: list[str] = []
    for item in value:
        if not isinstance(item, str):
            logger.warning("Ignoring non-string additional_args entry: %r", item)
            continue
        stripped = item.strip()
        if stripped:
            cleaned.append(stripped)
    return tuple(cleaned)
