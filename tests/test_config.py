from __future__ import annotations

import json
import logging
from pathlib import Path

import allure
import pytest

from claude_mcp.config import (
    CLAUDE_BIN_ENV,
    CONFIG_FILE_NAME,
    CONFIG_PATH_ENV,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_TIMEOUT_SECONDS,
    Settings,
    load_config_file,
    resolve_config_path,
    resolve_timeout_seconds,
)

pytestmark = [
    allure.epic("Server Setup"),
    allure.feature("Configuration"),
]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.delenv(CLAUDE_BIN_ENV, raising=False)
    monkeypatch.chdir(tmp_path)


def _write_config(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), "utf-8")
    return path


def test_defaults_without_config_file() -> None:
    settings = Settings.from_env()

    assert settings.claude_bin == "claude"
    assert settings.config_path is None
    assert settings.runner.additional_args == ()
    assert settings.runner.timeout_seconds == DEFAULT_TIMEOUT_SECONDS


def test_local_config_file_is_picked_up(tmp_path: Path) -> None:
    _write_config(
        tmp_path / CONFIG_FILE_NAME,
        {"additional_args": ["--model", "sonnet"], "timeout_secs": 120},
    )

    settings = Settings.from_env()

    assert settings.config_path == Path.cwd() / CONFIG_FILE_NAME
    assert settings.runner.additional_args == ("--model", "sonnet")
    assert settings.runner.timeout_seconds == 120


def test_env_config_path_overrides_local_file(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    _write_config(tmp_path / CONFIG_FILE_NAME, {"timeout_secs": 10})
    other = _write_config(tmp_path / "elsewhere.json", {"timeout_secs": 20})
    monkeypatch.setenv(CONFIG_PATH_ENV, str(other))

    assert resolve_config_path() == other
    assert Settings.from_env().runner.timeout_seconds == 20


def test_explicit_config_path_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_path = _write_config(tmp_path / "env.json", {"timeout_secs": 20})
    monkeypatch.setenv(CONFIG_PATH_ENV, str(env_path))
    explicit = _write_config(tmp_path / "explicit.json", {"timeout_secs": 30})

    assert Settings.from_env(config_path=explicit).runner.timeout_seconds == 30


def test_claude_bin_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(CLAUDE_BIN_ENV, " /opt/claude/bin/claude ")

    assert Settings.from_env().claude_bin == "/opt/claude/bin/claude"


def test_additional_args_are_trimmed_and_blanks_dropped(tmp_path: Path) -> None:
    _write_config(
        tmp_path / CONFIG_FILE_NAME,
        {"additional_args": ["  --model ", "", "   ", 7, "opus"]},
    )

    assert Settings.from_env().runner.additional_args == ("--model", "opus")


def test_non_list_additional_args_are_ignored(tmp_path: Path) -> None:
    _write_config(tmp_path / CONFIG_FILE_NAME, {"additional_args": "--model opus"})

    assert Settings.from_env().runner.additional_args == ()


def test_malformed_json_falls_back_to_defaults(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("{not json", "utf-8")

    with caplog.at_level(logging.WARNING, logger="claude_mcp.config"):
        settings = Settings.from_env()

    assert settings.config_path is None
    assert settings.runner.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
    assert "Failed to parse config" in caplog.text


def test_non_object_config_is_ignored(tmp_path: Path) -> None:
    assert load_config_file(_write_config(tmp_path / "list.json", ["--model"])) is None


def test_missing_local_config_file_is_silent(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.WARNING, logger="claude_mcp.config"):
        assert load_config_file(tmp_path / "absent.json") is None

    assert caplog.records == []


def test_missing_explicit_config_path_is_reported(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    missing = tmp_path / "typo.json"

    with caplog.at_level(logging.WARNING, logger="claude_mcp.config"):
        settings = Settings.from_env(config_path=missing)

    assert settings.config_path is None
    assert settings.runner.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
    assert f"Config file {missing} does not exist" in caplog.text


def test_missing_env_config_path_is_reported(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "gone.json"))

    with caplog.at_level(logging.WARNING, logger="claude_mcp.config"):
        Settings.from_env()

    assert "gone.json does not exist" in caplog.text


def test_empty_object_config_is_still_reported_as_source(tmp_path: Path) -> None:
    _write_config(tmp_path / CONFIG_FILE_NAME, {})

    settings = Settings.from_env()

    assert settings.config_path == Path.cwd() / CONFIG_FILE_NAME
    assert settings.describe()[0] == f"config: {Path.cwd() / CONFIG_FILE_NAME}"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, DEFAULT_TIMEOUT_SECONDS),
        (0, DEFAULT_TIMEOUT_SECONDS),
        (-5, DEFAULT_TIMEOUT_SECONDS),
        ("120", DEFAULT_TIMEOUT_SECONDS),
        (True, DEFAULT_TIMEOUT_SECONDS),
        (0.5, 1),
        (90.9, 90),
        (3_600, MAX_TIMEOUT_SECONDS),
        (10_000, MAX_TIMEOUT_SECONDS),
    ],
)
def test_resolve_timeout_seconds(value: object, expected: int) -> None:
    assert resolve_timeout_seconds(value) == expected


def test_describe_lists_resolved_values(tmp_path: Path) -> None:
    _write_config(
        tmp_path / CONFIG_FILE_NAME,
        {"additional_args": ["--model", "opus"], "timeout_secs": 45},
    )

    assert Settings.from_env().describe() == [
        f"config: {Path.cwd() / CONFIG_FILE_NAME}",
        "claude_bin: claude",
        "additional_args: --model opus",
        "timeout_seconds: 45",
    ]


def test_describe_defaults() -> None:
    assert Settings().describe() == [
        "config: <defaults>",
        "claude_bin: claude",
        "additional_args: <none>",
        "timeout_seconds: 600",
    ]
