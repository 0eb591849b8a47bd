"""Shared test fixtures."""

from __future__ import annotations

import json
import stat
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

from claude_mcp.config import RunnerSettings, Settings

_FAKE_CLAUDE_TEMPLATE = '''#!{python}
import json
import subprocess
import sys
import time
from pathlib import Path

Path({argv_log!r}).write_text(json.dumps(sys.argv[1:]), "utf-8")
for line in {stdout_lines!r}:
    sys.stdout.write(line + "\\n")
    sys.stdout.flush()
if {stderr!r}:
    sys.stderr.write({stderr!r})
    sys.stderr.flush()
if {orphan_holds!r}:
    subprocess.Popen(
        [sys.executable, "-c", "import time; time.sleep(60)"],
        stdout=subprocess.DEVNULL if {orphan_holds!r} == "stderr" else None,
    )
time.sleep({sleep_seconds!r})
sys.exit({exit_code!r})
'''


@dataclass(slots=True)
class FakeClaude:
    """Executable standing in for the Claude CLI plus the file it logs argv to."""

    path: Path
    argv_log: Path

    def recorded_args(self) -> list[str]:
        return json.loads(self.argv_log.read_text("utf-8"))

    def settings(self, **runner_overrides) -> Settings:
        return Settings(claude_bin=str(self.path), runner=RunnerSettings(**runner_overrides))


FakeClaudeFactory = Callable[..., FakeClaude]


@pytest.fixture()
def fake_claude(tmp_path: Path) -> FakeClaudeFactory:
    """Write a fake `claude` script that replays canned stream-json output."""

    counter = iter(range(1_000))

    def _factory(
        stdout_lines: list[str] | tuple[str, ...] = (),
        *,
        exit_code: int = 0,
        stderr: str = "",
        sleep_seconds: float = 0,
        orphan_holds: str | None = None,
    ) -> FakeClaude:
        index = next(counter)
        script_path = tmp_path / f"fake_claude_{index}"
        argv_log = tmp_path / f"fake_claude_{index}.argv.json"
        script_path.write_text(
            _FAKE_CLAUDE_TEMPLATE.format(
                python=sys.executable,
                argv_log=str(argv_log),
                stdout_lines=list(stdout_lines),
                stderr=stderr,
                orphan_holds=orphan_holds,
                sleep_seconds=sleep_seconds,
                exit_code=exit_code,
            ),
            "utf-8",
        )
        script_path.chmod(script_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return FakeClaude(path=script_path, argv_log=argv_log)

    return _factory


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path
