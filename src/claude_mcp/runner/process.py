"""Subprocess runner that streams Claude CLI output through the event parser."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from claude_mcp.runner.accumulator import (
    DEFAULT_MAX_AGENT_MESSAGE_BYTES,
    DEFAULT_MAX_ALL_MESSAGE_BYTES,
    ResultAccumulator,
)
from claude_mcp.runner.events import ParsedLine, oversized_line, parse_line
from claude_mcp.runner.models import (
    InvalidInputError,
    ProcessExitInfo,
    ProcessSpawnError,
    RunResult,
    Unparseable,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINE_BYTES = 1024 * 1024
DEFAULT_MAX_STDERR_BYTES = 1024 * 1024
DEFAULT_KILL_GRACE_SECONDS = 2.0

STDERR_TRUNCATED_MARKER = "[... stderr truncated due to size limit ...]"

_STDERR_READ_CHUNK = 64 * 1024
_LINE_PREVIEW_CHARS = 200
_USE_PROCESS_GROUP = os.name == "posix"


class ProcessRunner:
    """Run one Claude CLI process and fold its stdout into a ``RunResult``."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        max_stderr_bytes: int = DEFAULT_MAX_STDERR_BYTES,
        max_agent_message_bytes: int = DEFAULT_MAX_AGENT_MESSAGE_BYTES,
        max_all_message_bytes: int = DEFAULT_MAX_ALL_MESSAGE_BYTES,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    ) -> None:
        self._max_line_bytes = max_line_bytes
        self._max_stderr_bytes = max_stderr_bytes
        self._max_agent_message_bytes = max_agent_message_bytes
        self._max_all_message_bytes = max_all_message_bytes
        self._kill_grace_seconds = kill_grace_seconds

    def run(
        self,
        argv: Sequence[str],
        *,
        working_dir: Path,
        timeout_seconds: float,
    ) -> tuple[RunResult, ProcessExitInfo]:
        """Spawn ``argv`` and stream its output until exit or timeout.

        Raises ``ProcessSpawnError`` when the process cannot be started. Every
        other failure is reported through the returned ``ProcessExitInfo``.
        """

        if not argv:
            raise InvalidInputError("Empty argument vector.")
        if timeout_seconds <= 0:
            raise InvalidInputError(f"Timeout must be positive, got {timeout_seconds!r}.")

        process = self._spawn(argv, working_dir=working_dir)
        started = time.monotonic()
        logger.info(
            "Claude CLI started: pid=%s executable=%s cwd=%s timeout=%ss",
            process.pid,
            argv[0],
            working_dir,
            timeout_seconds,
        )

        accumulator = ResultAccumulator(
            max_agent_message_bytes=self._max_agent_message_bytes,
            max_all_message_bytes=self._max_all_message_bytes,
        )
        stderr_collector = _StderrCollector(process.stderr, max_bytes=self._max_stderr_bytes)
        watchdog = _Watchdog(
            process,
            timeout_seconds=timeout_seconds,
            grace_seconds=self._kill_grace_seconds,
        )
        stderr_collector.start()
        watchdog.start()

        exit_code: int | None = None
        try:
            self._consume_stdout(process.stdout, accumulator)
            exit_code = process.wait()
        finally:
            watchdog.cancel()
            if process.poll() is None:
                _terminate_process(process, grace_seconds=self._kill_grace_seconds)
                exit_code = process.returncode
            if not stderr_collector.wait(timeout=self._kill_grace_seconds):
                # A descendant that outlived the leader still holds stderr open.
                logger.warning(
                    "Claude CLI descendants still hold stderr after exit, killing group pid=%s",
                    process.pid,
                )
                _kill_group(process)
            stderr = stderr_collector.join(timeout=self._kill_grace_seconds)
            _close_pipes(process, stderr_in_use=stderr_collector.is_alive())

        duration = time.monotonic() - started
        timed_out = watchdog.fired
        if timed_out:
            logger.warning(
                "Claude CLI timed out after %.1fs (limit %ss), pid=%s",
                duration,
                timeout_seconds,
                process.pid,
            )
        else:
            logger.info(
                "Claude CLI exited: pid=%s exit_code=%s elapsed=%.1fs",
                process.pid,
                exit_code,
                duration,
            )

        return accumulator.state, ProcessExitInfo(
            exit_code=exit_code,
            timed_out=timed_out,
            stderr=stderr,
            duration_seconds=duration,
            timeout_seconds=int(timeout_seconds),
        )

    def _spawn(self, argv: Sequence[str], *, working_dir: Path) -> subprocess.Popen[bytes]:
        if not working_dir.is_dir():
            raise ProcessSpawnError(f"Working directory does not exist: {working_dir}")
        try:
            return subprocess.Popen(  # noqa: S603
                list(argv),
                cwd=working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=_USE_PROCESS_GROUP,
            )
        except FileNotFoundError as error:
            raise ProcessSpawnError(f"Claude CLI executable not found: {argv[0]}") from error
        except PermissionError as error:
            raise ProcessSpawnError(f"Claude CLI executable is not runnable: {argv[0]}") from error
        except OSError as error:
            raise ProcessSpawnError(f"Failed to spawn Claude CLI: {error}") from error

    def _consume_stdout(self, stream: IO[bytes] | None, accumulator: ResultAccumulator) -> None:
        if stream is None:  # pragma: no cover
            return
        while True:
            try:
                raw, too_long = _read_bounded_line(stream, self._max_line_bytes)
            except (OSError, ValueError) as error:
                logger.warning("Failed to read Claude CLI stdout: %s", error)
                self._feed(
                    accumulator,
                    ParsedLine(
                        payload=None,
                        events=(Unparseable(raw=str(error), reason="stdout_read_error"),),
                    ),
                )
                return
            if not raw:
                return

            text = raw.decode("utf-8", errors="replace")
            if too_long:
                logger.warning(
                    "Dropped stdout line above %d bytes from Claude CLI",
                    self._max_line_bytes,
                )
                self._feed(accumulator, oversized_line(text[:_LINE_PREVIEW_CHARS]))
                continue

            if not text.strip():
                continue
            self._feed(accumulator, parse_line(text))

    def _feed(self, accumulator: ResultAccumulator, parsed: ParsedLine) -> None:
        accumulator.feed(parsed)
        for event in parsed.events:
            logger.debug("Claude CLI event: %s", type(event).__name__)


class _Watchdog:
    """Terminates the process once the wall-clock timeout expires."""

    def __init__(
        self,
        process: subprocess.Popen[bytes],
        *,
        timeout_seconds: float,
        grace_seconds: float,
    ) -> None:
        self._process = process
        self._grace_seconds = grace_seconds
        self._lock = threading.Lock()
        self._cancelled = False
        self._fired = False
        self._timer = threading.Timer(timeout_seconds, self._expire)
        self._timer.daemon = True

    @property
    def fired(self) -> bool:
        with self._lock:
            return self._fired

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
        self._timer.cancel()
        if self._timer.is_alive():
            # Expiry already running: let the kill finish before pipes are closed.
            self._timer.join(timeout=self._grace_seconds * 2 + 1)

    def _expire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._fired = True
        # The leader may be gone while a descendant still holds stdout open.
        _terminate_process(self._process, grace_seconds=self._grace_seconds)


class _StderrCollector:
    """Drains stderr on a background thread into a bounded buffer."""

    def __init__(self, stream: IO[bytes] | None, *, max_bytes: int) -> None:
        self._stream = stream
        self._max_bytes = max_bytes
        self._lines: list[str] = []
        self._size = 0
        self._truncated = False
        self._thread = threading.Thread(target=self._drain, daemon=True, name="claude-stderr")

    def start(self) -> None:
        self._thread.start()

    def wait(self, *, timeout: float) -> bool:
        """Wait for stderr to reach EOF; False if it is still open."""

        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, *, timeout: float) -> str:
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Claude CLI stderr reader did not finish within %.1fs", timeout)
        return "\n".join(self._lines)

    def _drain(self) -> None:
        if self._stream is None:  # pragma: no cover
            return
        try:
            for raw in iter(lambda: self._stream.readline(_STDERR_READ_CHUNK), b""):
                self._append(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
        except (OSError, ValueError) as error:
            logger.warning("Failed to read Claude CLI stderr: %s", error)

    def _append(self, line: str) -> None:
        # Keep reading after the limit is hit so the child never blocks on a full pipe.
        if self._truncated:
            return
        size = len(line.encode("utf-8")) + 1
        if self._size + size > self._max_bytes:
            self._lines.append(STDERR_TRUNCATED_MARKER)
            self._truncated = True
            return
        self._size += size
        self._lines.append(line)


def _read_bounded_line(stream: IO[bytes], max_bytes: int) -> tuple[bytes, bool]:
    line = stream.readline(max_bytes + 1)
    if len(line) <= max_bytes or line.endswith(b"\n"):
        return line, False
    while True:
        rest = stream.readline(max_bytes)
        if not rest or rest.endswith(b"\n"):
            break
    return line[:max_bytes], True


def _terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float) -> None:
    try:
        _send_signal(process, signal.SIGTERM)
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        pass
    # Children that outlived the leader would keep the stdout pipe open.
    try:
        _send_signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        logger.error("Claude CLI pid=%s did not exit after SIGKILL", process.pid)


def _kill_group(process: subprocess.Popen[bytes]) -> None:
    try:
        _send_signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
    except OSError as error:
        logger.debug("Failed to kill Claude CLI process group: %s", error)


def _send_signal(process: subprocess.Popen[bytes], sig: int) -> None:
    if _USE_PROCESS_GROUP:
        try:
            os.killpg(process.pid, sig)
            return
        except ProcessLookupError:
            if process.poll() is not None:
                return
        except PermissionError:
            pass
    if process.poll() is None:
        process.send_signal(sig)


def _close_pipes(process: subprocess.Popen[bytes], *, stderr_in_use: bool = False) -> None:
    streams = [process.stdout]
    if stderr_in_use:
        # Closing a buffered reader blocks on the lock held by the reading thread.
        logger.warning("Leaving Claude CLI stderr pipe to the still running reader thread")
    else:
        streams.append(process.stderr)
    for stream in streams:
        if stream is None:
            continue
        try:
            stream.close()
        except OSError as error:
            logger.debug("Failed to close Claude CLI pipe: %s", error)
