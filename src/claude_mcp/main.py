"""CLI entrypoint for claude-mcp."""

import logging
import sys
from pathlib import Path

import rich_click as click

from claude_mcp import __version__
from claude_mcp.controllers import ClaudeCliController, RunTaskCommand, ShowConfigCommand
from claude_mcp.runner.models import InvalidInputError
from claude_mcp.server import serve

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ClaudeCliController()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="claude-mcp")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level. Logs always go to stderr; stdout carries the MCP stream.",
)
def claude_mcp(log_level: str) -> None:
    """MCP server wrapping the `claude` CLI."""

    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT, stream=sys.stderr)


@claude_mcp.command("serve")
def serve_command() -> None:
    """Serve the `claude` tool over MCP stdio."""

    serve()


@claude_mcp.command("run")
@click.argument("prompt")
@click.option(
    "--session-id",
    default=None,
    help="Resume this Claude session. Omit to start a new one.",
)
@click.option(
    "--cwd",
    "working_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Working directory for the Claude CLI. Defaults to the current directory.",
)
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Override the configured timeout (clamped to 3600).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file path. Defaults to CLAUDE_MCP_CONFIG_PATH or ./claude-mcp.config.json.",
)
@click.option(
    "--json/--no-json",
    "as_json",
    default=False,
    show_default=True,
    help="Print the raw tool payload as JSON.",
)
def run_command(  # noqa: PLR0913
    prompt: str,
    session_id: str | None,
    working_dir: Path | None,
    timeout_seconds: int | None,
    config_path: Path | None,
    as_json: bool,
) -> None:
    """Run one Claude task directly, without the MCP transport."""

    try:
        result = CONTROLLER.run(
            RunTaskCommand(
                prompt=prompt,
                session_id=session_id,
                working_dir=working_dir,
                timeout_seconds=timeout_seconds,
                config_path=config_path,
                as_json=as_json,
            ),
        )
    except InvalidInputError as error:
        raise click.UsageError(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Claude task failed.")


@claude_mcp.command("config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file path. Defaults to CLAUDE_MCP_CONFIG_PATH or ./claude-mcp.config.json.",
)
def config_command(config_path: Path | None) -> None:
    """Show the resolved configuration."""

    _emit_lines(CONTROLLER.show_config(ShowConfigCommand(config_path=config_path)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    claude_mcp()
