"""MCP server exposing the ``claude`` tool over stdio."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from claude_mcp.config import Settings
from claude_mcp.runner.models import InvalidInputError
from claude_mcp.runner.service import build_task_request, run_task

logger = logging.getLogger(__name__)

SERVER_NAME = "claude-mcp"
SERVER_INSTRUCTIONS = (
    "This server provides a claude tool for AI-assisted coding tasks. "
    "Use the claude tool to execute coding tasks via the Claude CLI."
)

mcp = FastMCP(SERVER_NAME, instructions=SERVER_INSTRUCTIONS)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings are resolved once per server process."""

    settings = Settings.from_env()
    logger.info("Loaded settings: %s", "; ".join(settings.describe()))
    return settings


@mcp.tool(name="claude", description="Execute Claude CLI for AI-assisted coding tasks")
async def claude(
    PROMPT: Annotated[  # noqa: N803
        str,
        Field(description="Instruction for the task to send to Claude."),
    ],
    SESSION_ID: Annotated[  # noqa: N803
        str | None,
        Field(
            description=(
                "Resume a previously started Claude CLI session. Must be the exact "
                "SESSION_ID returned by an earlier claude tool call. Omit the field "
                "entirely to start a new session; never pass an empty string."
            ),
        ),
    ] = None,
) -> dict[str, Any]:
    """Run a non-interactive Claude CLI session in the server's working directory.

    Returns:
        Dict with structure:
        {
            "success": bool,
            "SESSION_ID": str,     # pass back to resume the conversation
            "message": str,        # assistant text, chunks joined by newlines
            "error": {             # only on failure
                "kind": str,
                "detail": str,
                "classification": str,  # error type reported by the CLI
                "reason_code": str      # stderr-based hint on process failures
            },
            "warnings": list[str]  # skipped stream lines, stderr on success
        }
    """

    settings = get_settings()
    try:
        request = build_task_request(
            prompt=PROMPT,
            working_dir=Path.cwd(),
            settings=settings.runner,
            session_id=SESSION_ID,
        )
    except InvalidInputError as error:
        raise ToolError(str(error)) from error
    except OSError as error:
        raise ToolError(f"failed to resolve current working directory: {error}") from error

    outcome = await asyncio.to_thread(run_task, request, settings=settings)
    return outcome.to_payload()


def serve() -> None:
    """Serve the MCP protocol on stdin/stdout until the client disconnects."""

    get_settings()
    mcp.run(transport="stdio")
