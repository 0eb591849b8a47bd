"""MCP server exposing the Claude CLI as a single coding-task tool."""

__version__ = "0.1.0"
