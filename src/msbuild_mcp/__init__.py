"""MCP server and library for launching MSBuild builds."""

__version__ = "0.1.0"
