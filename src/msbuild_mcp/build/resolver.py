"""Build tool resolution.

The launcher only depends on the ToolResolver protocol. Two resolvers are
provided:
1. StaticToolResolver - an explicitly configured executable
2. EnvironmentToolResolver - MSBUILD_PATH / MSBUILD_TOOL, then `dotnet` or
   `msbuild` on PATH

Searching Visual Studio, Mono or Rider install locations is left to callers
that supply their own resolver.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from .state import BuildTool

logger = logging.getLogger(__name__)


class ToolResolver(Protocol):
    """Locates the build tool executable."""

    def resolve(self) -> tuple[str, BuildTool] | None:
        """Return (executable_path, tool), or None if no tool was found."""
        ...


def guess_tool(executable: str) -> BuildTool:
    """Infer the invocation convention from an executable path.

    `dotnet`/`dotnet.exe` is the CLI wrapper; anything else is treated as a
    standalone MSBuild (Visual Studio on Windows, Mono elsewhere).
    """
    name = Path(executable).name.lower()
    if name.startswith("dotnet"):
        return BuildTool.DOTNET_CLI
    return BuildTool.MSBUILD_VS if os.name == "nt" else BuildTool.MSBUILD_MONO


def parse_tool(value: str) -> BuildTool:
    """Parse a BuildTool from its value or name (case-insensitive).

    Raises:
        ValueError: If value names no BuildTool
    """
    normalized = value.strip().lower()
    for tool in BuildTool:
        if normalized in (tool.value, tool.name.lower()):
            return tool
    valid = ", ".join(tool.value for tool in BuildTool)
    raise ValueError(f"Unknown build tool: {value} (expected one of: {valid})")


class StaticToolResolver:
    """Resolver returning a fixed executable."""

    def __init__(self, executable: str, tool: BuildTool | None = None):
        self.executable = executable
        self.tool = tool or guess_tool(executable)

    def resolve(self) -> tuple[str, BuildTool] | None:
        return self.executable, self.tool


class EnvironmentToolResolver:
    """Resolver driven by environment variables and PATH.

    Search order:
    1. MSBUILD_PATH (with MSBUILD_TOOL, or guessed from the file name)
    2. `dotnet` on PATH (CLI wrapper)
    3. `msbuild` on PATH (standalone)
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ

    def resolve(self) -> tuple[str, BuildTool] | None:
        env = os.environ if self._environ is None else self._environ
        search_path = env.get("PATH")

        explicit = env.get("MSBUILD_PATH")
        if explicit:
            tool_value = env.get("MSBUILD_TOOL")
            tool = parse_tool(tool_value) if tool_value else guess_tool(explicit)
            logger.debug(f"Using MSBUILD_PATH: {explicit} ({tool.value})")
            return explicit, tool

        dotnet = shutil.which("dotnet", path=search_path)
        if dotnet:
            logger.debug(f"Found dotnet on PATH: {dotnet}")
            return dotnet, BuildTool.DOTNET_CLI

        msbuild = shutil.which("msbuild", path=search_path)
        if msbuild:
            logger.debug(f"Found msbuild on PATH: {msbuild}")
            return msbuild, guess_tool(msbuild)

        logger.debug("No build tool found")
        return None
