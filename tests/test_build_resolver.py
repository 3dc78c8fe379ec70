"""Tests for build tool resolution."""

import os

import pytest

from msbuild_mcp.build.resolver import (
    EnvironmentToolResolver,
    StaticToolResolver,
    guess_tool,
    parse_tool,
)
from msbuild_mcp.build.state import BuildTool


def _make_executable(directory, name):
    """Create an executable file that shutil.which() will find."""
    if os.name == "nt":
        name += ".exe"
    path = directory / name
    path.write_text("")
    path.chmod(0o755)
    return str(path)


class TestGuessTool:
    """Tests for guess_tool."""

    def test_dotnet_is_cli(self):
        """Test dotnet executables are the CLI wrapper."""
        assert guess_tool("/usr/share/dotnet/dotnet") == BuildTool.DOTNET_CLI
        assert guess_tool("C:/Program Files/dotnet/dotnet.exe") == BuildTool.DOTNET_CLI

    def test_msbuild_is_standalone(self):
        """Test msbuild executables are standalone."""
        tool = guess_tool("/usr/bin/msbuild")
        assert tool.requires_verb is False


class TestParseTool:
    """Tests for parse_tool."""

    def test_by_value(self):
        """Test parsing by enum value."""
        assert parse_tool("dotnet_cli") == BuildTool.DOTNET_CLI

    def test_by_name_case_insensitive(self):
        """Test parsing by enum name in any case."""
        assert parse_tool("MSBUILD_VS") == BuildTool.MSBUILD_VS
        assert parse_tool(" JetBrains_MSBuild ") == BuildTool.JETBRAINS_MSBUILD

    def test_unknown(self):
        """Test unknown tools are rejected."""
        with pytest.raises(ValueError, match="Unknown build tool"):
            parse_tool("xbuild")


class TestStaticToolResolver:
    """Tests for StaticToolResolver."""

    def test_returns_configured(self):
        """Test resolver returns the configured executable and tool."""
        resolver = StaticToolResolver("/opt/msbuild", BuildTool.JETBRAINS_MSBUILD)
        assert resolver.resolve() == ("/opt/msbuild", BuildTool.JETBRAINS_MSBUILD)

    def test_guesses_tool(self):
        """Test tool is guessed when not given."""
        resolver = StaticToolResolver("/usr/bin/dotnet")
        assert resolver.resolve() == ("/usr/bin/dotnet", BuildTool.DOTNET_CLI)


class TestEnvironmentToolResolver:
    """Tests for EnvironmentToolResolver."""

    def test_msbuild_path_wins(self, tmp_path):
        """Test MSBUILD_PATH is used before PATH lookup."""
        _make_executable(tmp_path, "dotnet")
        resolver = EnvironmentToolResolver(
            {"MSBUILD_PATH": "/opt/vs/MSBuild.exe", "PATH": str(tmp_path)}
        )

        path, tool = resolver.resolve()

        assert path == "/opt/vs/MSBuild.exe"
        assert tool.requires_verb is False

    def test_msbuild_tool_override(self):
        """Test MSBUILD_TOOL selects the invocation convention."""
        resolver = EnvironmentToolResolver(
            {"MSBUILD_PATH": "/opt/wrapper", "MSBUILD_TOOL": "dotnet_cli"}
        )
        assert resolver.resolve() == ("/opt/wrapper", BuildTool.DOTNET_CLI)

    def test_invalid_msbuild_tool(self):
        """Test invalid MSBUILD_TOOL raises ValueError."""
        resolver = EnvironmentToolResolver(
            {"MSBUILD_PATH": "/opt/msbuild", "MSBUILD_TOOL": "nope"}
        )
        with pytest.raises(ValueError):
            resolver.resolve()

    def test_prefers_dotnet_on_path(self, tmp_path):
        """Test dotnet on PATH is preferred over msbuild."""
        dotnet = _make_executable(tmp_path, "dotnet")
        _make_executable(tmp_path, "msbuild")

        resolver = EnvironmentToolResolver({"PATH": str(tmp_path)})
        path, tool = resolver.resolve()

        assert os.path.normcase(path) == os.path.normcase(dotnet)
        assert tool == BuildTool.DOTNET_CLI

    def test_falls_back_to_msbuild(self, tmp_path):
        """Test msbuild on PATH is used when dotnet is absent."""
        msbuild = _make_executable(tmp_path, "msbuild")

        resolver = EnvironmentToolResolver({"PATH": str(tmp_path)})
        path, tool = resolver.resolve()

        assert os.path.normcase(path) == os.path.normcase(msbuild)
        assert tool.requires_verb is False

    def test_not_found(self, tmp_path):
        """Test None when nothing is found."""
        resolver = EnvironmentToolResolver({"PATH": str(tmp_path)})
        assert resolver.resolve() is None
