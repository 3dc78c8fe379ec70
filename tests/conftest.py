"""Pytest fixtures for msbuild-mcp tests."""

import pytest
import sys
import os
import textwrap

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from msbuild_mcp.build import (  # noqa: E402
    BuildLauncher,
    BuildLoggerSpec,
    BuildRequest,
    BuildTool,
    StaticToolResolver,
)


@pytest.fixture
def logger_spec():
    """Sample custom logger registration."""
    return BuildLoggerSpec(
        type_name="Editor.BuildLogger.StructuredLogger",
        assembly_path="/opt/editor/Editor.BuildLogger.dll",
    )


@pytest.fixture
def sample_request():
    """Sample build request from the editor."""
    return BuildRequest(
        solution_path="/proj/App.sln",
        targets=("Build",),
        configuration="Debug",
        restore=True,
        logs_dir_path="/proj/.logs",
    )


@pytest.fixture
def write_script(tmp_path):
    """Write a Python script that stands in for the solution file.

    The launcher runs the Python interpreter as the "build tool", so the
    solution path becomes the script and MSBuild switches become its argv.
    """

    def _write(body: str, name: str = "fake_build.py") -> str:
        script = tmp_path / name
        script.write_text(textwrap.dedent(body), encoding="utf-8")
        return str(script)

    return _write


@pytest.fixture
def python_launcher(logger_spec):
    """Launcher whose build tool is the current Python interpreter."""

    def _create(environ=None) -> BuildLauncher:
        resolver = StaticToolResolver(sys.executable, BuildTool.MSBUILD_MONO)
        return BuildLauncher(resolver, logger_spec, environ=environ)

    return _create


@pytest.fixture
def script_request(tmp_path):
    """Build request whose solution is a script written by write_script."""

    def _create(script_path: str, **overrides) -> BuildRequest:
        fields = {
            "solution_path": script_path,
            "targets": ("Build",),
            "configuration": "Debug",
            "logs_dir_path": str(tmp_path / "logs"),
        }
        fields.update(overrides)
        return BuildRequest(**fields)

    return _create
