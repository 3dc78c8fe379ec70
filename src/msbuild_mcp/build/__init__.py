"""MSBuild launching for managed-code projects.

Provides:
- Deterministic MSBuild argument construction (standalone and `dotnet msbuild`)
- Blocking builds with a hard timeout and asyncio builds without one
- Line-by-line streaming of stdout/stderr to caller sinks
- Environment sanitization (PLATFORM removal, first-run banner suppression)
"""

from .arguments import build_argument_list, build_arguments, command_line
from .environment import sanitize_environment
from .errors import BuildError, BuildTimeoutError, ProcessStartError, ToolNotFoundError
from .launcher import (
    BUILD_TIMEOUT_SECONDS,
    AsyncBuildProcess,
    BuildLauncher,
    BuildProcess,
    LineSink,
)
from .resolver import EnvironmentToolResolver, StaticToolResolver, ToolResolver
from .state import BuildLoggerSpec, BuildRequest, BuildResult, BuildState, BuildTool

__all__ = [
    "BuildTool",
    "BuildRequest",
    "BuildLoggerSpec",
    "BuildState",
    "BuildResult",
    "BuildError",
    "ToolNotFoundError",
    "ProcessStartError",
    "BuildTimeoutError",
    "build_arguments",
    "build_argument_list",
    "command_line",
    "sanitize_environment",
    "ToolResolver",
    "StaticToolResolver",
    "EnvironmentToolResolver",
    "BuildLauncher",
    "BuildProcess",
    "AsyncBuildProcess",
    "LineSink",
    "BUILD_TIMEOUT_SECONDS",
]
