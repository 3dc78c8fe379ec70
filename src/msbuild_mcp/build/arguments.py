"""MSBuild command-line construction.

The rendered string is what gets logged and reported to output sinks. The
process itself is started from the equivalent argv list (never through a
shell), so quoting in the string never has to be re-parsed.
"""

from __future__ import annotations

from .state import BuildLoggerSpec, BuildRequest, BuildTool

MSBUILD_VERB = "msbuild"
VERBOSITY = "normal"


def _logger_argument(logger_spec: BuildLoggerSpec, logs_dir_path: str) -> str:
    return f"/l:{logger_spec.type_name},{logger_spec.assembly_path};{logs_dir_path}"


def build_arguments(
    tool: BuildTool,
    request: BuildRequest,
    logger_spec: BuildLoggerSpec,
) -> str:
    """Render the build tool argument string.

    Args:
        tool: Resolved build tool variant
        request: Build request
        logger_spec: Custom logger to register

    Returns:
        Argument string, e.g.
        ``msbuild  "/proj/App.sln" /restore /t:Build "/p:Configuration=Debug" /v:normal "/l:..."``
    """
    arguments = ""

    if tool.requires_verb:
        arguments += f"{MSBUILD_VERB} "  # `dotnet msbuild` command

    arguments += f' "{request.solution_path}"'

    if request.restore:
        arguments += " /restore"

    arguments += (
        f" /t:{','.join(request.targets)}"
        f' "/p:Configuration={request.configuration}"'
        f" /v:{VERBOSITY}"
        f' "{_logger_argument(logger_spec, request.logs_dir_path)}"'
    )

    for custom_property in request.custom_properties:
        arguments += f" /p:{custom_property}"

    # Standalone tools start directly with the solution path
    return arguments if tool.requires_verb else arguments.lstrip()


def build_argument_list(
    tool: BuildTool,
    request: BuildRequest,
    logger_spec: BuildLoggerSpec,
) -> list[str]:
    """Same arguments as build_arguments(), one argv entry per token, unquoted."""
    args: list[str] = []

    if tool.requires_verb:
        args.append(MSBUILD_VERB)

    args.append(request.solution_path)

    if request.restore:
        args.append("/restore")

    args.extend(
        [
            f"/t:{','.join(request.targets)}",
            f"/p:Configuration={request.configuration}",
            f"/v:{VERBOSITY}",
            _logger_argument(logger_spec, request.logs_dir_path),
        ]
    )
    args.extend(f"/p:{custom_property}" for custom_property in request.custom_properties)
    return args


def command_line(
    executable: str,
    tool: BuildTool,
    request: BuildRequest,
    logger_spec: BuildLoggerSpec,
) -> list[str]:
    """Complete argv for the build process."""
    return [executable, *build_argument_list(tool, request, logger_spec)]
