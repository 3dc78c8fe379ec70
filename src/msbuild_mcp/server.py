"""MCP Server for MSBuild builds."""

from __future__ import annotations

import json
import logging
import os
import time

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .build import BuildError, BuildLauncher, BuildRequest, BuildResult

logger = logging.getLogger(__name__)

# Last completed build (single client mode)
_last_result: BuildResult | None = None


def get_last_result() -> BuildResult | None:
    """Most recent build result reported by build_project."""
    return _last_result


async def run_build(launcher: BuildLauncher, request: BuildRequest) -> BuildResult:
    """Run a build on the asyncio path and capture its output lines.

    Args:
        launcher: Launcher to run the build with
        request: Build request

    Returns:
        Build result with captured stdout/stderr

    Raises:
        BuildError: If the build tool cannot be found or started
    """
    stdout: list[str] = []
    stderr: list[str] = []
    start_time = time.perf_counter()

    process = await launcher.start_async(request, stdout.append, stderr.append)
    async with process:
        exit_code = await process.wait()

    duration = (time.perf_counter() - start_time) * 1000
    return BuildResult(
        exit_code=exit_code,
        state=process.state,
        command=process.command,
        solution_path=request.solution_path,
        configuration=request.configuration,
        stdout=stdout,
        stderr=stderr,
        duration_ms=duration,
    )


def create_server(launcher: BuildLauncher, logs_dir: str) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        launcher: Launcher used for every build
        logs_dir: Default directory for the custom build logger's logs
    """
    mcp = FastMCP("msbuild-mcp")
    logs_dir_default = logs_dir

    async def notify_build_changed(ctx: Context) -> None:
        """Notify client that build resources have changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("build://last"))
                await ctx.session.send_resource_updated(AnyUrl("build://output"))
        except Exception:
            logger.debug("Resource update notification failed", exc_info=True)

    # ============== Build Tools ==============

    @mcp.tool()
    async def build_project(
        ctx: Context,
        solution_path: str,
        targets: list[str] | None = None,
        configuration: str = "Debug",
        restore: bool = False,
        custom_properties: list[str] | None = None,
        logs_dir: str | None = None,
    ) -> dict:
        """
        Build a .sln or project file with MSBuild.

        Output is captured line by line; read build://output for the full log.
        A non-zero exit code means the build failed - check the output for
        compiler errors.

        Args:
            solution_path: Path to the .sln/.csproj file
            targets: MSBuild targets (default: ["Build"])
            configuration: Build configuration, e.g. Debug or Release
            restore: Run /restore before building
            custom_properties: Extra "Name=Value" properties passed as /p:
            logs_dir: Directory for structured build logs (server default if omitted)
        """
        global _last_result
        try:
            request = BuildRequest(
                solution_path=os.path.abspath(solution_path),
                targets=tuple(targets or ("Build",)),
                configuration=configuration,
                restore=restore,
                custom_properties=tuple(custom_properties or ()),
                logs_dir_path=logs_dir or logs_dir_default,
            )
            await ctx.info(f"Building {request.solution_path} ({configuration})")
            result = await run_build(launcher, request)
            _last_result = result
            await notify_build_changed(ctx)
            return {
                "success": result.success,
                "data": result.to_dict(),
                "summary": result.to_summary(),
            }
        except BuildError as e:
            return {"success": False, **e.to_dict()}
        except ValueError as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_tool() -> dict:
        """Report which MSBuild executable and invocation convention will be used."""
        try:
            executable, tool = launcher.resolve_build_tool()
            return {
                "success": True,
                "data": {
                    "executable": executable,
                    "tool": tool.value,
                    "logger": {
                        "type": launcher.logger_spec.type_name,
                        "assembly": launcher.logger_spec.assembly_path,
                    },
                    "logsDir": logs_dir_default,
                },
            }
        except BuildError as e:
            return {"success": False, **e.to_dict()}
        except ValueError as e:
            return {"success": False, "error": str(e)}

    # ============== Resources ==============

    @mcp.resource("build://last", mime_type="application/json")
    async def build_last_resource() -> str:
        """Last build result (JSON).

        Contains: exit code, command, configuration, line counts, duration.
        Updates when: a build_project call completes.
        """
        if _last_result is None:
            return json.dumps(None)
        return json.dumps(_last_result.to_dict(), indent=2)

    @mcp.resource("build://output", mime_type="text/plain")
    async def build_output_resource() -> str:
        """Output of the last build (plain text, stdout then stderr)."""
        if _last_result is None:
            return ""
        return _last_result.output_text()

    logger.info("MSBuild MCP Server initialized")
    return mcp
