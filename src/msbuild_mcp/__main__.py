"""Entry point for msbuild-mcp server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import tempfile
from collections.abc import Mapping

from .build import (
    BuildLauncher,
    BuildLoggerSpec,
    EnvironmentToolResolver,
    StaticToolResolver,
    ToolResolver,
)
from .build.resolver import parse_tool
from .server import create_server

DEFAULT_LOGS_DIR = os.path.join(tempfile.gettempdir(), "msbuild-mcp-logs")


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="MSBuild MCP Server - Build .NET projects via MCP"
    )
    parser.add_argument(
        "--msbuild-path",
        type=str,
        default=None,
        help="Build tool executable (dotnet or msbuild). "
        "Defaults to MSBUILD_PATH, then dotnet/msbuild on PATH.",
    )
    parser.add_argument(
        "--tool",
        type=str,
        default=None,
        help="Invocation convention for --msbuild-path: "
        "dotnet_cli, msbuild_vs, msbuild_mono or jetbrains_msbuild. "
        "Guessed from the file name if omitted.",
    )
    parser.add_argument(
        "--logger-type",
        type=str,
        default=None,
        help="Custom MSBuild logger type name (or MSBUILD_LOGGER_TYPE).",
    )
    parser.add_argument(
        "--logger-assembly",
        type=str,
        default=None,
        help="Custom MSBuild logger assembly path (or MSBUILD_LOGGER_ASSEMBLY).",
    )
    parser.add_argument(
        "--logs-dir",
        type=str,
        default=None,
        help="Default directory for structured build logs (or MSBUILD_LOGS_DIR).",
    )
    return parser.parse_args(argv)


def create_resolver(args: argparse.Namespace) -> ToolResolver:
    """Explicit --msbuild-path wins over environment and PATH lookup."""
    if args.msbuild_path:
        tool = parse_tool(args.tool) if args.tool else None
        return StaticToolResolver(args.msbuild_path, tool)
    return EnvironmentToolResolver()


def create_logger_spec(
    args: argparse.Namespace, environ: Mapping[str, str] | None = None
) -> BuildLoggerSpec | None:
    """Logger spec from flags, falling back to environment variables."""
    env = os.environ if environ is None else environ
    from_env = BuildLoggerSpec.from_env(env)
    type_name = args.logger_type or (from_env.type_name if from_env else None)
    assembly_path = args.logger_assembly or (from_env.assembly_path if from_env else None)
    if not type_name or not assembly_path:
        return None
    return BuildLoggerSpec(type_name=type_name, assembly_path=assembly_path)


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()

    logger_spec = create_logger_spec(args)
    if logger_spec is None:
        logger.error(
            "Build logger not configured: pass --logger-type and --logger-assembly "
            "or set MSBUILD_LOGGER_TYPE and MSBUILD_LOGGER_ASSEMBLY"
        )
        sys.exit(1)

    try:
        resolver = create_resolver(args)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logs_dir = args.logs_dir or os.environ.get("MSBUILD_LOGS_DIR") or DEFAULT_LOGS_DIR
    launcher = BuildLauncher(resolver, logger_spec)

    logger.info(f"Starting MSBuild MCP Server (logs: {logs_dir})...")

    mcp = create_server(launcher, logs_dir)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
