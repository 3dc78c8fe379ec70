"""Build request, tool and result types.

State machine for a single build invocation:
CREATED → STARTED → RUNNING → EXITED | TIMED_OUT
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BuildTool(str, Enum):
    """Invocation convention of the resolved build tool."""

    MSBUILD_MONO = "msbuild_mono"
    MSBUILD_VS = "msbuild_vs"
    JETBRAINS_MSBUILD = "jetbrains_msbuild"
    DOTNET_CLI = "dotnet_cli"

    @property
    def requires_verb(self) -> bool:
        """Whether the tool needs a leading `msbuild` verb (`dotnet msbuild`)."""
        return self is BuildTool.DOTNET_CLI


class BuildState(str, Enum):
    """Per-invocation build process states."""

    CREATED = "created"
    STARTED = "started"
    RUNNING = "running"
    EXITED = "exited"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class BuildLoggerSpec:
    """Custom MSBuild logger registered with `/l:`."""

    type_name: str
    assembly_path: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BuildLoggerSpec | None:
        """Read logger settings from MSBUILD_LOGGER_TYPE / MSBUILD_LOGGER_ASSEMBLY.

        Returns:
            Logger spec, or None if either variable is unset
        """
        env = os.environ if environ is None else environ
        type_name = env.get("MSBUILD_LOGGER_TYPE")
        assembly_path = env.get("MSBUILD_LOGGER_ASSEMBLY")
        if not type_name or not assembly_path:
            return None
        return cls(type_name=type_name, assembly_path=assembly_path)


@dataclass(frozen=True)
class BuildRequest:
    """Immutable description of one build.

    Lists passed for `targets` and `custom_properties` are stored as tuples.
    """

    solution_path: str
    targets: tuple[str, ...]
    configuration: str
    logs_dir_path: str
    restore: bool = False
    custom_properties: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "targets", tuple(self.targets))
        object.__setattr__(self, "custom_properties", tuple(self.custom_properties))
        if not self.targets:
            raise ValueError("BuildRequest requires at least one target")


@dataclass
class BuildResult:
    """Result of a completed build as reported to MCP clients."""

    exit_code: int
    state: BuildState
    command: list[str]
    solution_path: str
    configuration: str
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "state": self.state.value,
            "exitCode": self.exit_code,
            "command": self.command,
            "solutionPath": self.solution_path,
            "configuration": self.configuration,
            "stdoutLines": len(self.stdout),
            "stderrLines": len(self.stderr),
            "durationMs": round(self.duration_ms, 2),
        }

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = "[OK] Build succeeded" if self.success else "[FAILED] Build failed"

        parts = [
            status,
            f"  Solution: {self.solution_path}",
            f"  Configuration: {self.configuration}",
            f"  Exit code: {self.exit_code}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]

        # Last few stderr lines are usually the useful ones
        for line in self.stderr[-5:]:
            parts.append(f"    {line}")

        return "\n".join(parts)

    def output_text(self) -> str:
        """Combined stdout then stderr text."""
        return "\n".join(self.stdout + self.stderr)
