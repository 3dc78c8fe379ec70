"""Environment sanitization for build processes."""

from __future__ import annotations

import logging
from collections.abc import Mapping

logger = logging.getLogger(__name__)

# Developer Command Prompts for VS set `Platform`, which MSBuild would pick
# up as the solution platform property.
PLATFORM_VARIABLE = "PLATFORM"

SKIP_FIRST_TIME_EXPERIENCE = "DOTNET_SKIP_FIRST_TIME_EXPERIENCE"


def sanitize_environment(environ: Mapping[str, str]) -> dict[str, str]:
    """Build the environment for a build process.

    Removes every variable named `PLATFORM` in any letter case and forces
    DOTNET_SKIP_FIRST_TIME_EXPERIENCE=1. The input mapping is not modified.

    Args:
        environ: Inherited environment

    Returns:
        New environment dictionary
    """
    env = dict(environ)

    # Collect first, then remove
    platform_keys = [key for key in env if key.upper() == PLATFORM_VARIABLE]
    for key in platform_keys:
        logger.debug(f"Removing environment variable {key}")
        del env[key]

    env[SKIP_FIRST_TIME_EXPERIENCE] = "1"
    return env
