"""Build launcher exceptions."""

from __future__ import annotations


class BuildError(Exception):
    """Base exception for build launch errors."""

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {"error": str(self), "type": type(self).__name__}


class ToolNotFoundError(BuildError):
    """Raised when no build tool executable could be resolved."""

    pass


class ProcessStartError(BuildError):
    """Raised when the OS refuses to start the build tool."""

    pass


class BuildTimeoutError(BuildError):
    """Raised when a blocking build does not exit within its timeout."""

    def __init__(self, message: str, timeout: float):
        super().__init__(message)
        self.timeout = timeout
