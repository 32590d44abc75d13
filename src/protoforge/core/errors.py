"""Error taxonomy for the build pipeline.

Every failure that aborts a pipeline run is a ``ForgeError``. The coordinator
tags the error with the stage that raised it before propagating, so the CLI can
report ``<stage>: <ErrorClass>: <message>`` and pick an exit code.
"""

from __future__ import annotations


class ForgeError(RuntimeError):
    """Base class for pipeline failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.stage: str | None = None

    def __reduce__(self):
        # Subclass __init__ signatures differ from ``args``; rebuild from state
        # so errors survive the trip back from worker processes.
        return (_rebuild_error, (type(self), str(self), self.__dict__.copy()))


class ConfigError(ForgeError):
    """Invalid or inconsistent build configuration."""


class WorkspaceError(ForgeError):
    """Filesystem setup or cleanup failed."""


class ToolchainError(ForgeError):
    """External generator exited non-zero or could not be started."""

    def __init__(self, tool: str, exit_code: int, stderr_tail: str = "") -> None:
        message = f"{tool} exited with status {exit_code}"
        if stderr_tail:
            message = f"{message}: {stderr_tail}"
        super().__init__(message)
        self.tool = tool
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class ToolchainTimeout(ForgeError):
    """External generator did not finish within the configured timeout."""

    def __init__(self, tool: str, timeout_s: float) -> None:
        super().__init__(f"{tool} timed out after {timeout_s:.1f}s")
        self.tool = tool
        self.timeout_s = timeout_s


class PostProcessError(ForgeError):
    """Relocation or entry-file synthesis failed."""


class PackagerError(ForgeError):
    """Manifest generation or the native package build failed."""


def _rebuild_error(cls: type[ForgeError], message: str, state: dict) -> ForgeError:
    error = RuntimeError.__new__(cls)
    RuntimeError.__init__(error, message)
    error.__dict__.update(state)
    return error


__all__ = [
    "ForgeError",
    "ConfigError",
    "WorkspaceError",
    "ToolchainError",
    "ToolchainTimeout",
    "PostProcessError",
    "PackagerError",
]
