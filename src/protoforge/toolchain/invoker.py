"""Synchronous invocation of external generators and build tools."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from protoforge.core.errors import ToolchainError, ToolchainTimeout

LOGGER = logging.getLogger("protoforge.toolchain")

STDERR_TAIL_LINES = 20


@dataclass(slots=True)
class InvocationResult:
    """Captured outcome of one external tool call."""

    tool: str
    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(slots=True)
class InvokerMetrics:
    invocations: int = 0
    failures: int = 0
    timeouts: int = 0
    last_duration_ms: float = 0.0


def stderr_tail(stderr: str, lines: int = STDERR_TAIL_LINES) -> str:
    """Last ``lines`` non-empty lines of ``stderr``."""

    kept = [line for line in stderr.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


class ToolchainInvoker:
    """Runs one external command at a time and captures its diagnostics.

    Output is always captured. In verbose mode every call logs its full
    stdout/stderr; otherwise only failures are logged.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 600.0,
        verbose: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive, got {timeout_s}")
        self._timeout_s = timeout_s
        self._verbose = verbose
        self._env = dict(env) if env is not None else None
        self._metrics = InvokerMetrics()

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @property
    def verbose(self) -> bool:
        return self._verbose

    def invoke(
        self,
        tool: str,
        args: Sequence[str] = (),
        working_root: Path | None = None,
        *,
        label: str | None = None,
        check: bool = True,
    ) -> InvocationResult:
        """Run ``tool`` with ``args`` and wait for it to finish.

        Args:
            tool: Executable name or path.
            args: Arguments passed verbatim (no shell).
            working_root: Working directory for the child process.
            label: Name reported in logs and errors (defaults to the executable name).
            check: Raise ``ToolchainError`` on a non-zero exit status.

        Raises:
            ToolchainTimeout: The child ran past the timeout and was killed.
            ToolchainError: The executable is missing, or exited non-zero with ``check``.
        """

        name = label or Path(tool).name
        argv = [tool, *args]
        env = None
        if self._env is not None:
            env = {**os.environ, **self._env}
        LOGGER.debug("Invoking %s: %s", name, " ".join(argv))
        self._metrics.invocations += 1
        start = time.perf_counter()
        try:
            completed = subprocess.run(
                argv,
                cwd=str(working_root) if working_root is not None else None,
                env=env,
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            # subprocess.run kills the child before re-raising
            self._metrics.timeouts += 1
            self._metrics.failures += 1
            self._metrics.last_duration_ms = (time.perf_counter() - start) * 1000.0
            LOGGER.error("%s timed out after %.1fs", name, self._timeout_s)
            raise ToolchainTimeout(name, self._timeout_s) from exc
        except OSError as exc:
            self._metrics.failures += 1
            self._metrics.last_duration_ms = (time.perf_counter() - start) * 1000.0
            LOGGER.error("Failed to start %s: %s", name, exc)
            raise ToolchainError(name, 127, str(exc)) from exc

        duration_ms = (time.perf_counter() - start) * 1000.0
        self._metrics.last_duration_ms = duration_ms
        result = InvocationResult(
            tool=name,
            args=tuple(args),
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_ms=duration_ms,
        )
        if self._verbose:
            self._log_output(result, logging.INFO)
        if result.exit_code != 0:
            self._metrics.failures += 1
            if not self._verbose:
                self._log_output(result, logging.WARNING)
            if check:
                raise ToolchainError(name, result.exit_code, stderr_tail(result.stderr))
        return result

    def metrics_snapshot(self) -> dict[str, float]:
        return {
            "toolchain.invocations": float(self._metrics.invocations),
            "toolchain.failures": float(self._metrics.failures),
            "toolchain.timeouts": float(self._metrics.timeouts),
            "toolchain.last_duration_ms": self._metrics.last_duration_ms,
        }

    @staticmethod
    def _log_output(result: InvocationResult, level: int) -> None:
        LOGGER.log(
            level,
            "%s exited %d in %.1fms",
            result.tool,
            result.exit_code,
            result.duration_ms,
        )
        if result.stdout.strip():
            LOGGER.log(level, "%s stdout:\n%s", result.tool, result.stdout.rstrip())
        if result.stderr.strip():
            LOGGER.log(level, "%s stderr:\n%s", result.tool, result.stderr.rstrip())


__all__ = [
    "InvocationResult",
    "InvokerMetrics",
    "STDERR_TAIL_LINES",
    "ToolchainInvoker",
    "stderr_tail",
]
