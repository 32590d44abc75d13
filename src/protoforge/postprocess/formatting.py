"""Code formatting of the canonical tree.

Formatting is cosmetic: a formatter that is missing, fails or times out is
reported as a warning and the pipeline carries on.
"""

from __future__ import annotations

import logging

from protoforge.core.config import BuildConfig
from protoforge.core.errors import ForgeError
from protoforge.toolchain.commands import plan_formatting
from protoforge.toolchain.runners import ToolRunner

LOGGER = logging.getLogger("protoforge.postprocess")


def format_tree(config: BuildConfig, runner: ToolRunner) -> list[str]:
    """Run the language formatters; returns warnings for failed formatters."""

    warnings: list[str] = []
    if not config.format_code:
        LOGGER.info("Formatting disabled")
        return warnings
    for step in plan_formatting(config, runner):
        try:
            runner.run(step)
        except ForgeError as exc:
            message = f"{step.label} failed: {exc}"
            LOGGER.warning("Formatting skipped: %s", message)
            warnings.append(message)
    return warnings


__all__ = ["format_tree"]
