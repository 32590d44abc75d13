"""Post-processing of generator output into the canonical package tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from protoforge.core.config import BuildConfig
from protoforge.core.errors import PostProcessError
from protoforge.toolchain.runners import ToolRunner

from .discovery import discover
from .entrypoints import synthesize_entry_points
from .formatting import format_tree
from .imports import ensure_packages, fix_imports
from .relocate import relocate
from .units import EntryExport, GeneratedUnit

LOGGER = logging.getLogger("protoforge.postprocess")


@dataclass(slots=True)
class PostProcessMetrics:
    discovered: int = 0
    relocated: int = 0
    collisions: int = 0
    rewritten_imports: int = 0
    exports: int = 0
    format_failures: int = 0


class PostProcessor:
    """Turns the intermediate tree into the canonical package tree.

    ``relocate`` covers discovery, copying, Python import fixing, package
    scaffolding and entry synthesis; ``format`` is the separate, non-fatal
    formatting pass.
    """

    def __init__(self, config: BuildConfig) -> None:
        self._config = config
        self._warnings: list[str] = []
        self._metrics = PostProcessMetrics()

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    def discover(self) -> list[GeneratedUnit]:
        units = discover(self._config.intermediate_dir, self._config.language)
        if not units:
            raise PostProcessError(
                f"Generators produced no {self._config.language} files in {self._config.intermediate_dir}"
            )
        self._metrics.discovered = len(units)
        return units

    def relocate(self, units: list[GeneratedUnit]) -> tuple[list[GeneratedUnit], list[EntryExport]]:
        config = self._config
        result = relocate(units, config.intermediate_dir, config.canonical_dir)
        self._warnings.extend(f"relocation collision: {message}" for message in result.collisions)
        self._metrics.relocated = len(result.units)
        self._metrics.collisions = len(result.collisions)
        if config.language == "python":
            self._metrics.rewritten_imports = fix_imports(config.canonical_dir, config.module_name)
            ensure_packages(config.canonical_dir)
        exports = synthesize_entry_points(config, result.units)
        self._metrics.exports = len(exports)
        return result.units, exports

    def format(self, runner: ToolRunner) -> list[str]:
        warnings = format_tree(self._config, runner)
        self._metrics.format_failures = len(warnings)
        self._warnings.extend(warnings)
        return warnings

    def metrics_snapshot(self) -> dict[str, float]:
        return {
            "postprocess.discovered": float(self._metrics.discovered),
            "postprocess.relocated": float(self._metrics.relocated),
            "postprocess.collisions": float(self._metrics.collisions),
            "postprocess.rewritten_imports": float(self._metrics.rewritten_imports),
            "postprocess.exports": float(self._metrics.exports),
            "postprocess.format_failures": float(self._metrics.format_failures),
        }


__all__ = ["PostProcessMetrics", "PostProcessor"]
