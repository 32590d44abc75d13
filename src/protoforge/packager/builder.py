"""Native package builds (uv for wheels, npm for tarballs)."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

from protoforge.core.config import BuildConfig
from protoforge.core.errors import PackagerError, ToolchainError
from protoforge.toolchain.invoker import ToolchainInvoker

LOGGER = logging.getLogger("protoforge.packager")

ARTIFACT_PATTERNS = {"python": "*.whl", "typescript": "*.tgz"}
MANIFEST_FILES = {"python": "pyproject.toml", "typescript": "package.json"}

_INSTALL_HINTS = {
    "uv": "https://docs.astral.sh/uv/getting-started/installation/",
    "npm": "https://nodejs.org/en/download",
}


class PackageBuilder:
    """Builds the distributable from the package root on the host."""

    def __init__(
        self,
        invoker: ToolchainInvoker,
        *,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._invoker = invoker
        self._which = which

    def build(self, config: BuildConfig) -> Path:
        """Empty ``dist/``, run the builder and return the single artifact.

        Raises:
            PackagerError: Builder missing, a build step failed, or the build
                did not produce exactly one artifact.
            ToolchainTimeout: A build step exceeded the invoker timeout.
        """

        root = config.package_root
        manifest = root / MANIFEST_FILES[config.language]
        if not manifest.is_file():
            raise PackagerError(f"Manifest not found: {manifest}")
        self._reset_dist(config.dist_dir)

        if config.language == "python":
            uv = self._require("uv")
            self._step(uv, ["build", "--wheel", "--out-dir", "dist"], root, "uv build")
        else:
            npm = self._require("npm")
            self._step(npm, ["install"], root, "npm install")
            self._step(npm, ["install", "--save-dev", "typescript", "@types/google-protobuf"], root, "npm install")
            self._step(npm, ["run", "build"], root, "npm run build")
            self._step(npm, ["pack", "--pack-destination", "dist"], root, "npm pack")

        artifacts = sorted(config.dist_dir.glob(ARTIFACT_PATTERNS[config.language]))
        if len(artifacts) != 1:
            names = ", ".join(path.name for path in artifacts) or "none"
            raise PackagerError(f"Expected exactly one artifact in {config.dist_dir}, found {len(artifacts)}: {names}")
        LOGGER.info("Built %s", artifacts[0].name)
        return artifacts[0]

    def _require(self, tool: str) -> str:
        path = self._which(tool)
        if path is None:
            raise PackagerError(f"{tool} is not installed. Please install {tool} first: {_INSTALL_HINTS[tool]}")
        return path

    def _step(self, tool: str, args: list[str], root: Path, label: str) -> None:
        try:
            self._invoker.invoke(tool, args, root, label=label)
        except ToolchainError as exc:
            raise PackagerError(f"{label} failed: {exc}") from exc

    @staticmethod
    def _reset_dist(dist: Path) -> None:
        try:
            if dist.exists():
                shutil.rmtree(dist)
            dist.mkdir(parents=True)
        except OSError as exc:
            raise PackagerError(f"Cannot reset {dist}: {exc}") from exc


__all__ = ["ARTIFACT_PATTERNS", "PackageBuilder"]
