"""Workspace directory lifecycle.

The workspace owns four directories per language (source, intermediate,
package output and artifacts) plus any scoped resources attached during a run,
such as the build container. ``teardown`` releases those resources exactly
once and never raises.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from protoforge.core.config import LANGUAGES, BuildConfig
from protoforge.core.errors import ForgeError, WorkspaceError
from protoforge.toolchain.commands import find_sources
from protoforge.toolchain.invoker import ToolchainInvoker

LOGGER = logging.getLogger("protoforge.workspace")

BUILDER_IMAGES: tuple[str, ...] = tuple(f"protobuf-{language}-builder" for language in LANGUAGES)


@dataclass(slots=True)
class Workspace:
    """Directories and scoped resources for one pipeline run."""

    config: BuildConfig
    source: Path
    intermediate: Path
    output: Path
    artifacts: Path
    sources: tuple[Path, ...]
    _resources: contextlib.ExitStack = field(default_factory=contextlib.ExitStack, repr=False)
    _released: list[str] = field(default_factory=list, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def canonical(self) -> Path:
        return self.config.canonical_dir

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def released(self) -> tuple[str, ...]:
        """Names of resources released so far, in release order."""
        return tuple(self._released)

    def attach(self, name: str, release: Callable[[], None]) -> None:
        """Register a resource to release at teardown (last attached, first released)."""

        if self._closed:
            raise WorkspaceError(f"Cannot attach '{name}' to a torn-down workspace")
        self._resources.callback(self._release_quietly, name, release)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._resources.close()

    def _release_quietly(self, name: str, release: Callable[[], None]) -> None:
        self._released.append(name)
        try:
            release()
        except Exception as exc:
            LOGGER.warning("Failed to release %s: %s", name, exc)


class WorkspaceManager:
    """Creates, cleans and tears down pipeline workspaces."""

    def prepare(self, config: BuildConfig) -> Workspace:
        """Validate inputs and create the run directories.

        The intermediate tree is reset on every run so that it only ever holds
        output derived from the current sources. ``config.clean`` also removes
        the package tree.

        Raises:
            WorkspaceError: Missing or empty source tree, a path that exists but
                is not a directory, or a directory that cannot be written.
        """

        source = config.source_dir
        if not source.exists():
            raise WorkspaceError(f"Proto source directory not found: {source}")
        if not source.is_dir():
            raise WorkspaceError(f"Proto source path is not a directory: {source}")
        sources = find_sources(source)
        if not sources:
            raise WorkspaceError(f"No .proto files found under {source}")

        paths = (config.intermediate_dir, config.package_root, config.artifact_dir)
        for path in paths:
            if path.exists() and not path.is_dir():
                raise WorkspaceError(f"Expected a directory at {path}")

        if config.clean:
            LOGGER.info("Cleaning previous build for %s", config.language)
            _remove_tree(config.package_root)
        _remove_tree(config.intermediate_dir)

        for path in paths:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise WorkspaceError(f"Cannot create {path}: {exc}") from exc
            if not os.access(path, os.W_OK):
                raise WorkspaceError(f"No write permission for {path}")
        LOGGER.info("Prepared workspace for %s with %d proto files", config.language, len(sources))
        return Workspace(
            config=config,
            source=source,
            intermediate=config.intermediate_dir,
            output=config.package_root,
            artifacts=config.artifact_dir,
            sources=tuple(sources),
        )

    def teardown(self, workspace: Workspace) -> None:
        """Release attached resources; safe to call more than once."""

        if workspace.closed:
            return
        workspace.close()
        LOGGER.info("Workspace for %s torn down", workspace.config.language)

    def clean(self, project_root: Path, languages: Iterable[str] = LANGUAGES) -> list[Path]:
        """Remove generated trees for ``languages``; returns removed paths."""

        generated = Path(project_root) / "generated"
        removed: list[Path] = []
        for language in languages:
            for path in (generated / "code" / language, generated / "packages" / language):
                if path.exists():
                    _remove_tree(path)
                    removed.append(path)
        for path in (generated / "code", generated / "packages", generated):
            if path.is_dir() and not any(path.iterdir()):
                path.rmdir()
        return removed

    def remove_images(
        self,
        invoker: ToolchainInvoker,
        images: Iterable[str] = BUILDER_IMAGES,
        *,
        docker: str = "docker",
    ) -> list[str]:
        """Best-effort ``docker rmi`` of builder images; returns removed names."""

        removed: list[str] = []
        for image in images:
            try:
                invoker.invoke(docker, ["rmi", image], label="docker rmi")
            except ForgeError as exc:
                LOGGER.warning("Could not remove image %s: %s", image, exc)
                continue
            removed.append(image)
        return removed


def _remove_tree(path: Path) -> None:
    if not path.exists():
        return
    if not path.is_dir():
        raise WorkspaceError(f"Expected a directory at {path}")
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise WorkspaceError(f"Cannot remove {path}: {exc}") from exc


__all__ = ["BUILDER_IMAGES", "Workspace", "WorkspaceManager"]
