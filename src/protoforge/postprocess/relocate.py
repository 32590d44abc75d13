"""Copy generated units into the canonical package tree."""

from __future__ import annotations

import dataclasses
import logging
import shutil
from pathlib import Path
from typing import Iterable

from protoforge.core.errors import PostProcessError

from .units import GeneratedUnit

LOGGER = logging.getLogger("protoforge.postprocess")


@dataclasses.dataclass(slots=True)
class RelocationResult:
    units: list[GeneratedUnit]
    collisions: list[str]


def relocate(units: Iterable[GeneratedUnit], intermediate: Path, canonical: Path) -> RelocationResult:
    """Copy each unit to ``canonical`` at its relative path.

    Existing destinations are overwritten. A destination written twice in the
    same call keeps the last copy and is reported as a collision. The
    intermediate tree is left untouched.
    """

    written: dict[str, str] = {}
    relocated: list[GeneratedUnit] = []
    collisions: list[str] = []
    for unit in units:
        source = intermediate.joinpath(*unit.relative_path.parts)
        destination = canonical.joinpath(*unit.relative_path.parts)
        key = _normalise(destination)
        if key in written:
            message = f"{written[key]} and {unit.relative_path} both relocate to {destination}"
            LOGGER.warning("Relocation collision: %s", message)
            collisions.append(message)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as exc:
            raise PostProcessError(f"Cannot relocate {source} to {destination}: {exc}") from exc
        written[key] = str(unit.relative_path)
        relocated.append(dataclasses.replace(unit, canonical_path=destination))
    LOGGER.info("Relocated %d files into %s", len(relocated), canonical)
    return RelocationResult(units=relocated, collisions=collisions)


def _normalise(path: Path) -> str:
    # Case-insensitive filesystems map differently cased names to one file.
    return str(path).casefold()


__all__ = ["RelocationResult", "relocate"]
