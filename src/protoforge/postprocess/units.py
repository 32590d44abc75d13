"""Generated-unit and entry-export value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath


class UnitKind(str, Enum):
    MESSAGES = "messages"
    SERVICE = "service"
    TYPES = "types"


class ExportKind(str, Enum):
    MESSAGE_MODULE = "message-module"
    SERVICE_MODULE = "service-module"


# Longest suffix first so ``.d.ts`` wins over ``.ts``.
EXTENSIONS: dict[str, tuple[str, ...]] = {
    "python": (".pyi", ".py"),
    "typescript": (".d.ts", ".js", ".ts"),
}


def split_extension(name: str, language: str) -> tuple[str, str] | None:
    """Split ``name`` into (stem, extension) for a known generated extension."""

    for extension in EXTENSIONS[language]:
        if name.endswith(extension) and len(name) > len(extension):
            return name[: -len(extension)], extension
    return None


@dataclass(slots=True, frozen=True)
class GeneratedUnit:
    """One generated file.

    ``relative_path`` is relative to the generator output root and is
    preserved under the canonical tree. ``canonical_path`` is set once the
    unit has been relocated.
    """

    relative_path: PurePosixPath
    kind: UnitKind
    proto_package: str
    language: str
    canonical_path: Path | None = None

    @property
    def extension(self) -> str:
        split = split_extension(self.relative_path.name, self.language)
        return split[1] if split else self.relative_path.suffix

    @property
    def module_path(self) -> PurePosixPath:
        """Relative path without the file extension (``api/v1/greeter_pb2``)."""
        split = split_extension(self.relative_path.name, self.language)
        stem = split[0] if split else self.relative_path.stem
        return self.relative_path.with_name(stem)

    @property
    def module_name(self) -> str:
        return self.module_path.name

    @property
    def dotted_module(self) -> str:
        return ".".join(self.module_path.parts)


@dataclass(slots=True, frozen=True)
class EntryExport:
    """A module re-exported from the package entry file under ``symbol``."""

    kind: ExportKind
    module_path: PurePosixPath
    symbol: str
    proto_package: str
    extensions: tuple[str, ...] = ()

    @property
    def aliased(self) -> bool:
        return self.symbol != self.module_path.name


__all__ = [
    "EXTENSIONS",
    "EntryExport",
    "ExportKind",
    "GeneratedUnit",
    "UnitKind",
    "split_extension",
]
