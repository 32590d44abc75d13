"""Discovery and classification of generated files."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from google.protobuf import descriptor_pb2
from google.protobuf.message import DecodeError

from protoforge.core.errors import PostProcessError
from protoforge.toolchain.commands import DESCRIPTOR_SET_NAME

from .units import GeneratedUnit, UnitKind, split_extension

LOGGER = logging.getLogger("protoforge.postprocess")

# Generator suffixes stripped to recover the source proto path.
_PYTHON_SUFFIXES = ("_pb2_grpc", "_pb2")
_TYPESCRIPT_SUFFIXES = ("_grpc_web_pb", "_grpc_pb", "_pb")


def load_descriptor_packages(path: Path) -> dict[str, str]:
    """Map proto file names to their ``package`` declarations.

    Returns an empty mapping when no descriptor set was written.

    Raises:
        PostProcessError: If the descriptor set cannot be parsed.
    """

    if not path.is_file():
        return {}
    descriptor_set = descriptor_pb2.FileDescriptorSet()
    try:
        descriptor_set.ParseFromString(path.read_bytes())
    except DecodeError as exc:
        raise PostProcessError(f"Malformed descriptor set {path}: {exc}") from exc
    return {proto.name: proto.package for proto in descriptor_set.file}


def classify(relative: PurePosixPath, language: str) -> UnitKind | None:
    """Kind of a generated file from its naming convention, or None if unknown."""

    split = split_extension(relative.name, language)
    if split is None:
        return None
    stem, extension = split
    if language == "python":
        if stem == "__init__":
            return None
        if extension == ".pyi":
            return UnitKind.TYPES
        if stem.endswith("_pb2_grpc"):
            return UnitKind.SERVICE
        if stem.endswith("_pb2"):
            return UnitKind.MESSAGES
        return None
    if stem == "index":
        return None
    if extension == ".d.ts":
        return UnitKind.TYPES
    if stem.endswith(("_grpc_pb", "_grpc_web_pb", "ServiceClientPb")):
        return UnitKind.SERVICE
    return UnitKind.MESSAGES


def proto_source_name(module_path: PurePosixPath, language: str) -> str:
    """Proto file a generated module came from (``api/v1/greeter.proto``)."""

    stem = module_path.name
    for suffix in _PYTHON_SUFFIXES if language == "python" else _TYPESCRIPT_SUFFIXES:
        if stem.endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    return str(module_path.with_name(f"{stem}.proto"))


def discover(intermediate: Path, language: str) -> list[GeneratedUnit]:
    """Classify every generated file under ``intermediate`` in sorted order.

    Proto packages come from the descriptor set written next to the generated
    code; files it does not describe fall back to their directory path.
    """

    if not intermediate.is_dir():
        raise PostProcessError(f"Generated code directory not found: {intermediate}")
    packages = load_descriptor_packages(intermediate / DESCRIPTOR_SET_NAME)
    units: list[GeneratedUnit] = []
    for path in sorted(intermediate.rglob("*")):
        if not path.is_file():
            continue
        relative = PurePosixPath(path.relative_to(intermediate).as_posix())
        kind = classify(relative, language)
        if kind is None:
            LOGGER.debug("Skipping unrecognised file %s", relative)
            continue
        stem, _ = split_extension(relative.name, language) or (relative.stem, "")
        source_name = proto_source_name(relative.with_name(stem), language)
        package = packages.get(source_name)
        if package is None:
            package = ".".join(relative.parts[:-1])
        units.append(
            GeneratedUnit(
                relative_path=relative,
                kind=kind,
                proto_package=package,
                language=language,
            )
        )
    LOGGER.info("Discovered %d generated files", len(units))
    return units


__all__ = ["classify", "discover", "load_descriptor_packages", "proto_source_name"]
