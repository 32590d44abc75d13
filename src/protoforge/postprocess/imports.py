"""Python import rewriting and package scaffolding.

protoc emits imports relative to the proto root (``import greeter_pb2 as
greeter__pb2`` or ``from api.v1 import greeter_pb2 as ...``). Once the modules
live inside an installable package those imports must be rooted at the package.
Only imports of modules that exist in the canonical tree are rewritten, so
``google.protobuf`` and other third-party imports are left alone.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from protoforge.core.errors import PostProcessError

LOGGER = logging.getLogger("protoforge.postprocess")

_IMPORT_RE = re.compile(r"^import (?P<module>[\w.]+)(?P<alias> as \w+)?$", re.MULTILINE)
_FROM_RE = re.compile(r"^from (?P<package>[\w.]+) import (?P<name>\w+)(?P<alias> as \w+)?$", re.MULTILINE)


def generated_modules(canonical: Path) -> set[str]:
    """Dotted names of every module in the canonical tree, relative to it."""

    modules: set[str] = set()
    for path in canonical.rglob("*.py"):
        if path.name == "__init__.py":
            continue
        relative = path.relative_to(canonical).with_suffix("")
        modules.add(".".join(relative.parts))
    return modules


def rewrite_imports(text: str, root: str, modules: set[str]) -> tuple[str, int]:
    """Rewrite imports of ``modules`` in ``text`` to live under ``root``.

    Returns the new text and the number of rewritten lines.
    """

    count = 0

    def _plain(match: re.Match[str]) -> str:
        nonlocal count
        module = match.group("module")
        if module not in modules:
            return match.group(0)
        count += 1
        alias = match.group("alias") or ""
        parent, _, leaf = module.rpartition(".")
        package = f"{root}.{parent}" if parent else root
        return f"from {package} import {leaf}{alias}"

    def _from(match: re.Match[str]) -> str:
        nonlocal count
        package = match.group("package")
        name = match.group("name")
        if f"{package}.{name}" not in modules:
            return match.group(0)
        count += 1
        return f"from {root}.{package} import {name}{match.group('alias') or ''}"

    text = _IMPORT_RE.sub(_plain, text)
    text = _FROM_RE.sub(_from, text)
    return text, count


def fix_imports(canonical: Path, root: str) -> int:
    """Rewrite generated-module imports in every ``.py``/``.pyi`` file under ``canonical``.

    Returns the number of rewritten import lines.
    """

    modules = generated_modules(canonical)
    total = 0
    for path in sorted([*canonical.rglob("*.py"), *canonical.rglob("*.pyi")]):
        if path.name == "__init__.py":
            continue
        try:
            original = path.read_text(encoding="utf-8")
            updated, count = rewrite_imports(original, root, modules)
            if count:
                path.write_text(updated, encoding="utf-8")
        except OSError as exc:
            raise PostProcessError(f"Cannot rewrite imports in {path}: {exc}") from exc
        total += count
    LOGGER.info("Rewrote %d generated imports under %s", total, canonical)
    return total


def ensure_packages(canonical: Path) -> list[Path]:
    """Create a missing ``__init__.py`` in ``canonical`` and each directory below it."""

    created: list[Path] = []
    directories = [canonical, *sorted(path for path in canonical.rglob("*") if path.is_dir())]
    for directory in directories:
        if directory.name == "__pycache__":
            continue
        marker = directory / "__init__.py"
        if marker.exists():
            continue
        try:
            marker.write_text("", encoding="utf-8")
        except OSError as exc:
            raise PostProcessError(f"Cannot create {marker}: {exc}") from exc
        created.append(marker)
    return created


__all__ = ["ensure_packages", "fix_imports", "generated_modules", "rewrite_imports"]
