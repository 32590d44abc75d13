"""Package entry-file synthesis.

Exports are derived from the discovered units, one per generated module.
Type-declaration files are folded into the module they describe. When two
modules share a leaf name (``api/v1/greeter_pb2`` and ``api/v2/greeter_pb2``)
every one of them is exported under an alias built from its path, so no module
is shadowed. Rendering is sorted and deterministic.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, defaultdict
from pathlib import Path, PurePosixPath
from typing import Iterable

from protoforge.core.config import BuildConfig
from protoforge.core.errors import PostProcessError

from .units import EntryExport, ExportKind, GeneratedUnit, UnitKind

LOGGER = logging.getLogger("protoforge.postprocess")

_NON_IDENTIFIER = re.compile(r"\W")


def derive_exports(units: Iterable[GeneratedUnit]) -> list[EntryExport]:
    by_module: dict[PurePosixPath, list[GeneratedUnit]] = defaultdict(list)
    for unit in units:
        by_module[unit.module_path].append(unit)

    leaf_counts = Counter(module.name for module in by_module)
    symbols = _assign_symbols(sorted(by_module), leaf_counts)
    exports: list[EntryExport] = []
    for module_path in sorted(by_module):
        members = by_module[module_path]
        kind = (
            ExportKind.SERVICE_MODULE
            if any(unit.kind is UnitKind.SERVICE for unit in members)
            else ExportKind.MESSAGE_MODULE
        )
        exports.append(
            EntryExport(
                kind=kind,
                module_path=module_path,
                symbol=symbols[module_path],
                proto_package=members[0].proto_package,
                extensions=tuple(sorted({unit.extension for unit in members})),
            )
        )
    return exports


def _assign_symbols(
    module_paths: list[PurePosixPath],
    leaf_counts: Counter[str],
) -> dict[PurePosixPath, str]:
    # Unaliased leaves are claimed first so an alias never takes a module's own name.
    symbols: dict[PurePosixPath, str] = {}
    taken: set[str] = set()
    for module_path in module_paths:
        symbol = _NON_IDENTIFIER.sub("_", module_path.name)
        if leaf_counts[module_path.name] == 1 and symbol not in taken:
            symbols[module_path] = symbol
            taken.add(symbol)
    for module_path in module_paths:
        if module_path in symbols:
            continue
        base = _NON_IDENTIFIER.sub("_", "_".join(module_path.parts))
        symbol = base
        suffix = 2
        while symbol in taken:
            symbol = f"{base}_{suffix}"
            suffix += 1
        symbols[module_path] = symbol
        taken.add(symbol)
    return symbols


def render_python_entry(exports: Iterable[EntryExport], package_name: str) -> str:
    exports = list(exports)
    lines = [f'"""Generated protobuf bindings for {package_name}."""', ""]
    for export in exports:
        parent = ".".join(export.module_path.parent.parts)
        alias = f" as {export.symbol}" if export.aliased else ""
        lines.append(f"from .{parent} import {export.module_path.name}{alias}")
    lines.append("")
    lines.append("__all__ = [")
    lines.extend(f'    "{symbol}",' for symbol in sorted(export.symbol for export in exports))
    lines.append("]")
    return "\n".join(lines) + "\n"


def _typescript_target(export: EntryExport) -> str:
    # tsc compiles src/*.ts into dist/; generated .js stays in src/.
    base = "src" if ".js" in export.extensions else "dist"
    return f"./{base}/{export.module_path.as_posix()}"


def render_typescript_entry(exports: Iterable[EntryExport]) -> tuple[str, str]:
    """Return ``(index.js, index.d.ts)`` contents."""

    exports = list(exports)
    js_lines = ['"use strict";', 'Object.defineProperty(exports, "__esModule", { value: true });']
    dts_lines: list[str] = []
    for export in exports:
        target = _typescript_target(export)
        js_lines.append(f'exports.{export.symbol} = require("{target}");')
        dts_lines.append(f'export * as {export.symbol} from "{target}";')
    if not dts_lines:
        dts_lines.append("export {};")
    return "\n".join(js_lines) + "\n", "\n".join(dts_lines) + "\n"


def synthesize_entry_points(config: BuildConfig, units: Iterable[GeneratedUnit]) -> list[EntryExport]:
    """Write the package entry file(s) for ``units`` and return the exports."""

    exports = derive_exports(units)
    if not exports:
        raise PostProcessError("No generated modules to export")
    try:
        if config.language == "python":
            _write(config.canonical_dir / "__init__.py", render_python_entry(exports, config.package_name))
        else:
            index_js, index_dts = render_typescript_entry(exports)
            _write(config.package_root / "index.js", index_js)
            _write(config.package_root / "index.d.ts", index_dts)
    except OSError as exc:
        raise PostProcessError(f"Cannot write entry points: {exc}") from exc
    aliased = sum(1 for export in exports if export.aliased)
    LOGGER.info("Entry points export %d modules (%d aliased)", len(exports), aliased)
    return exports


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


__all__ = [
    "derive_exports",
    "render_python_entry",
    "render_typescript_entry",
    "synthesize_entry_points",
]
