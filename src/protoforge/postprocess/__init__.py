"""Post-processing: discovery, relocation, import fixing, entry files, formatting."""

from .discovery import classify, discover, load_descriptor_packages
from .entrypoints import derive_exports, render_python_entry, render_typescript_entry, synthesize_entry_points
from .formatting import format_tree
from .imports import ensure_packages, fix_imports, rewrite_imports
from .processor import PostProcessor
from .relocate import RelocationResult, relocate
from .units import EntryExport, ExportKind, GeneratedUnit, UnitKind

__all__ = [
    "EntryExport",
    "ExportKind",
    "GeneratedUnit",
    "PostProcessor",
    "RelocationResult",
    "UnitKind",
    "classify",
    "derive_exports",
    "discover",
    "ensure_packages",
    "fix_imports",
    "format_tree",
    "load_descriptor_packages",
    "relocate",
    "render_python_entry",
    "render_typescript_entry",
    "rewrite_imports",
    "synthesize_entry_points",
]
