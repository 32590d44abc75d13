"""Manifest templating and native package builds."""

from .builder import ARTIFACT_PATTERNS, PackageBuilder
from .manifests import render_package_json, render_pyproject, render_readme, render_tsconfig, write_manifest

__all__ = [
    "ARTIFACT_PATTERNS",
    "PackageBuilder",
    "render_package_json",
    "render_pyproject",
    "render_readme",
    "render_tsconfig",
    "write_manifest",
]
