"""protoforge - protobuf package build pipeline.

Turns a tree of ``.proto`` sources into installable, versioned packages:
sources -> generators -> canonical package tree -> manifest -> artifact.

Subpackages:
- core: configuration, errors, console output
- toolchain: external generator invocation (host or build container)
- workspace: directory lifecycle and teardown
- postprocess: relocation, import fixing, entry files, formatting
- packager: manifests and native package builders
- library: published artifact catalog
- pipeline: stage coordinator
"""

__version__ = "0.3.0"

from protoforge.core import BuildConfig, ForgeError, ForgeSettings
from protoforge.pipeline import PipelineCoordinator, PipelineReport, PipelineState, run_pipelines

__all__ = [
    "BuildConfig",
    "ForgeError",
    "ForgeSettings",
    "PipelineCoordinator",
    "PipelineReport",
    "PipelineState",
    "run_pipelines",
]
