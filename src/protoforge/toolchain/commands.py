"""Generator command plans per language.

A plan is an ordered list of ``GeneratorStep``s. Steps name a logical program
(``grpc_tools.protoc``, ``protoc``, ``pbjs``...) and carry arguments whose
paths have already been mapped by the runner that will execute them, so the
same plan shape works on the host and inside the build container.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from protoforge.core.config import BuildConfig
from protoforge.core.errors import WorkspaceError

if TYPE_CHECKING:
    from .runners import ToolRunner

PROGRAM_GRPC_TOOLS = "grpc_tools.protoc"
PROGRAM_PROTOC = "protoc"
PROGRAM_NODE_PROTOC = "grpc_tools_node_protoc"
PROGRAM_PBJS = "pbjs"
PROGRAM_PBTS = "pbts"
PROGRAM_BLACK = "black"
PROGRAM_ISORT = "isort"
PROGRAM_PRETTIER = "prettier"

# Programs launched as ``python -m <program>``
PYTHON_MODULE_PROGRAMS = frozenset({PROGRAM_GRPC_TOOLS, PROGRAM_BLACK, PROGRAM_ISORT})

DESCRIPTOR_SET_NAME = "descriptors.binpb"
PBJS_MODULE = "protobuf"

_JS_OUT = "import_style=commonjs,binary"
_GRPC_WEB_OUT = "import_style=typescript,mode=grpcwebtext"


@dataclass(slots=True, frozen=True)
class GeneratorStep:
    """One generator call."""

    label: str
    program: str
    args: tuple[str, ...]


def find_sources(source_dir: Path) -> list[Path]:
    """All ``.proto`` files under ``source_dir`` in sorted order."""

    if not source_dir.is_dir():
        raise WorkspaceError(f"Proto source directory not found: {source_dir}")
    return sorted(path for path in source_dir.rglob("*.proto") if path.is_file())


def plan_generation(
    config: BuildConfig,
    sources: Sequence[Path],
    runner: ToolRunner,
) -> list[GeneratorStep]:
    """Build the generator steps for ``config`` over ``sources``."""

    if not sources:
        raise WorkspaceError(f"No .proto files found under {config.source_dir}")
    if config.language == "python":
        return _plan_python(config, sources, runner)
    if config.generator == "pbjs":
        return _plan_pbjs(config, sources, runner)
    return _plan_typescript(config, sources, runner)


def _proto_paths(config: BuildConfig, runner: ToolRunner) -> list[str]:
    paths = [f"--proto_path={runner.map_path(config.source_dir)}"]
    paths.extend(f"--proto_path={include}" for include in runner.include_dirs(config.language))
    return paths


def _mapped_sources(sources: Sequence[Path], runner: ToolRunner) -> list[str]:
    return [runner.map_path(path) for path in sources]


def _descriptor_args(config: BuildConfig, runner: ToolRunner) -> list[str]:
    target = runner.map_path(config.intermediate_dir / DESCRIPTOR_SET_NAME)
    return [f"--descriptor_set_out={target}", "--include_imports"]


def _plan_python(config: BuildConfig, sources: Sequence[Path], runner: ToolRunner) -> list[GeneratorStep]:
    out = runner.map_path(config.intermediate_dir)
    args = [
        *_proto_paths(config, runner),
        f"--python_out={out}",
        f"--pyi_out={out}",
    ]
    if config.features.grpc:
        args.append(f"--grpc_python_out={out}")
    args.extend(_descriptor_args(config, runner))
    args.extend(_mapped_sources(sources, runner))
    return [GeneratorStep(label="grpc_tools.protoc", program=PROGRAM_GRPC_TOOLS, args=tuple(args))]


def _plan_typescript(config: BuildConfig, sources: Sequence[Path], runner: ToolRunner) -> list[GeneratorStep]:
    out = runner.map_path(config.intermediate_dir)
    files = _mapped_sources(sources, runner)
    steps = [
        GeneratorStep(
            label="protoc",
            program=PROGRAM_PROTOC,
            args=(
                f"--js_out={_JS_OUT}:{out}",
                f"--ts_out={out}",
                *_proto_paths(config, runner),
                *_descriptor_args(config, runner),
                *files,
            ),
        )
    ]
    steps.extend(_grpc_steps(config, runner, out, files))
    return steps


def _plan_pbjs(config: BuildConfig, sources: Sequence[Path], runner: ToolRunner) -> list[GeneratorStep]:
    js_module = runner.map_path(config.intermediate_dir / f"{PBJS_MODULE}.js")
    dts_module = runner.map_path(config.intermediate_dir / f"{PBJS_MODULE}.d.ts")
    out = runner.map_path(config.intermediate_dir)
    files = _mapped_sources(sources, runner)
    steps = [
        GeneratorStep(
            label="pbjs",
            program=PROGRAM_PBJS,
            args=(
                "--target",
                "static-module",
                "--wrap",
                "commonjs",
                "--path",
                runner.map_path(config.source_dir),
                "--out",
                js_module,
                *files,
            ),
        ),
        GeneratorStep(label="pbts", program=PROGRAM_PBTS, args=("--out", dts_module, js_module)),
    ]
    steps.extend(_grpc_steps(config, runner, out, files))
    return steps


def _grpc_steps(
    config: BuildConfig,
    runner: ToolRunner,
    out: str,
    files: Sequence[str],
) -> list[GeneratorStep]:
    steps: list[GeneratorStep] = []
    if config.features.grpc:
        steps.append(
            GeneratorStep(
                label="grpc_tools_node_protoc (grpc)",
                program=PROGRAM_NODE_PROTOC,
                args=(
                    f"--js_out={_JS_OUT}:{out}",
                    f"--grpc_out=grpc_js:{out}",
                    *_proto_paths(config, runner),
                    *files,
                ),
            )
        )
    if config.features.grpc_web:
        steps.append(
            GeneratorStep(
                label="grpc_tools_node_protoc (grpc-web)",
                program=PROGRAM_NODE_PROTOC,
                args=(
                    f"--js_out={_JS_OUT}:{out}",
                    f"--grpc-web_out={_GRPC_WEB_OUT}:{out}",
                    *_proto_paths(config, runner),
                    *files,
                ),
            )
        )
    return steps


def plan_formatting(config: BuildConfig, runner: ToolRunner) -> list[GeneratorStep]:
    """Formatter steps over the canonical tree."""

    target = runner.map_path(config.canonical_dir)
    if config.language == "python":
        return [
            GeneratorStep(
                label="black",
                program=PROGRAM_BLACK,
                args=(
                    f"--line-length={config.line_length}",
                    f"--target-version=py{config.versions.runtime_tag}",
                    "--quiet",
                    target,
                ),
            ),
            GeneratorStep(
                label="isort",
                program=PROGRAM_ISORT,
                args=("--profile", "black", f"--line-length={config.line_length}", "--quiet", target),
            ),
        ]
    return [
        GeneratorStep(
            label="prettier",
            program=PROGRAM_PRETTIER,
            args=("--write", "--log-level", "warn", target),
        )
    ]


__all__ = [
    "DESCRIPTOR_SET_NAME",
    "GeneratorStep",
    "PBJS_MODULE",
    "PROGRAM_BLACK",
    "PROGRAM_ISORT",
    "PROGRAM_PRETTIER",
    "PYTHON_MODULE_PROGRAMS",
    "PROGRAM_GRPC_TOOLS",
    "PROGRAM_NODE_PROTOC",
    "PROGRAM_PBJS",
    "PROGRAM_PBTS",
    "PROGRAM_PROTOC",
    "find_sources",
    "plan_formatting",
    "plan_generation",
]
