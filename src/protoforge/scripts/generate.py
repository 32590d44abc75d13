#!/usr/bin/env python3
"""protoforge command line.

Usage:
    protoforge python --clean
    protoforge typescript --grpc --generator pbjs
    protoforge all --parallel
    protoforge clean --images
    protoforge status
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Sequence

from pydantic import ValidationError
from rich.table import Table

from protoforge.core.config import LANGUAGES, BuildConfig, ForgeSettings, deep_merge
from protoforge.core.console import StatusConsole, configure_logging
from protoforge.core.errors import (
    ConfigError,
    ForgeError,
    PackagerError,
    PostProcessError,
    ToolchainError,
    ToolchainTimeout,
    WorkspaceError,
)
from protoforge.library.catalog import ArtifactLibrary
from protoforge.pipeline.coordinator import PipelineCoordinator, PipelineReport, run_pipelines
from protoforge.toolchain.invoker import ToolchainInvoker
from protoforge.workspace.manager import WorkspaceManager

_logger = logging.getLogger(__name__)

EXIT_CODES: dict[type[ForgeError], int] = {
    WorkspaceError: 2,
    ToolchainError: 3,
    ToolchainTimeout: 4,
    PostProcessError: 5,
    PackagerError: 6,
    ConfigError: 7,
}

_RUNTIME_LABELS = {"python": "Python", "typescript": "Node.js"}


def exit_code_for(error: BaseException | None) -> int:
    if error is None:
        return 0
    for error_type, code in EXIT_CODES.items():
        if isinstance(error, error_type):
            return code
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protoforge",
        description="Generate, package and publish protobuf client libraries",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML file with build settings")
    parser.add_argument("--project-root", type=Path, default=None, help="Project root (default: cwd)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: PROTOFORGE_LOG_LEVEL or INFO)",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--clean", action="store_true", default=None, help="Clean build (remove existing generated files)")
    common.add_argument("-v", "--verbose", action="store_true", default=None, help="Log full generator output")
    common.add_argument("--runner", choices=["container", "local"], default=None, help="Where generators run")

    build = argparse.ArgumentParser(add_help=False)
    build.add_argument("--grpc-version", default=None, help="gRPC version to use")
    build.add_argument("--protoc-version", default=None, help="Protobuf compiler version")
    build.add_argument("--timeout", type=float, default=None, metavar="S", help="Per-tool timeout in seconds")
    build.add_argument("--no-format", dest="format_code", action="store_false", default=None, help="Skip code formatting")

    subparsers = parser.add_subparsers(dest="command", required=True)

    python_parser = subparsers.add_parser(
        "python",
        help="Generate and package Python modules",
        parents=[common, build],
    )
    python_parser.add_argument("--python-version", dest="runtime_version", default=None, help="Python version (default: 3.11)")
    python_parser.add_argument("--no-grpc", dest="grpc", action="store_false", default=None, help="Skip gRPC stubs")

    typescript_parser = subparsers.add_parser(
        "typescript",
        help="Generate and package TypeScript/JavaScript modules",
        parents=[common, build],
    )
    typescript_parser.add_argument("--node-version", dest="runtime_version", default=None, help="Node.js version (default: 20)")
    typescript_parser.add_argument("--grpc", dest="grpc", action="store_true", default=None, help="Generate gRPC stubs")
    typescript_parser.add_argument("--grpc-web", dest="grpc_web", action="store_true", default=None, help="Generate gRPC-Web stubs")
    typescript_parser.add_argument("--generator", choices=["protoc", "pbjs"], default=None, help="Generator family")

    all_parser = subparsers.add_parser("all", help="Build every language", parents=[common])
    all_parser.add_argument("--parallel", action="store_true", help="Build languages in separate processes")

    clean_parser = subparsers.add_parser("clean", help="Remove generated files")
    clean_parser.add_argument("--images", action="store_true", help="Also remove builder Docker images")

    subparsers.add_parser("status", help="Show repository status")
    return parser


def cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Flags given on the command line, as ``BuildConfig`` fields."""

    overrides: dict[str, Any] = {}
    for attr, key in (
        ("clean", "clean"),
        ("verbose", "verbose"),
        ("runner", "runner"),
        ("timeout", "timeout_s"),
        ("format_code", "format_code"),
        ("generator", "generator"),
    ):
        value = getattr(args, attr, None)
        if value is not None:
            overrides[key] = value
    versions = {
        key: getattr(args, attr, None)
        for attr, key in (
            ("runtime_version", "runtime"),
            ("grpc_version", "grpc"),
            ("protoc_version", "protoc"),
        )
    }
    versions = {key: value for key, value in versions.items() if value is not None}
    if versions:
        overrides["versions"] = versions
    features = {key: getattr(args, key, None) for key in ("grpc", "grpc_web")}
    features = {key: value for key, value in features.items() if value is not None}
    if features:
        overrides["features"] = features
    return overrides


def resolve_config(language: str, args: argparse.Namespace, settings: ForgeSettings) -> BuildConfig:
    base = settings.as_overrides()
    if args.project_root is not None:
        base["project_root"] = args.project_root
    overrides = cli_overrides(args)
    config_file = args.config or (Path(settings.config_file) if settings.config_file else None)
    if config_file is not None:
        return BuildConfig.from_yaml(config_file, language, overrides, base=base)
    return BuildConfig.for_language(language, deep_merge(base, overrides))


def _announce(config: BuildConfig, out: StatusConsole) -> None:
    out.info(f"Starting {config.language} module generation...")
    out.info(f"{_RUNTIME_LABELS[config.language]} version: {config.versions.runtime}")
    out.info(f"gRPC version: {config.versions.grpc}")
    out.info(f"Protoc version: {config.versions.protoc}")
    if config.language == "typescript":
        out.info(f"Generator: {config.generator}")
        out.info(f"Generate gRPC: {str(config.features.grpc).lower()}")
        out.info(f"Generate gRPC-Web: {str(config.features.grpc_web).lower()}")


def _summarise(report: PipelineReport, out: StatusConsole) -> int:
    for warning in report.warnings:
        out.warning(warning)
    if not report.ok:
        error = report.error
        out.error(f"{report.language}: {report.failed_stage}: {report.error_type}: {error}")
        return exit_code_for(error)
    out.success(f"{report.language} module generation completed successfully!")
    if report.artifact is not None:
        out.info(f"Artifact: {report.artifact.path} (sha256 {report.artifact.checksum})")
    return 0


def run_language(language: str, args: argparse.Namespace, settings: ForgeSettings, out: StatusConsole) -> int:
    config = resolve_config(language, args, settings)
    _announce(config, out)
    coordinator = PipelineCoordinator(config)
    try:
        report = coordinator.run()
    except ForgeError:
        report = coordinator.report
    return _summarise(report, out)


def run_all(args: argparse.Namespace, settings: ForgeSettings, out: StatusConsole) -> int:
    configs = [resolve_config(language, args, settings) for language in LANGUAGES]
    for config in configs:
        _announce(config, out)
    reports = run_pipelines(configs, parallel=args.parallel)
    codes = [_summarise(report, out) for report in reports]
    failures = [code for code in codes if code]
    if failures:
        return failures[0]
    out.success("All modules generated successfully!")
    return 0


def run_clean(args: argparse.Namespace, settings: ForgeSettings, out: StatusConsole) -> int:
    root = _project_root(args, settings)
    manager = WorkspaceManager()
    out.info("Cleaning generated files...")
    removed = manager.clean(root)
    out.success(f"Generated files cleaned ({len(removed)} trees removed)")
    if args.images:
        out.info("Cleaning Docker images...")
        images = manager.remove_images(ToolchainInvoker(timeout_s=settings.timeout_s))
        out.success(f"Docker images cleaned: {', '.join(images) or 'none'}")
    return 0


def run_status(args: argparse.Namespace, settings: ForgeSettings, out: StatusConsole) -> int:
    configs = [resolve_config(language, args, settings) for language in LANGUAGES]
    source_dir = configs[0].source_dir
    proto_count = len(list(source_dir.rglob("*.proto"))) if source_dir.is_dir() else 0

    table = Table(title="protoforge status")
    table.add_column("Item")
    table.add_column("Value")
    table.add_row("Proto files", f"{proto_count} files in {source_dir}")

    catalog_path = configs[0].catalog_path
    library = ArtifactLibrary(catalog_path.parent) if catalog_path.exists() else None
    try:
        for config in configs:
            generated = "yes" if config.canonical_dir.is_dir() else "no"
            table.add_row(f"Generated {config.language}", generated)
            record = library.latest(config.language) if library is not None else None
            table.add_row(f"Artifact {config.language}", f"{record.filename} ({record.version})" if record else "-")
    finally:
        if library is not None:
            library.close()

    table.add_row("Docker running", "yes" if _docker_running(settings) else "no")
    out.table(table)
    return 0


def _docker_running(settings: ForgeSettings) -> bool:
    invoker = ToolchainInvoker(timeout_s=min(settings.timeout_s, 30.0))
    try:
        return invoker.invoke("docker", ["info"], label="docker info", check=False).ok
    except ForgeError as exc:
        _logger.debug("Docker check failed: %s", exc)
        return False


def _project_root(args: argparse.Namespace, settings: ForgeSettings) -> Path:
    if args.project_root is not None:
        return args.project_root.resolve()
    if settings.project_root:
        return Path(settings.project_root).resolve()
    return Path.cwd()


_COMMANDS = {
    "all": run_all,
    "clean": run_clean,
    "status": run_status,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    out = StatusConsole()
    try:
        settings = ForgeSettings()
    except ValidationError as exc:
        configure_logging("INFO")
        out.error(f"Invalid PROTOFORGE_* environment settings:\n{exc}")
        return EXIT_CODES[ConfigError]
    configure_logging(args.log_level or settings.log_level)

    try:
        if args.command in LANGUAGES:
            return run_language(args.command, args, settings, out)
        return _COMMANDS[args.command](args, settings, out)
    except ForgeError as exc:
        stage = f"{exc.stage}: " if exc.stage else ""
        out.error(f"{stage}{type(exc).__name__}: {exc}")
        return exit_code_for(exc)


if __name__ == "__main__":
    raise SystemExit(main())
