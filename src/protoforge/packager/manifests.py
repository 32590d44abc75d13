"""Package manifest templates.

Pure templating over ``BuildConfig``: every run rewrites the manifests, so a
change of version pins is always reflected in the built artifact.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from protoforge.core.config import BuildConfig
from protoforge.core.errors import PackagerError

LOGGER = logging.getLogger("protoforge.packager")

PYPROJECT_TEMPLATE = """\
[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "{package_name}"
version = "{package_version}"
description = "Python client libraries generated from protobuf definitions"
readme = "README.md"
requires-python = ">={runtime}"
dependencies = [
    "grpcio>={grpc}",
    "grpcio-tools>={grpc}",
    "protobuf>=4.0.0",
]

[tool.hatch.build.targets.wheel]
packages = ["{module_name}"]
"""

PYTHON_README_TEMPLATE = """\
# {package_name}

Python client libraries generated from protobuf definitions.

## Generated from

- Protocol Buffers version: {protoc}
- gRPC version: {grpc}
- Python version: {runtime}
"""

TYPESCRIPT_README_TEMPLATE = """\
# {package_name}

TypeScript/JavaScript client libraries generated from protobuf definitions.

## Generated from

- Protocol Buffers version: {protoc}
- gRPC version: {grpc}
- Node.js version: {runtime}
- Generator: {generator}
- gRPC generation: {grpc_enabled}
- gRPC-Web generation: {grpc_web_enabled}
"""

TSCONFIG: dict[str, Any] = {
    "compilerOptions": {
        "target": "ES2020",
        "module": "commonjs",
        "lib": ["ES2020"],
        "declaration": True,
        "outDir": "./dist",
        "rootDir": "./src",
        "strict": True,
        "esModuleInterop": True,
        "skipLibCheck": True,
        "forceConsistentCasingInFileNames": True,
        "resolveJsonModule": True,
        "moduleResolution": "node",
        "allowSyntheticDefaultImports": True,
        "experimentalDecorators": True,
        "emitDecoratorMetadata": True,
    },
    "include": ["src/**/*"],
    "exclude": ["node_modules", "dist"],
}


def render_pyproject(config: BuildConfig) -> str:
    return PYPROJECT_TEMPLATE.format(
        package_name=config.package_name,
        package_version=config.package_version,
        runtime=config.versions.runtime,
        grpc=config.versions.grpc,
        module_name=config.module_name,
    )


def render_package_json(config: BuildConfig) -> str:
    manifest = {
        "name": config.package_name,
        "version": config.package_version,
        "description": "TypeScript client library generated from protobuf definitions",
        "main": "index.js",
        "types": "index.d.ts",
        "files": ["index.js", "index.d.ts", "src", "dist"],
        "scripts": {"build": "tsc"},
        "dependencies": {
            "protobufjs": "^7.2.0",
            "@grpc/grpc-js": f"^{config.versions.grpc}",
            "@grpc/proto-loader": "^0.7.0",
            "google-protobuf": "^3.21.2",
        },
        "engines": {"node": f">={_node_floor(config.versions.runtime)}"},
    }
    return json.dumps(manifest, indent=2) + "\n"


def render_tsconfig() -> str:
    return json.dumps(TSCONFIG, indent=2) + "\n"


def render_readme(config: BuildConfig) -> str:
    values = {
        "package_name": config.package_name,
        "protoc": config.versions.protoc,
        "grpc": config.versions.grpc,
        "runtime": config.versions.runtime,
    }
    if config.language == "python":
        return PYTHON_README_TEMPLATE.format(**values)
    return TYPESCRIPT_README_TEMPLATE.format(
        **values,
        generator=config.generator,
        grpc_enabled=str(config.features.grpc).lower(),
        grpc_web_enabled=str(config.features.grpc_web).lower(),
    )


def write_manifest(config: BuildConfig) -> list[Path]:
    """Write the manifest files into the package root; returns written paths."""

    root = config.package_root
    if config.language == "python":
        files = {"pyproject.toml": render_pyproject(config)}
    else:
        files = {"package.json": render_package_json(config), "tsconfig.json": render_tsconfig()}
    files["README.md"] = render_readme(config)

    written: list[Path] = []
    for name, content in files.items():
        path = root / name
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise PackagerError(f"Cannot write {path}: {exc}") from exc
        written.append(path)
    LOGGER.info("Wrote %s manifest for %s %s", config.language, config.package_name, config.package_version)
    return written


def _node_floor(runtime: str) -> str:
    parts = runtime.split(".")
    parts.extend(["0"] * (3 - len(parts)))
    return ".".join(parts[:3])


__all__ = [
    "render_package_json",
    "render_pyproject",
    "render_readme",
    "render_tsconfig",
    "write_manifest",
]
