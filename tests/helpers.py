"""Shared helpers for tests.

Fakes for the two external boundaries of a pipeline run: the generator runner
and the host-side toolchain invoker. ``FakeRunner`` writes output shaped like
the real generators so post-processing runs against realistic trees.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Sequence

from google.protobuf import descriptor_pb2

from protoforge.core.config import BuildConfig
from protoforge.core.errors import ForgeError, ToolchainError
from protoforge.packager.builder import PackageBuilder
from protoforge.pipeline.coordinator import PipelineCoordinator
from protoforge.toolchain.commands import DESCRIPTOR_SET_NAME, PBJS_MODULE, GeneratorStep, find_sources
from protoforge.toolchain.invoker import InvocationResult

_PACKAGE_RE = re.compile(r"^package\s+([\w.]+)\s*;", re.MULTILINE)


def _ok(label: str, args: Sequence[str]) -> InvocationResult:
    return InvocationResult(label, tuple(args), 0, "", "", 1.0)


def write_descriptor_set(path: Path, packages: dict[str, str]) -> None:
    """Serialise a FileDescriptorSet mapping proto file names to packages."""

    descriptor_set = descriptor_pb2.FileDescriptorSet()
    for name, package in sorted(packages.items()):
        proto = descriptor_set.file.add()
        proto.name = name
        proto.package = package
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(descriptor_set.SerializeToString())


def _proto_modules(config: BuildConfig) -> list[tuple[PurePosixPath, str]]:
    modules = []
    for source in find_sources(config.source_dir):
        relative = PurePosixPath(source.relative_to(config.source_dir).as_posix())
        match = _PACKAGE_RE.search(source.read_text())
        modules.append((relative, match.group(1) if match else ""))
    return modules


def _write(root: Path, relative: PurePosixPath, content: str) -> None:
    path = root.joinpath(*relative.parts)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def _python_output(config: BuildConfig, step: GeneratorStep) -> None:
    out = config.intermediate_dir
    grpc = any(arg.startswith("--grpc_python_out=") for arg in step.args)
    modules = _proto_modules(config)
    for relative, _package in modules:
        stem = relative.with_suffix("")
        leaf = stem.name
        _write(
            out,
            stem.with_name(f"{leaf}_pb2.py"),
            "from google.protobuf import descriptor_pool as _descriptor_pool\n",
        )
        _write(out, stem.with_name(f"{leaf}_pb2.pyi"), "from google.protobuf import message as _message\n")
        if grpc:
            parent = ".".join(stem.parent.parts)
            alias = f"{'_dot_'.join(stem.parts)}__pb2"
            if parent:
                line = f"from {parent} import {leaf}_pb2 as {alias}"
            else:
                line = f"import {leaf}_pb2 as {alias}"
            _write(out, stem.with_name(f"{leaf}_pb2_grpc.py"), f"import grpc\n\n{line}\n")
    write_descriptor_set(out / DESCRIPTOR_SET_NAME, {str(rel): pkg for rel, pkg in modules})


def _typescript_output(config: BuildConfig, step: GeneratorStep) -> None:
    out = config.intermediate_dir
    modules = _proto_modules(config)
    for relative, _package in modules:
        stem = relative.with_suffix("")
        leaf = stem.name
        if step.program == "protoc":
            _write(out, stem.with_name(f"{leaf}_pb.js"), "// messages\n")
            _write(out, stem.with_name(f"{leaf}_pb.d.ts"), "export {};\n")
        elif "grpc-web" in step.label:
            _write(out, stem.with_name(f"{leaf.title()}ServiceClientPb.ts"), "export class Client {}\n")
        else:
            _write(out, stem.with_name(f"{leaf}_grpc_pb.js"), "// services\n")
            _write(out, stem.with_name(f"{leaf}_grpc_pb.d.ts"), "export {};\n")
    if step.program == "protoc":
        write_descriptor_set(out / DESCRIPTOR_SET_NAME, {str(rel): pkg for rel, pkg in modules})


def _pbjs_output(config: BuildConfig, step: GeneratorStep) -> None:
    out = config.intermediate_dir
    if step.program == "pbjs":
        _write(out, PurePosixPath(f"{PBJS_MODULE}.js"), "// static module\n")
    else:
        _write(out, PurePosixPath(f"{PBJS_MODULE}.d.ts"), "export {};\n")


_OUTPUT_WRITERS: dict[str, Callable[[BuildConfig, GeneratorStep], None]] = {
    "grpc_tools.protoc": _python_output,
    "protoc": _typescript_output,
    "grpc_tools_node_protoc": _typescript_output,
    "pbjs": _pbjs_output,
    "pbts": _pbjs_output,
}


class FakeRunner:
    """ToolRunner writing generator-shaped output into the intermediate tree."""

    def __init__(
        self,
        config: BuildConfig,
        *,
        name: str = "local",
        fail_labels: Iterable[str] = (),
        acquire_error: ForgeError | None = None,
        write_output: bool = True,
    ) -> None:
        self.name = name
        self.config = config
        self.steps: list[GeneratorStep] = []
        self.acquired = 0
        self.released = 0
        self._fail_labels = set(fail_labels)
        self._acquire_error = acquire_error
        self._write_output = write_output

    @property
    def labels(self) -> list[str]:
        return [step.label for step in self.steps]

    def acquire(self) -> None:
        self.acquired += 1
        if self._acquire_error is not None:
            raise self._acquire_error

    def release(self) -> None:
        self.released += 1

    def map_path(self, path: Path) -> str:
        return str(path)

    def include_dirs(self, language: str) -> list[str]:
        return []

    def run(self, step: GeneratorStep) -> InvocationResult:
        self.steps.append(step)
        if step.label in self._fail_labels:
            raise ToolchainError(step.label, 1, "simulated failure")
        writer = _OUTPUT_WRITERS.get(step.program)
        if writer is not None and self._write_output:
            writer(self.config, step)
        return _ok(step.label, step.args)


@dataclass(slots=True)
class Call:
    tool: str
    args: tuple[str, ...]
    working_root: Path | None
    label: str


class FakeInvoker:
    """Stands in for ``ToolchainInvoker``; records calls and raises on request."""

    def __init__(
        self,
        *,
        failures: dict[str, ForgeError] | None = None,
        on_call: Callable[[Call], None] | None = None,
        timeout_s: float = 600.0,
    ) -> None:
        self.calls: list[Call] = []
        self.timeout_s = timeout_s
        self._failures = dict(failures or {})
        self._on_call = on_call

    @property
    def labels(self) -> list[str]:
        return [call.label for call in self.calls]

    def invoke(
        self,
        tool: str,
        args: Sequence[str] = (),
        working_root: Path | None = None,
        *,
        label: str | None = None,
        check: bool = True,
    ) -> InvocationResult:
        call = Call(tool, tuple(args), working_root, label or Path(tool).name)
        self.calls.append(call)
        if call.label in self._failures:
            raise self._failures[call.label]
        if self._on_call is not None:
            self._on_call(call)
        return _ok(call.label, call.args)


def artifact_writer(config: BuildConfig, *, count: int = 1) -> Callable[[Call], None]:
    """``on_call`` hook that drops ``count`` artifacts into ``dist/`` at the build step."""

    def _write_artifact(call: Call) -> None:
        dist = config.dist_dir
        if call.label == "uv build":
            for index in range(count):
                suffix = "" if index == 0 else f"_{index}"
                name = f"{config.module_name}{suffix}-{config.package_version}-py3-none-any.whl"
                (dist / name).write_bytes(b"wheel:" + config.package_version.encode())
        elif call.label == "npm pack":
            for index in range(count):
                suffix = "" if index == 0 else f"-{index}"
                name = f"{config.package_name}{suffix}-{config.package_version}.tgz"
                (dist / name).write_bytes(b"tarball:" + config.package_version.encode())

    return _write_artifact


def which_all(tool: str) -> str:
    return f"/usr/bin/{tool}"


def which_none(tool: str) -> None:
    return None


def fake_coordinator(config: BuildConfig) -> PipelineCoordinator:
    """Coordinator wired to the fakes; module-level so worker processes can unpickle it."""

    invoker = FakeInvoker(on_call=artifact_writer(config))
    return PipelineCoordinator(
        config,
        invoker=invoker,
        runner=FakeRunner(config),
        builder=PackageBuilder(invoker, which=which_all),
        sleep=lambda seconds: None,
    )
