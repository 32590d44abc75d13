from __future__ import annotations

from pathlib import Path

import pytest

from protoforge.core.errors import WorkspaceError
from protoforge.toolchain.commands import find_sources, plan_formatting, plan_generation
from protoforge.toolchain.runners import ContainerRunner
from tests.helpers import FakeInvoker, FakeRunner

OUT = "/workspace/generated/code/python"


def _container(config) -> ContainerRunner:
    return ContainerRunner(config, FakeInvoker(), machine="x86_64")


def test_find_sources_is_sorted_and_recursive(proto_project: Path) -> None:
    extra = proto_project / "src" / "common" / "types.proto"
    extra.parent.mkdir(parents=True)
    extra.write_text('syntax = "proto3";\n')
    (proto_project / "src" / "README.md").write_text("docs")

    sources = find_sources(proto_project / "src")

    assert [path.relative_to(proto_project / "src").as_posix() for path in sources] == [
        "api/v1/greeter.proto",
        "common/types.proto",
    ]


def test_find_sources_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceError, match="not found"):
        find_sources(tmp_path / "missing")


class TestPythonPlan:
    """grpc_tools.protoc invocation for Python bindings."""

    def test_container_paths(self, make_config) -> None:
        config = make_config(runner="container")
        sources = find_sources(config.source_dir)

        steps = plan_generation(config, sources, _container(config))

        assert len(steps) == 1
        step = steps[0]
        assert step.program == "grpc_tools.protoc"
        assert step.args == (
            "--proto_path=/workspace/src",
            "--proto_path=/usr/local/include",
            f"--python_out={OUT}",
            f"--pyi_out={OUT}",
            f"--grpc_python_out={OUT}",
            f"--descriptor_set_out={OUT}/descriptors.binpb",
            "--include_imports",
            "/workspace/src/api/v1/greeter.proto",
        )

    def test_without_grpc(self, make_config) -> None:
        config = make_config(features={"grpc": False})
        steps = plan_generation(config, find_sources(config.source_dir), FakeRunner(config))
        assert not any(arg.startswith("--grpc_python_out") for arg in steps[0].args)

    def test_empty_sources_rejected(self, make_config) -> None:
        config = make_config()
        with pytest.raises(WorkspaceError, match="No .proto files"):
            plan_generation(config, [], FakeRunner(config))


class TestTypescriptPlans:
    """protoc and pbjs families with optional gRPC steps."""

    def test_protoc_only(self, make_config) -> None:
        config = make_config("typescript")
        steps = plan_generation(config, find_sources(config.source_dir), FakeRunner(config))

        assert [step.label for step in steps] == ["protoc"]
        out = str(config.intermediate_dir)
        assert steps[0].args[:2] == (f"--js_out=import_style=commonjs,binary:{out}", f"--ts_out={out}")
        assert steps[0].args[-1] == str(config.source_dir / "api" / "v1" / "greeter.proto")

    def test_grpc_and_grpc_web_steps(self, make_config) -> None:
        config = make_config("typescript", features={"grpc": True, "grpc_web": True})
        steps = plan_generation(config, find_sources(config.source_dir), FakeRunner(config))

        assert [step.label for step in steps] == [
            "protoc",
            "grpc_tools_node_protoc (grpc)",
            "grpc_tools_node_protoc (grpc-web)",
        ]
        out = str(config.intermediate_dir)
        assert f"--grpc_out=grpc_js:{out}" in steps[1].args
        assert f"--grpc-web_out=import_style=typescript,mode=grpcwebtext:{out}" in steps[2].args

    def test_pbjs_family(self, make_config) -> None:
        config = make_config("typescript", generator="pbjs", features={"grpc": True})
        steps = plan_generation(config, find_sources(config.source_dir), FakeRunner(config))

        assert [step.program for step in steps] == ["pbjs", "pbts", "grpc_tools_node_protoc"]
        js_module = str(config.intermediate_dir / "protobuf.js")
        assert steps[0].args[:4] == ("--target", "static-module", "--wrap", "commonjs")
        assert "--out" in steps[0].args and js_module in steps[0].args
        assert steps[1].args == ("--out", str(config.intermediate_dir / "protobuf.d.ts"), js_module)


class TestFormattingPlan:
    def test_python_formatters(self, make_config) -> None:
        config = make_config(line_length=100, runner="container")
        steps = plan_formatting(config, _container(config))

        target = "/workspace/generated/packages/python/protos_python"
        assert [step.label for step in steps] == ["black", "isort"]
        assert steps[0].args == ("--line-length=100", "--target-version=py311", "--quiet", target)
        assert steps[1].args == ("--profile", "black", "--line-length=100", "--quiet", target)

    def test_typescript_formatter(self, make_config) -> None:
        config = make_config("typescript")
        steps = plan_formatting(config, FakeRunner(config))

        assert [step.program for step in steps] == ["prettier"]
        assert steps[0].args[-1] == str(config.canonical_dir)
