from __future__ import annotations

import os
from pathlib import Path

import pytest

from protoforge.core.errors import ToolchainError, WorkspaceError
from protoforge.workspace.manager import BUILDER_IMAGES, WorkspaceManager
from tests.helpers import FakeInvoker


class TestPrepare:
    """Source validation and directory setup."""

    def test_creates_run_directories(self, make_config) -> None:
        config = make_config()

        workspace = WorkspaceManager().prepare(config)

        assert workspace.source == config.source_dir
        assert workspace.intermediate.is_dir()
        assert workspace.output.is_dir()
        assert workspace.artifacts.is_dir()
        assert workspace.canonical == config.canonical_dir
        assert [path.name for path in workspace.sources] == ["greeter.proto"]

    def test_missing_source_dir(self, make_config, proto_project: Path) -> None:
        config = make_config(source_dir="protos")
        with pytest.raises(WorkspaceError, match="not found"):
            WorkspaceManager().prepare(config)

    def test_source_path_is_a_file(self, make_config, proto_project: Path) -> None:
        (proto_project / "single.proto").write_text('syntax = "proto3";\n')
        config = make_config(source_dir="single.proto")
        with pytest.raises(WorkspaceError, match="not a directory"):
            WorkspaceManager().prepare(config)

    def test_source_without_protos(self, make_config, proto_project: Path) -> None:
        (proto_project / "empty").mkdir()
        config = make_config(source_dir="empty")
        with pytest.raises(WorkspaceError, match="No .proto files"):
            WorkspaceManager().prepare(config)

    def test_output_path_that_is_a_file(self, make_config) -> None:
        config = make_config()
        config.package_root.parent.mkdir(parents=True)
        config.package_root.write_text("not a directory")

        with pytest.raises(WorkspaceError, match="Expected a directory"):
            WorkspaceManager().prepare(config)

    def test_intermediate_is_always_reset(self, make_config) -> None:
        config = make_config()
        stale = config.intermediate_dir / "old_pb2.py"
        stale.parent.mkdir(parents=True)
        stale.write_text("stale")

        WorkspaceManager().prepare(config)

        assert not stale.exists()

    def test_package_tree_kept_without_clean(self, make_config) -> None:
        config = make_config()
        kept = config.package_root / "pyproject.toml"
        kept.parent.mkdir(parents=True)
        kept.write_text("[project]")

        WorkspaceManager().prepare(config)

        assert kept.exists()

    def test_clean_wipes_package_tree(self, make_config) -> None:
        config = make_config(clean=True)
        stale = config.canonical_dir / "old_pb2.py"
        stale.parent.mkdir(parents=True)
        stale.write_text("stale")

        WorkspaceManager().prepare(config)

        assert not stale.exists()
        assert config.package_root.is_dir()

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores directory permissions")
    def test_unwritable_output(self, make_config) -> None:
        config = make_config()
        generated = config.project_root / "generated"
        generated.mkdir()
        generated.chmod(0o500)
        try:
            with pytest.raises(WorkspaceError):
                WorkspaceManager().prepare(config)
        finally:
            generated.chmod(0o700)


class TestTeardown:
    """Scoped resources are released exactly once, last attached first."""

    def test_releases_in_reverse_order_once(self, make_config) -> None:
        manager = WorkspaceManager()
        workspace = manager.prepare(make_config())
        calls: list[str] = []
        workspace.attach("network", lambda: calls.append("network"))
        workspace.attach("container", lambda: calls.append("container"))

        manager.teardown(workspace)
        manager.teardown(workspace)

        assert calls == ["container", "network"]
        assert workspace.released == ("container", "network")
        assert workspace.closed

    def test_failing_release_does_not_stop_others(self, make_config, caplog) -> None:
        manager = WorkspaceManager()
        workspace = manager.prepare(make_config())
        calls: list[str] = []

        def _boom() -> None:
            raise ToolchainError("docker compose stop", 1, "no such service")

        workspace.attach("first", lambda: calls.append("first"))
        workspace.attach("broken", _boom)

        manager.teardown(workspace)

        assert calls == ["first"]
        assert workspace.released == ("broken", "first")
        assert "Failed to release broken" in caplog.text

    def test_attach_after_teardown(self, make_config) -> None:
        manager = WorkspaceManager()
        workspace = manager.prepare(make_config())
        manager.teardown(workspace)

        with pytest.raises(WorkspaceError, match="torn-down"):
            workspace.attach("late", lambda: None)


class TestClean:
    def test_removes_generated_trees_and_empty_parents(self, make_config, proto_project: Path) -> None:
        manager = WorkspaceManager()
        for language in ("python", "typescript"):
            manager.prepare(make_config(language))

        removed = manager.clean(proto_project)

        assert len(removed) == 4
        assert not (proto_project / "generated").exists()
        assert (proto_project / "src" / "api" / "v1" / "greeter.proto").exists()
        assert (proto_project / "artifacts").is_dir()

    def test_single_language_keeps_the_other(self, make_config, proto_project: Path) -> None:
        manager = WorkspaceManager()
        for language in ("python", "typescript"):
            manager.prepare(make_config(language))

        manager.clean(proto_project, ["python"])

        assert not (proto_project / "generated" / "code" / "python").exists()
        assert (proto_project / "generated" / "code" / "typescript").is_dir()

    def test_clean_of_fresh_project_is_a_no_op(self, proto_project: Path) -> None:
        assert WorkspaceManager().clean(proto_project) == []


def test_remove_images_is_best_effort() -> None:
    invoker = FakeInvoker(failures={"docker rmi": ToolchainError("docker rmi", 1, "No such image")})
    assert WorkspaceManager().remove_images(invoker) == []
    assert [call.args for call in invoker.calls] == [("rmi", image) for image in BUILDER_IMAGES]

    invoker = FakeInvoker()
    assert WorkspaceManager().remove_images(invoker) == list(BUILDER_IMAGES)
