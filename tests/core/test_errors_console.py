from __future__ import annotations

import io
import logging
import pickle

import pytest

from protoforge.core.console import LOG_FORMAT, StatusConsole, configure_logging
from protoforge.core.errors import (
    ConfigError,
    ForgeError,
    PackagerError,
    PostProcessError,
    ToolchainError,
    ToolchainTimeout,
    WorkspaceError,
)


@pytest.mark.parametrize(
    "error_type",
    [ConfigError, WorkspaceError, PostProcessError, PackagerError, ToolchainError, ToolchainTimeout],
)
def test_every_error_is_a_forge_error(error_type) -> None:
    assert issubclass(error_type, ForgeError)
    assert issubclass(error_type, RuntimeError)


def test_toolchain_error_message_includes_tail() -> None:
    error = ToolchainError("protoc", 1, "greeter.proto:3:1: Expected \";\".")

    assert str(error) == 'protoc exited with status 1: greeter.proto:3:1: Expected ";".'
    assert error.tool == "protoc"
    assert error.exit_code == 1
    assert error.stage is None


def test_toolchain_error_without_tail() -> None:
    assert str(ToolchainError("pbjs", 2)) == "pbjs exited with status 2"


def test_toolchain_timeout_message() -> None:
    error = ToolchainTimeout("docker build", 600)
    assert str(error) == "docker build timed out after 600.0s"
    assert error.timeout_s == 600


@pytest.mark.parametrize(
    "error",
    [
        WorkspaceError("no protos"),
        ToolchainError("protoc", 3, "boom"),
        ToolchainTimeout("npm pack", 12.5),
    ],
    ids=["workspace", "toolchain", "timeout"],
)
def test_errors_survive_pickling_with_stage(error: ForgeError) -> None:
    error.stage = "generate"

    restored = pickle.loads(pickle.dumps(error))

    assert type(restored) is type(error)
    assert str(restored) == str(error)
    assert restored.stage == "generate"
    assert restored.__dict__ == error.__dict__


class TestStatusConsole:
    """Labelled status lines."""

    def _console(self) -> tuple[StatusConsole, io.StringIO]:
        buffer = io.StringIO()
        return StatusConsole(file=buffer), buffer

    @pytest.mark.parametrize(
        ("method", "label"),
        [("info", "[INFO]"), ("success", "[SUCCESS]"), ("warning", "[WARNING]"), ("error", "[ERROR]")],
    )
    def test_labels(self, method: str, label: str) -> None:
        out, buffer = self._console()
        getattr(out, method)("Starting python module generation...")
        assert buffer.getvalue().strip() == f"{label} Starting python module generation..."

    def test_brackets_in_messages_are_not_markup(self) -> None:
        out, buffer = self._console()
        out.info("[bold]literal[/bold]")
        assert "[bold]literal[/bold]" in buffer.getvalue()


def test_configure_logging_uses_shared_format(monkeypatch) -> None:
    captured = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    configure_logging("debug")

    assert captured == {"level": logging.DEBUG, "format": LOG_FORMAT}
