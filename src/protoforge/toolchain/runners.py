"""Tool runners: where generator steps execute.

``LocalRunner`` executes generators on the host. ``ContainerRunner`` is the
scoped build-container handle: ``acquire`` builds the image and starts the
compose service, ``run`` executes steps with ``docker compose exec``, and
``release`` stops and removes the service exactly once.
"""

from __future__ import annotations

import logging
import platform
import sys
from importlib import resources
from pathlib import Path, PurePosixPath
from typing import Protocol

from protoforge.core.config import BuildConfig
from protoforge.core.errors import ConfigError, ForgeError, WorkspaceError

from .commands import PROGRAM_PROTOC, PYTHON_MODULE_PROGRAMS, GeneratorStep
from .invoker import InvocationResult, ToolchainInvoker

LOGGER = logging.getLogger("protoforge.toolchain.runners")

CONTAINER_WORKSPACE = PurePosixPath("/workspace")
CONTAINER_INCLUDE = "/usr/local/include"

_PROTOC_PLATFORMS = {
    "x86_64": "linux-x86_64",
    "amd64": "linux-x86_64",
    "aarch64": "linux-aarch_64",
    "arm64": "linux-aarch_64",
}


def detect_protoc_platform(machine: str | None = None) -> str:
    """Map the host architecture to a protoc release platform."""

    arch = (machine or platform.machine()).lower()
    try:
        return _PROTOC_PLATFORMS[arch]
    except KeyError:
        raise ConfigError(f"Unsupported architecture: {arch}") from None


class ToolRunner(Protocol):
    """Executes generator steps for one pipeline run."""

    name: str

    def acquire(self) -> None: ...

    def release(self) -> None: ...

    def run(self, step: GeneratorStep) -> InvocationResult: ...

    def map_path(self, path: Path) -> str: ...

    def include_dirs(self, language: str) -> list[str]: ...


class LocalRunner:
    """Runs generators directly on the host."""

    name = "local"

    def __init__(self, config: BuildConfig, invoker: ToolchainInvoker) -> None:
        self._config = config
        self._invoker = invoker

    def acquire(self) -> None:
        LOGGER.debug("Local runner needs no setup")

    def release(self) -> None:
        LOGGER.debug("Local runner needs no teardown")

    def run(self, step: GeneratorStep) -> InvocationResult:
        command = self.command_for(step.program)
        return self._invoker.invoke(
            command[0],
            [*command[1:], *step.args],
            self._config.project_root,
            label=step.label,
        )

    def map_path(self, path: Path) -> str:
        return str(path)

    def include_dirs(self, language: str) -> list[str]:
        if language == "python":
            return [str(resources.files("grpc_tools") / "_proto")]
        return []

    @staticmethod
    def command_for(program: str) -> list[str]:
        if program in PYTHON_MODULE_PROGRAMS:
            return [sys.executable, "-m", program]
        if program == PROGRAM_PROTOC:
            return ["protoc"]
        return ["npx", program]


class ContainerRunner:
    """Scoped handle on the language build container."""

    name = "container"

    def __init__(
        self,
        config: BuildConfig,
        invoker: ToolchainInvoker,
        *,
        docker: str = "docker",
        machine: str | None = None,
    ) -> None:
        self._config = config
        self._invoker = invoker
        self._docker = docker
        self._machine = machine
        self._started = False
        self._released = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def released(self) -> bool:
        return self._released

    def acquire(self) -> None:
        """Check the daemon, build the image and start the compose service."""

        config = self._config
        try:
            self._invoker.invoke(self._docker, ["info"], label="docker info")
        except ForgeError:
            LOGGER.error("Docker is not running. Please start Docker and try again.")
            raise
        if not config.dockerfile.is_file():
            raise WorkspaceError(f"Dockerfile not found at: {config.dockerfile}")
        if not config.compose_file.is_file():
            raise WorkspaceError(f"Compose file not found at: {config.compose_file}")

        protoc_platform = detect_protoc_platform(self._machine)
        LOGGER.info("Building image %s (protoc platform %s)", config.image_name, protoc_platform)
        args = ["build"]
        for key, value in self.build_args(protoc_platform).items():
            args.extend(["--build-arg", f"{key}={value}"])
        args.extend(["-f", str(config.dockerfile), "-t", config.image_name, str(config.project_root)])
        self._invoker.invoke(self._docker, args, config.project_root, label="docker build")

        # Anything after this point leaves a service behind that release must stop.
        self._started = True
        LOGGER.info("Starting compose service %s", config.compose_service)
        self._invoker.invoke(
            self._docker,
            [
                *self._compose_args(),
                "--profile",
                config.compose_profile,
                "up",
                "-d",
                config.compose_service,
            ],
            config.project_root,
            label="docker compose up",
        )

    def release(self) -> None:
        """Stop and remove the compose service; never raises."""

        if not self._started or self._released:
            return
        self._released = True
        service = self._config.compose_service
        for action in (["stop", service], ["rm", "-f", service]):
            try:
                self._invoker.invoke(
                    self._docker,
                    [*self._compose_args(), *action],
                    self._config.project_root,
                    label=f"docker compose {action[0]}",
                )
            except ForgeError as exc:
                LOGGER.warning("Container cleanup step '%s' failed: %s", action[0], exc)

    def run(self, step: GeneratorStep) -> InvocationResult:
        if not self._started or self._released:
            raise WorkspaceError("Build container is not running")
        return self._invoker.invoke(
            self._docker,
            [
                *self._compose_args(),
                "exec",
                "-T",
                self._config.compose_service,
                *self.command_for(step.program),
                *step.args,
            ],
            self._config.project_root,
            label=step.label,
        )

    def map_path(self, path: Path) -> str:
        try:
            relative = Path(path).resolve().relative_to(self._config.project_root)
        except ValueError:
            raise WorkspaceError(
                f"{path} is outside the project root mounted at {CONTAINER_WORKSPACE}"
            ) from None
        return str(CONTAINER_WORKSPACE.joinpath(*relative.parts))

    def include_dirs(self, language: str) -> list[str]:
        return [CONTAINER_INCLUDE]

    def build_args(self, protoc_platform: str) -> dict[str, str]:
        config = self._config
        runtime_key = "PYTHON_VERSION" if config.language == "python" else "NODE_VERSION"
        args = {
            runtime_key: config.versions.runtime,
            "GRPC_VERSION": config.versions.grpc,
            "PROTOC_VERSION": config.versions.protoc,
            "PROTOC_PLATFORM": protoc_platform,
        }
        if config.language == "typescript":
            args["GENERATE_GRPC"] = str(config.features.grpc).lower()
            args["GENERATE_GRPC_WEB"] = str(config.features.grpc_web).lower()
        return args

    @staticmethod
    def command_for(program: str) -> list[str]:
        if program in PYTHON_MODULE_PROGRAMS:
            return ["python", "-m", program]
        if program == PROGRAM_PROTOC:
            return ["/usr/bin/protoc"]
        return ["npx", program]

    def _compose_args(self) -> list[str]:
        return ["compose", "-f", str(self._config.compose_file)]


def create_runner(config: BuildConfig, invoker: ToolchainInvoker) -> ToolRunner:
    if config.runner == "local":
        return LocalRunner(config, invoker)
    return ContainerRunner(config, invoker)


__all__ = [
    "CONTAINER_INCLUDE",
    "CONTAINER_WORKSPACE",
    "ContainerRunner",
    "LocalRunner",
    "ToolRunner",
    "create_runner",
    "detect_protoc_platform",
]
