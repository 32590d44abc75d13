"""Pipeline coordinator.

Drives one language build through a linear state machine:

    Idle -> Prepared -> Generated -> Relocated -> Formatted -> Manifested -> Packaged -> Done

Any failure moves to ``Failed``. The workspace is torn down exactly once
whatever happens, and the originating error is re-raised tagged with the stage
that raised it. There are no retries; the only allowance for a slow container
is a single fixed delay before the first generator call.
"""

from __future__ import annotations

import contextlib
import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Sequence

from protoforge.core.config import BuildConfig
from protoforge.core.errors import ForgeError
from protoforge.library.catalog import ArtifactLibrary, ArtifactRecord
from protoforge.packager.builder import PackageBuilder
from protoforge.packager.manifests import write_manifest
from protoforge.postprocess.processor import PostProcessor
from protoforge.postprocess.units import EntryExport, GeneratedUnit
from protoforge.toolchain.commands import plan_generation
from protoforge.toolchain.invoker import ToolchainInvoker
from protoforge.toolchain.runners import ToolRunner, create_runner
from protoforge.workspace.manager import Workspace, WorkspaceManager

LOGGER = logging.getLogger("protoforge.pipeline")


class PipelineState(str, Enum):
    IDLE = "idle"
    PREPARED = "prepared"
    GENERATED = "generated"
    RELOCATED = "relocated"
    FORMATTED = "formatted"
    MANIFESTED = "manifested"
    PACKAGED = "packaged"
    DONE = "done"
    FAILED = "failed"


# Stage name -> state reached when it succeeds, in execution order.
STAGES: tuple[tuple[str, PipelineState], ...] = (
    ("prepare", PipelineState.PREPARED),
    ("generate", PipelineState.GENERATED),
    ("relocate", PipelineState.RELOCATED),
    ("format", PipelineState.FORMATTED),
    ("manifest", PipelineState.MANIFESTED),
    ("package", PipelineState.PACKAGED),
)

_TERMINAL = frozenset({PipelineState.DONE, PipelineState.FAILED})


@dataclass(slots=True)
class PipelineReport:
    """Outcome of one language pipeline."""

    language: str
    state: PipelineState = PipelineState.IDLE
    units: list[GeneratedUnit] = field(default_factory=list)
    exports: list[EntryExport] = field(default_factory=list)
    artifact: ArtifactRecord | None = None
    durations_ms: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    failed_stage: str | None = None
    error: ForgeError | None = None

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def error_type(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None


class PipelineCoordinator:
    """Runs the build stages for one ``BuildConfig``.

    Collaborators are injectable so each stage can be exercised without Docker
    or the native package builders. A coordinator runs once.
    """

    def __init__(
        self,
        config: BuildConfig,
        *,
        invoker: ToolchainInvoker | None = None,
        runner: ToolRunner | None = None,
        workspace_manager: WorkspaceManager | None = None,
        builder: PackageBuilder | None = None,
        library: ArtifactLibrary | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._invoker = invoker or ToolchainInvoker(timeout_s=config.timeout_s, verbose=config.verbose)
        self._runner = runner or create_runner(config, self._invoker)
        self._workspaces = workspace_manager or WorkspaceManager()
        self._builder = builder or PackageBuilder(self._invoker)
        self._library = library
        self._sleep = sleep
        self._postprocessor = PostProcessor(config)
        self._state = PipelineState.IDLE
        self._history: list[PipelineState] = [PipelineState.IDLE]
        self._report = PipelineReport(language=config.language)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> tuple[PipelineState, ...]:
        return tuple(self._history)

    @property
    def report(self) -> PipelineReport:
        return self._report

    def run(self) -> PipelineReport:
        """Run every stage; returns the report or raises the tagged stage error."""

        if self._state is not PipelineState.IDLE:
            raise ForgeError(f"Pipeline for {self._config.language} has already run")
        config = self._config
        report = self._report
        LOGGER.info(
            "Starting %s pipeline (protoc %s, grpc %s, runtime %s, runner %s)",
            config.language,
            config.versions.protoc,
            config.versions.grpc,
            config.versions.runtime,
            config.runner,
        )
        workspace: Workspace | None = None
        stage = "prepare"
        try:
            with self._stage(stage):
                workspace = self._workspaces.prepare(config)
            stage = "generate"
            with self._stage(stage):
                self._generate(workspace)
            stage = "relocate"
            with self._stage(stage):
                units = self._postprocessor.discover()
                report.units, report.exports = self._postprocessor.relocate(units)
            stage = "format"
            with self._stage(stage):
                self._postprocessor.format(self._runner)
            stage = "manifest"
            with self._stage(stage):
                write_manifest(config)
            stage = "package"
            with self._stage(stage):
                artifact = self._builder.build(config)
                report.artifact = self._publish(artifact)
        except ForgeError as exc:
            exc.stage = stage
            report.failed_stage = stage
            report.error = exc
            self._transition(PipelineState.FAILED)
            LOGGER.error("%s pipeline failed during %s: %s: %s", config.language, stage, type(exc).__name__, exc)
            raise
        except Exception as exc:
            error = ForgeError(f"{type(exc).__name__}: {exc}")
            error.stage = stage
            report.failed_stage = stage
            report.error = error
            self._transition(PipelineState.FAILED)
            LOGGER.exception("%s pipeline failed during %s", config.language, stage)
            raise error from exc
        finally:
            report.warnings.extend(self._postprocessor.warnings)
            if workspace is not None:
                self._workspaces.teardown(workspace)
        self._transition(PipelineState.DONE)
        LOGGER.info("%s pipeline completed: %s", config.language, report.artifact.filename if report.artifact else "-")
        return report

    def _generate(self, workspace: Workspace) -> None:
        runner = self._runner
        # Attached before acquire so a partially started container is still released.
        workspace.attach(f"{runner.name} runner", runner.release)
        runner.acquire()
        if runner.name == "container" and self._config.startup_delay_s > 0:
            LOGGER.debug("Waiting %.1fs for the build container", self._config.startup_delay_s)
            self._sleep(self._config.startup_delay_s)
        for step in plan_generation(self._config, workspace.sources, runner):
            LOGGER.info("Running %s", step.label)
            runner.run(step)

    def _publish(self, artifact: Path) -> ArtifactRecord:
        if self._library is not None:
            return self._library.publish(artifact, self._config)
        library = ArtifactLibrary(self._config.artifacts_root, language=self._config.language)
        try:
            return library.publish(artifact, self._config)
        finally:
            library.close()

    @contextlib.contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self._report.durations_ms[name] = (time.perf_counter() - start) * 1000.0
        self._transition(dict(STAGES)[name])

    def _transition(self, state: PipelineState) -> None:
        if self._state in _TERMINAL:
            raise ForgeError(f"Cannot leave terminal state {self._state.value}")
        LOGGER.debug("%s: %s -> %s", self._config.language, self._state.value, state.value)
        self._state = state
        self._report.state = state
        self._history.append(state)


CoordinatorFactory = Callable[[BuildConfig], PipelineCoordinator]


def _run_isolated(factory: CoordinatorFactory, config: BuildConfig) -> PipelineReport:
    coordinator = factory(config)
    try:
        return coordinator.run()
    except ForgeError:
        return coordinator.report


def _open_catalogs(configs: Sequence[BuildConfig]) -> None:
    # Workers then only insert rows; table creation is not safe to race.
    for root in sorted({config.artifacts_root for config in configs}):
        try:
            ArtifactLibrary(root).close()
        except ForgeError as exc:
            LOGGER.warning("Artifact catalog under %s not initialised: %s", root, exc)


def run_pipelines(
    configs: Sequence[BuildConfig],
    *,
    parallel: bool = False,
    factory: CoordinatorFactory = PipelineCoordinator,
) -> list[PipelineReport]:
    """Run independent language pipelines.

    Sequential runs stop at the first failed language. Parallel runs execute
    every language in its own process and return all reports; failures are
    reported through ``PipelineReport.error`` rather than raised. ``factory``
    must be picklable when ``parallel`` is set.
    """

    languages = [config.language for config in configs]
    if len(set(languages)) != len(languages):
        raise ForgeError(f"Each language may only be built once per run: {languages}")
    if parallel and len(configs) > 1:
        _open_catalogs(configs)
        with ProcessPoolExecutor(max_workers=len(configs)) as pool:
            return list(pool.map(_run_isolated, [factory] * len(configs), configs))
    reports: list[PipelineReport] = []
    for config in configs:
        report = _run_isolated(factory, config)
        reports.append(report)
        if not report.ok:
            break
    return reports


__all__ = [
    "PipelineCoordinator",
    "PipelineReport",
    "PipelineState",
    "STAGES",
    "run_pipelines",
]
