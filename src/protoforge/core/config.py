"""Build configuration.

A ``BuildConfig`` is created once per pipeline invocation at the CLI boundary
and passed explicitly to every component. Values are layered, lowest first:

    language defaults < ForgeSettings (environment / .env) < YAML file < CLI flags

Usage:
    # Defaults for a language
    config = BuildConfig.for_language("python")

    # With overrides
    config = BuildConfig.for_language("typescript", {"features": {"grpc": True}})

    # From a YAML file with per-language sections
    config = BuildConfig.from_yaml("protoforge.yaml", "python", {"clean": True})
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

Language = Literal["python", "typescript"]
LANGUAGES: tuple[str, ...] = ("python", "typescript")

_VERSION_RE = re.compile(r"^\d+(\.\d+)*$")
_PACKAGE_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")

LANGUAGE_DEFAULTS: dict[str, dict[str, Any]] = {
    "python": {
        "package_name": "protos-python",
        "versions": {"protoc": "25.1", "grpc": "1.59.0", "runtime": "3.11"},
        "features": {"grpc": True, "grpc_web": False},
    },
    "typescript": {
        "package_name": "protos-typescript",
        "versions": {"protoc": "25.1", "grpc": "1.9.4", "runtime": "20"},
        "features": {"grpc": False, "grpc_web": False},
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class ToolchainVersions(BaseModel):
    """Version pins passed to the build image and embedded in manifests."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    protoc: str
    grpc: str
    runtime: str

    @field_validator("protoc", "grpc", "runtime", mode="before")
    @classmethod
    def reject_numeric_versions(cls, v: Any) -> Any:
        # YAML reads ``3.10`` as the float 3.1; the trailing zero is already gone.
        if isinstance(v, float):
            raise ValueError(f"Version {v!r} was read as a number; quote it in YAML, e.g. \"3.10\"")
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("protoc", "grpc", "runtime")
    @classmethod
    def validate_version(cls, v: str) -> str:
        v = str(v).strip()
        if not _VERSION_RE.match(v):
            raise ValueError(f"Version '{v}' must be dotted digits, e.g. 1.59.0")
        return v

    @property
    def runtime_tag(self) -> str:
        """Runtime version without dots (``3.11`` -> ``311``)."""
        return self.runtime.replace(".", "")


class FeatureFlags(BaseModel):
    """Optional stub kinds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    grpc: bool = False
    grpc_web: bool = False


class BuildConfig(BaseModel):
    """Immutable per-invocation build configuration.

    Attributes:
        language: Target language of the pipeline.
        project_root: Root holding ``src/``, ``generated/`` and ``artifacts/``.
        source_dir: Directory scanned for ``.proto`` files.
        package_name: Distribution name written into the manifest.
        package_version: Distribution version written into the manifest.
        versions: Toolchain version pins.
        features: Optional stub kinds to generate.
        generator: TypeScript generator family (``protoc`` or ``pbjs``).
        runner: Run generators in the build container or on the host.
        clean: Wipe intermediate and package trees before the run.
        verbose: Log full external tool output.
        format_code: Run formatters over the canonical tree.
        timeout_s: Per-invocation timeout for external tools.
        startup_delay_s: Fixed wait after starting the build container.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    language: Language
    project_root: Path
    source_dir: Path
    package_name: str
    package_version: str = "0.1.0"
    versions: ToolchainVersions
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    generator: Literal["protoc", "pbjs"] = "protoc"
    runner: Literal["container", "local"] = "container"
    clean: bool = False
    verbose: bool = False
    format_code: bool = True
    timeout_s: float = Field(default=600.0, gt=0)
    startup_delay_s: float = Field(default=2.0, ge=0)
    compose_file: Path
    containers_dir: Path
    line_length: int = Field(default=88, ge=40, le=200)

    @model_validator(mode="before")
    @classmethod
    def _apply_language_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        defaults = LANGUAGE_DEFAULTS.get(data.get("language", ""))
        if defaults is None:
            return data
        provided = {key: value for key, value in data.items() if value is not None}
        merged = deep_merge(defaults, provided)
        root = Path(merged.get("project_root") or Path.cwd()).expanduser().resolve()
        merged["project_root"] = root
        merged["source_dir"] = _under(root, merged.get("source_dir", "src"))
        merged["containers_dir"] = _under(root, merged.get("containers_dir", "containers"))
        merged["compose_file"] = _under(
            root, merged.get("compose_file", Path(merged["containers_dir"]) / "docker-compose.yml")
        )
        return merged

    @field_validator("package_name")
    @classmethod
    def validate_package_name(cls, v: str) -> str:
        if not _PACKAGE_RE.match(v):
            raise ValueError(f"Package name '{v}' must be lowercase letters, digits, '.', '_' or '-'")
        return v

    @field_validator("package_version")
    @classmethod
    def validate_package_version(cls, v: str) -> str:
        if not _VERSION_RE.match(v):
            raise ValueError(f"Package version '{v}' must be dotted digits")
        return v

    @model_validator(mode="after")
    def _check_language_features(self) -> BuildConfig:
        if self.language == "python":
            if self.generator != "protoc":
                raise ValueError("The pbjs generator only applies to typescript")
            if self.features.grpc_web:
                raise ValueError("gRPC-Web stubs only apply to typescript")
        return self

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def for_language(cls, language: str, overrides: dict[str, Any] | None = None) -> BuildConfig:
        """Build a config from language defaults plus overrides.

        Raises:
            ConfigError: If the language is unknown or a value fails validation.
        """
        if language not in LANGUAGES:
            raise ConfigError(f"Unknown language '{language}'. Valid: {list(LANGUAGES)}")
        payload = deep_merge(dict(overrides or {}), {"language": language})
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid {language} build configuration:\n{exc}") from exc

    @classmethod
    def from_yaml(
        cls,
        path: Path | str,
        language: str,
        overrides: dict[str, Any] | None = None,
        *,
        base: dict[str, Any] | None = None,
    ) -> BuildConfig:
        """Load configuration from a YAML file.

        Top-level keys apply to every language; a ``python:`` or
        ``typescript:`` section refines them for that language. ``base`` sits
        below the file and ``overrides`` above it.

        Raises:
            ConfigError: If the file is missing, malformed, or not a mapping.
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc

        if data is None:
            raise ConfigError(f"Config file is empty: {path}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a YAML mapping, got {type(data).__name__}: {path}")

        common = {key: value for key, value in data.items() if key not in LANGUAGES}
        section = data.get(language) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"Section '{language}' in {path} must be a mapping")
        merged = deep_merge(dict(base or {}), deep_merge(common, section))
        merged = deep_merge(merged, dict(overrides or {}))
        return cls.for_language(language, merged)

    # ------------------------------------------------------------------
    # Derived layout
    # ------------------------------------------------------------------

    @property
    def module_name(self) -> str:
        """Importable Python package name for the distribution."""
        return self.package_name.replace("-", "_").replace(".", "_")

    @property
    def intermediate_dir(self) -> Path:
        return self.project_root / "generated" / "code" / self.language

    @property
    def package_root(self) -> Path:
        return self.project_root / "generated" / "packages" / self.language

    @property
    def canonical_dir(self) -> Path:
        if self.language == "python":
            return self.package_root / self.module_name
        return self.package_root / "src"

    @property
    def dist_dir(self) -> Path:
        return self.package_root / "dist"

    @property
    def artifacts_root(self) -> Path:
        return self.project_root / "artifacts"

    @property
    def artifact_dir(self) -> Path:
        return self.artifacts_root / self.language

    @property
    def catalog_path(self) -> Path:
        return self.artifacts_root / "catalog.db"

    @property
    def compose_profile(self) -> str:
        if self.language == "typescript":
            if self.features.grpc_web:
                return "typescript-grpc-web"
            if self.features.grpc:
                return "typescript-grpc"
        return self.language

    @property
    def compose_service(self) -> str:
        return f"{self.compose_profile}-builder"

    @property
    def image_name(self) -> str:
        return f"protobuf-{self.language}-builder"

    @property
    def dockerfile(self) -> Path:
        return self.containers_dir / self.language / "Dockerfile"


class ForgeSettings(BaseSettings):
    """Environment defaults for the CLI.

    Read once when the CLI starts and folded into each ``BuildConfig``;
    pipeline components never consult the environment themselves.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        frozen=True,
        extra="ignore",
    )

    project_root: str | None = Field(alias="PROTOFORGE_PROJECT_ROOT", default=None)
    config_file: str | None = Field(alias="PROTOFORGE_CONFIG", default=None)
    runner: Literal["container", "local"] = Field(alias="PROTOFORGE_RUNNER", default="container")
    timeout_s: float = Field(alias="PROTOFORGE_TIMEOUT_S", default=600.0, gt=0)
    startup_delay_s: float = Field(alias="PROTOFORGE_STARTUP_DELAY_S", default=2.0, ge=0)
    compose_file: str | None = Field(alias="PROTOFORGE_COMPOSE_FILE", default=None)
    log_level: str = Field(alias="PROTOFORGE_LOG_LEVEL", default="INFO")

    def as_overrides(self) -> dict[str, Any]:
        """Settings expressed as ``BuildConfig`` fields."""
        overrides: dict[str, Any] = {
            "runner": self.runner,
            "timeout_s": self.timeout_s,
            "startup_delay_s": self.startup_delay_s,
        }
        if self.project_root:
            overrides["project_root"] = self.project_root
        if self.compose_file:
            overrides["compose_file"] = self.compose_file
        return overrides


def _under(root: Path, value: Path | str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


__all__ = [
    "BuildConfig",
    "FeatureFlags",
    "ForgeSettings",
    "LANGUAGES",
    "LANGUAGE_DEFAULTS",
    "Language",
    "ToolchainVersions",
    "deep_merge",
]
