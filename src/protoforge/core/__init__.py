"""Core configuration, errors and console helpers."""

from .config import (
    LANGUAGE_DEFAULTS,
    LANGUAGES,
    BuildConfig,
    FeatureFlags,
    ForgeSettings,
    Language,
    ToolchainVersions,
    deep_merge,
)
from .console import StatusConsole, configure_logging
from .errors import (
    ConfigError,
    ForgeError,
    PackagerError,
    PostProcessError,
    ToolchainError,
    ToolchainTimeout,
    WorkspaceError,
)

__all__ = [
    "BuildConfig",
    "ConfigError",
    "FeatureFlags",
    "ForgeError",
    "ForgeSettings",
    "LANGUAGES",
    "LANGUAGE_DEFAULTS",
    "Language",
    "PackagerError",
    "PostProcessError",
    "StatusConsole",
    "ToolchainError",
    "ToolchainTimeout",
    "ToolchainVersions",
    "WorkspaceError",
    "configure_logging",
    "deep_merge",
]
