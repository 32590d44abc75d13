"""Shared pytest fixtures and configuration.

This file is automatically loaded by pytest and provides fixtures
accessible to all tests.
"""

import os

import pytest
from hypothesis import HealthCheck, settings

from protoforge.core.config import BuildConfig

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

settings.register_profile(
    "dev",
    max_examples=10,
    deadline=500,
)

settings.register_profile(
    "thorough",
    max_examples=1000,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))

GREETER_PROTO = """\
syntax = "proto3";

package api.v1;

message HelloRequest {
  string name = 1;
}

message HelloReply {
  string message = 1;
}

service Greeter {
  rpc SayHello (HelloRequest) returns (HelloReply);
}
"""


# =============================================================================
# Environment Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep PROTOFORGE_* variables and stray .env files out of every test."""
    for key in list(os.environ):
        if key.startswith("PROTOFORGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Project Fixtures
# =============================================================================

@pytest.fixture
def proto_project(tmp_path):
    """A project root holding ``src/api/v1/greeter.proto``."""
    root = tmp_path / "project"
    proto = root / "src" / "api" / "v1" / "greeter.proto"
    proto.parent.mkdir(parents=True)
    proto.write_text(GREETER_PROTO)
    return root


@pytest.fixture
def make_config(proto_project):
    """Factory for local-runner configs rooted at ``proto_project``."""

    def _make(language: str = "python", **overrides) -> BuildConfig:
        payload = {"project_root": proto_project, "runner": "local", **overrides}
        return BuildConfig.for_language(language, payload)

    return _make

