"""Shared fixtures: an isolated runner layout under tmp_path."""

import sys
import textwrap
from pathlib import Path

import pytest

from setup_runner.config import RunnerConfig


@pytest.fixture
def config(tmp_path) -> RunnerConfig:
    return RunnerConfig(
        target_root=tmp_path / "root",
        logs_root=tmp_path / "logs",
        state_root=tmp_path / "logs" / "state-files",
        timezone="UTC",
        profile_path=tmp_path / "profile",
    )


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep real SETUP_RUNNER_* variables and .env files out of tests."""
    for var in (
        "SETUP_RUNNER_ROOT",
        "SETUP_RUNNER_LOG_ROOT",
        "SETUP_RUNNER_STATE_ROOT",
        "SETUP_RUNNER_TZ",
        "SETUP_RUNNER_PROFILE",
        "SETUP_RUNNER_CONFIG",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


def write_stub(directory: Path, name: str, body: str = "sys.exit(0)") -> Path:
    """Write a .py catalog action that runs `body` with sys imported."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.py"
    path.write_text("import sys\n" + textwrap.dedent(body) + "\n")
    return path


@pytest.fixture
def stub():
    return write_stub


@pytest.fixture
def python_exe():
    return sys.executable
