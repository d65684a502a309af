# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasky.cli.bootstrap import create_initial_state
from tasky.core.state import AppState
from tasky.tasks.task_store import JsonTaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap, registry and commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    repo = tmp_path / "repo"
    repo.mkdir()
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="tasky-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=data_dir,
        repository_path=repo,
        tasks_file=repo / "tasks" / "tasks.json",
        scratch_dir=data_dir / "scratch",
        # Execution
        execution_mode="simulated",
        simulated=True,
        claude_command="claude",
        gemini_command="gemini",
        provider_preference=["claude", "gemini"],
        execution_timeout_seconds=5.0,
        probe_timeout_seconds=1.0,
        simulated_delay_seconds=0.0,
        # Loop / reconciliation
        auto_dispatch=False,
        loop_interval_seconds=0.5,
        completion_poll_seconds=0.0,
        completion_timeout_seconds=0.0,
    )


@pytest.fixture()
def store(tmp_path: Path) -> JsonTaskStore:
    return JsonTaskStore(tmp_path / "store" / "tasks.json")


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired through the real composition root, in simulated mode.

    NOTE: We keep the real JSON store here because its correctness is part of
    what we want to test.
    """
    return create_initial_state(settings=settings)
