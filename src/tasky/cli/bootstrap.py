# src/tasky/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the task store, executor registry, event bus and engine into AppState.
"""

from __future__ import annotations

import logging

from ..agents.executors import ExecutionMode
from ..agents.registry import ExecutorRegistry, variants_for_mode
from ..config import get_settings
from ..core.engine import CompletionPolicy, Engine, PreferenceSelector
from ..core.events import EventBus
from ..core.state import AppState
from ..tasks.task_store import JsonTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.scratch_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_file.parent.mkdir(parents=True, exist_ok=True)


def completion_policy_from_settings(settings) -> CompletionPolicy | None:
    poll = float(getattr(settings, "completion_poll_seconds", 0.0) or 0.0)
    timeout = float(getattr(settings, "completion_timeout_seconds", 0.0) or 0.0)
    if poll <= 0 or timeout <= 0:
        return None
    return CompletionPolicy(poll_interval_seconds=poll, timeout_seconds=timeout)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    mode = ExecutionMode.from_raw(settings.execution_mode)
    task_store = JsonTaskStore(settings.tasks_file)
    registry = ExecutorRegistry(variants_for_mode(mode, settings))
    events = EventBus()

    engine = Engine(
        registry=registry,
        repository=task_store,
        events=events,
        selector=PreferenceSelector(settings.provider_preference),
        simulated=mode == ExecutionMode.SIMULATED,
        completion_policy=completion_policy_from_settings(settings),
        repository_path=settings.repository_path,
    )

    logger.info(
        "State ready mode=%s providers=%s tasks_file=%s",
        mode.value,
        ",".join(registry.providers()),
        settings.tasks_file,
    )

    return AppState(
        settings=settings,
        task_store=task_store,
        registry=registry,
        events=events,
        engine=engine,
        execution_mode=mode,
    )


def switch_execution_mode(state: AppState, mode: ExecutionMode | str) -> ExecutionMode:
    """Swap every executor for the given mode's variant set."""
    new_mode = ExecutionMode.from_raw(str(mode))
    state.registry.swap_all(variants_for_mode(new_mode, state.settings))
    state.engine.set_simulated(new_mode == ExecutionMode.SIMULATED)
    state.execution_mode = new_mode
    logger.info("Execution mode -> %s", new_mode.value)
    return new_mode
