# tests/test_commands.py

from __future__ import annotations

from tasky.agents.executors import ExecutionMode, FileOpExecutor
from tasky.cli.commands import registry
from tasky.cli.console import ConsoleSelector
from tasky.core.state import AppState
from tasky.tasks.task_models import Category, Priority, TaskStatus


def test_help_lists_commands(state: AppState) -> None:
    out = registry.handle(state, "/help")
    assert out is not None
    assert "/run" in out and "/mode" in out and "/approve" in out


def test_non_command_and_unknown_command(state: AppState) -> None:
    assert registry.handle(state, "hello") is None
    assert "Unknown command" in (registry.handle(state, "/frobnicate") or "")
    assert "Empty command" in (registry.handle(state, "/") or "")


def test_add_parses_priority_category_and_description(state: AppState) -> None:
    out = registry.handle(state, "/add p3 #backend Fix login -- production outage")
    assert out is not None and out.startswith("Task created:")

    [task] = state.task_store.list()
    assert task.title == "Fix login"
    assert task.priority is Priority.CRITICAL
    assert task.category is Category.BACKEND
    assert task.description == "production outage"
    assert task.human_approved is False

    assert "Usage" in (registry.handle(state, "/add") or "")


def test_approve_then_run_completes_task(state: AppState) -> None:
    registry.handle(state, "/add p2 Write release notes")
    [task] = state.task_store.list()

    assert "Nothing to run" in (registry.handle(state, "/run") or "")

    assert "approved" in (registry.handle(state, f"/approve {task.id}") or "")
    assert "already approved" in (registry.handle(state, f"/approve {task.id}") or "")

    emitted: list[str] = []
    out = registry.handle(state, "/run", emit=emitted.append)

    assert out is not None and out.startswith("Task completed")
    assert state.task_store.get(task.id).status is TaskStatus.COMPLETED
    assert any("[RUN]" in line for line in emitted)

    rerun = registry.handle(state, f"/run {task.id}") or ""
    assert "only PENDING" in rerun


def test_observe_tasks_recent_and_stats(state: AppState) -> None:
    registry.handle(state, "/add p1 First")
    registry.handle(state, "/add p3 Second")
    for t in state.task_store.list():
        state.task_store.update(t.id, {"human_approved": True})

    observe = registry.handle(state, "/observe") or ""
    assert "Approved pending: 2" in observe
    assert "Second" in observe

    assert "Second" in (registry.handle(state, "/tasks pending") or "")
    assert "No tasks." == registry.handle(state, "/tasks completed")
    assert "Usage" in (registry.handle(state, "/tasks bogus") or "")

    assert "Recent tasks:" in (registry.handle(state, "/recent 1") or "")

    stats = registry.handle(state, "/stats") or ""
    assert "total=2" in stats
    assert "claude" in stats


def test_mode_switches_executor_set(state: AppState) -> None:
    assert "simulated" in (registry.handle(state, "/mode") or "")
    assert "Unknown mode" in (registry.handle(state, "/mode warp") or "")

    out = registry.handle(state, "/mode file_op")
    assert out == "Execution mode set to file_op."
    assert state.execution_mode is ExecutionMode.FILE_OP
    assert isinstance(state.registry.get("claude"), FileOpExecutor)
    assert state.engine.simulated is False

    assert "already" in (registry.handle(state, "/mode file_op") or "")


def test_providers_and_auto_without_runner(state: AppState) -> None:
    providers = registry.handle(state, "/providers") or ""
    assert "claude: SimulatedExecutor (available)" in providers

    assert "not available" in (registry.handle(state, "/auto on") or "")


def test_console_selector_choices() -> None:
    answers = iter(["2", "", "q", "gemini", "9"])
    printed: list[str] = []
    sel = ConsoleSelector(input_fn=lambda _prompt: next(answers), print_fn=printed.append)
    candidates = ["claude", "gemini"]

    assert sel.choose(None, candidates) == "gemini"
    assert sel.choose(None, candidates) == "claude"
    assert sel.choose(None, candidates) is None
    assert sel.choose(None, candidates) == "gemini"
    assert sel.choose(None, candidates) is None
    assert any("1) claude" in line for line in printed)


def test_run_by_id_requires_approval(state: AppState) -> None:
    registry.handle(state, "/add p1 Unapproved chore")
    [task] = state.task_store.list()

    out = registry.handle(state, f"/run {task.id}") or ""

    assert "not approved" in out
    assert state.task_store.get(task.id).status is TaskStatus.PENDING
