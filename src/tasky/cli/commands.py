# src/tasky/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..agents.executors import ExecutionMode
from ..core.state import AppState
from ..tasks.task_models import Category, Priority, Task, TaskStatus
from .bootstrap import switch_execution_mode
from .runner import run_async

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

_OUTPUT_PREVIEW_CHARS = 800


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /run, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _ts(ts: float | None) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _clip(text: str, limit: int = _OUTPUT_PREVIEW_CHARS) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "\n..."


def format_task_line(task: Task) -> str:
    approved = "approved" if task.human_approved else "not approved"
    category = f" [{task.category.value}]" if task.category else ""
    return f"{task.id}  {task.status.value:<12} {task.priority.name:<8} {task.title}{category} ({approved})"


def _say(emit: CommandEmitter | None, text: str) -> None:
    if emit:
        with contextlib.suppress(Exception):
            emit(text)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    auto = "ON" if state.runner is not None and state.runner.auto_dispatch else "OFF"
    return (
        "Status:\n"
        f"  Execution mode: {state.execution_mode.value}\n"
        f"  Providers: {', '.join(state.registry.providers()) or '(none)'}\n"
        f"  Auto-dispatch: {auto} (every {s.loop_interval_seconds:g}s)\n"
        f"  Repository: {s.repository_path}\n"
        f"  Tasks file: {s.tasks_file}"
    )


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks            -> all tasks
    /tasks pending    -> only one status (pending|in_progress|completed|needs_review|archived)
    """
    flt = None
    if args:
        raw = args[0].upper()
        if raw not in TaskStatus.__members__:
            return "Usage: /tasks [pending|in_progress|completed|needs_review|archived]"
        flt = {"status": TaskStatus(raw)}

    tasks = state.task_store.list(flt)
    if not tasks:
        return "No tasks."
    return "\n".join(["Tasks:", *(f"  {format_task_line(t)}" for t in tasks)])


def _parse_add_args(args: list[str]) -> dict:
    """
    /add [p0..p3] [#category] title words [-- description words]
    """
    data: dict = {}
    words = list(args)

    while words:
        head = words[0]
        low = head.lower()
        if len(low) == 2 and low[0] == "p" and low[1].isdigit():
            data["priority"] = Priority.clamp(int(low[1]))
            words.pop(0)
            continue
        if head.startswith("#") and Category.from_raw(head[1:]) is not None:
            data["category"] = Category.from_raw(head[1:])
            words.pop(0)
            continue
        break

    if "--" in words:
        i = words.index("--")
        title_words, desc_words = words[:i], words[i + 1 :]
    else:
        title_words, desc_words = words, []

    data["title"] = " ".join(title_words).strip()
    if desc_words:
        data["description"] = " ".join(desc_words).strip()
    return data


def cmd_add(state: AppState, args: list[str]) -> str:
    data = _parse_add_args(args)
    if not data.get("title"):
        return "Usage: /add [p0..p3] [#category] <title> [-- description]"

    task = state.task_store.create(data)
    logger.debug("Task added via console id=%s", task.id)
    return f"Task created: {task.id} ({task.priority.name}). Use /approve {task.id} to allow execution."


def cmd_approve(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /approve <task_id>"

    task = state.task_store.get(args[0])
    if task is None:
        return f"Task not found: {args[0]}"
    if task.human_approved:
        return f"Task {task.id} is already approved."

    state.task_store.update(task.id, {"human_approved": True})
    return f"Task approved: {task.title}"


def cmd_observe(state: AppState, args: list[str]) -> str:
    obs = state.engine.observe()
    lines = [
        "Observation:",
        f"  Approved pending: {obs.pending_count}",
        f"  Completed: {obs.completed_count}",
        f"  Needs review: {obs.review_count}",
    ]
    if obs.next_task is None:
        lines.append("  Next task: (none)")
        return "\n".join(lines)

    a = state.engine.orient(obs.next_task)
    lines += [
        f"  Next task: {format_task_line(obs.next_task)}",
        f"  Assessment: urgency={a.urgency:.2f} complexity={a.complexity:.2f} "
        f"impact={a.business_impact:.2f} overall={a.overall_criticality:.2f}",
    ]
    return "\n".join(lines)


def cmd_run(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /run            -> run the next approved pending task
    /run <task_id>  -> run one specific approved PENDING task
    """
    engine = state.engine

    if args:
        task = state.task_store.get(args[0])
        if task is None:
            return f"Task not found: {args[0]}"
        if task.status != TaskStatus.PENDING:
            return f"Task {task.id} is {task.status.value}; only PENDING tasks can run."
        if not task.human_approved:
            return f"Task {task.id} is not approved yet; use /approve {task.id} first."
    else:
        task = engine.observe().next_task
        if task is None:
            return "Nothing to run: no approved PENDING tasks."

    assessment = engine.orient(task)
    _say(emit, f"[RUN] {task.title} (criticality {assessment.overall_criticality:.2f})")

    async def _go():
        decision = await engine.decide(task, selector=state.selector)
        if decision.is_failure():
            return decision
        _say(emit, f"[RUN] Agent: {decision.unwrap()}")
        return await engine.act(task, decision.unwrap())

    res = run_async(state, _go())
    if res.is_success():
        out = _clip(res.unwrap())
        return f"Task completed: {task.title}" + (f"\n{out}" if out else "")
    return f"Task not completed: {res.unwrap_error()}"


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = run_async(state, state.engine.get_system_stats())
    t = stats["tasks"]
    agents = stats["agents"]
    usage = ", ".join(f"{p}={n}" for p, n in agents["usage"].items()) or "-"
    return (
        "System stats:\n"
        f"  Tasks: total={t['total']} pending={t['pending']} in_progress={t['in_progress']} "
        f"completed={t['completed']} review={t['review']}\n"
        f"  Agents available: {', '.join(agents['available']) or '(none)'}\n"
        f"  Agent usage: {usage}\n"
        f"  Repository: {stats['repository']['path']}\n"
        f"  Uptime: {int(stats['uptime_seconds'])}s"
    )


def cmd_recent(state: AppState, args: list[str]) -> str:
    limit = 5
    if args:
        try:
            limit = max(1, int(args[0]))
        except ValueError:
            return "Usage: /recent [count]"

    tasks = state.engine.get_recent_tasks(limit)
    if not tasks:
        return "No tasks."
    lines = ["Recent tasks:"]
    for t in tasks:
        lines.append(f"  {_ts(t.created_at)}  {format_task_line(t)}")
    return "\n".join(lines)


def cmd_mode(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /mode              -> show current execution mode
    /mode <name>       -> switch (headless|terminal|simulated|file_op)
    """
    options = "|".join(m.value for m in ExecutionMode)
    if not args:
        return f"Execution mode: {state.execution_mode.value}. Use /mode {options}."

    raw = args[0].lower()
    if raw not in {m.value for m in ExecutionMode}:
        return f"Unknown mode: {raw}. Use /mode {options}."

    if raw == state.execution_mode.value:
        return f"Execution mode is already {raw}."

    _say(emit, f"[MODE] Switching executors to {raw}...")
    mode = switch_execution_mode(state, raw)
    return f"Execution mode set to {mode.value}."


def cmd_providers(state: AppState, args: list[str]) -> str:
    available = run_async(state, state.registry.get_available())
    names = {ex.get_provider() for ex in available}

    lines = ["Providers:"]
    for provider, ex in state.registry.snapshot().items():
        mark = "available" if provider in names else "unavailable"
        lines.append(f"  {provider}: {type(ex).__name__} ({mark})")
    if len(lines) == 1:
        lines.append("  (none registered)")
    return "\n".join(lines)


def cmd_auto(state: AppState, args: list[str]) -> str:
    """
    /auto      -> show status
    /auto on   -> start dispatching approved tasks in the background
    /auto off  -> stop
    """
    runner = state.runner
    if runner is None:
        return "Auto-dispatch is not available (engine is not running in the background)."

    if not args:
        return f"Auto-dispatch is {'ON' if runner.auto_dispatch else 'OFF'}. Use /auto on or /auto off."

    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        if not runner.start_auto_dispatch(state):
            return "Auto-dispatch is already ON."
        return f"Auto-dispatch enabled (every {state.settings.loop_interval_seconds:g}s)."

    if arg in ("off", "0", "false", "no"):
        if not runner.stop_auto_dispatch():
            return "Auto-dispatch is already OFF."
        return "Auto-dispatch disabled."

    return "Usage: /auto on or /auto off."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show execution mode, providers and paths.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [status].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Create a task: /add [p0..p3] [#category] <title> [-- description].")
registry.register("approve", cmd_approve, help_text="Approve a task for execution: /approve <task_id>.")
registry.register("observe", cmd_observe, help_text="Show counts and the next runnable task.")
registry.register("run", cmd_run, help_text="Execute the next approved task, or /run <task_id>.")
registry.register("stats", cmd_stats, help_text="Show task counts, agent availability and usage.")
registry.register("recent", cmd_recent, help_text="Show the most recently created tasks: /recent [count].")
registry.register("mode", cmd_mode, help_text="Show or switch execution mode: /mode headless|terminal|simulated|file_op.")
registry.register("providers", cmd_providers, help_text="Probe every registered agent CLI.")
registry.register("auto", cmd_auto, help_text="Background auto-dispatch: /auto on | /auto off.")
