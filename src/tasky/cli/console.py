# src/tasky/cli/console.py

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Sequence
from datetime import datetime

from ..core.events import (
    AGENT_SELECTED,
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_OUTPUT,
    AgentSelectedEvent,
    TaskCompletedEvent,
    TaskFailedEvent,
    TaskOutputEvent,
)
from ..core.ports import ProviderId
from ..core.state import AppState
from ..tasks.task_models import Task
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleSelector:
    """Asks the user which agent to use. Empty input or 'q' cancels."""

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        print_fn: Callable[[str], None] = print,
    ) -> None:
        self._input = input_fn
        self._print = print_fn

    def choose(self, task: Task | None, candidates: Sequence[ProviderId]) -> ProviderId | None:
        if not candidates:
            return None
        if task is not None:
            self._print(f"Select an agent for: {task.title}")
        for i, provider in enumerate(candidates, start=1):
            self._print(f"  {i}) {provider}")

        try:
            raw = self._input("Agent [1]: ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            return None

        if raw in ("q", "quit", "cancel"):
            return None
        if not raw:
            return candidates[0]
        if raw.isdigit():
            idx = int(raw) - 1
            return candidates[idx] if 0 <= idx < len(candidates) else None
        return raw if raw in candidates else None

    async def select(self, task: Task | None, candidates: Sequence[ProviderId]) -> ProviderId | None:
        # input() blocks: keep it off the event loop.
        return await asyncio.to_thread(self.choose, task, list(candidates))


def attach_event_printer(state: AppState) -> list[Callable[[], None]]:
    """Print engine events to the console. Returns the unsubscribe callables."""

    def on_output(ev: TaskOutputEvent) -> None:
        print(ev.chunk, end="" if ev.chunk.endswith("\n") else "\n", flush=True)

    def on_selected(ev: AgentSelectedEvent) -> None:
        _print_ts(f"[AGENT] {ev.provider} selected for {ev.task_id or '(no task)'}")

    def on_completed(ev: TaskCompletedEvent) -> None:
        _print_ts(f"[DONE] {ev.task.title} ({ev.duration_ms} ms)")

    def on_failed(ev: TaskFailedEvent) -> None:
        first = ev.error.splitlines()[0] if ev.error else ""
        _print_ts(f"[REVIEW] {ev.task.title}: {first}")

    bus = state.events
    return [
        bus.subscribe(TASK_OUTPUT, on_output),
        bus.subscribe(AGENT_SELECTED, on_selected),
        bus.subscribe(TASK_COMPLETED, on_completed),
        bus.subscribe(TASK_FAILED, on_failed),
    ]


def run_console_loop(state: AppState) -> None:
    logger.info("Console started (mode=%s).", state.execution_mode.value)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    if state.selector is None:
        state.selector = ConsoleSelector()
    unsubscribers = attach_event_printer(state)

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g., agent runs)
        print(f"[{_ts_local()}] {text}", flush=True)

    try:
        while True:
            try:
                line = input(">>> ").strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> {line}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not line:
                continue

            if line.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                with state.lock:
                    response = command_registry.handle(state, line, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is None:
                response = "Commands start with '/'. Use /help to list them."
            print(f"[{_ts_local()}] {response}")
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()

    logger.info("Console finished.")
