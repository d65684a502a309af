# src/tasky/agents/registry.py

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from ..config import Settings
from ..core.errors import ExecutorNotRegistered
from ..core.ports import AgentExecutor, ProviderId
from .executors import (
    CLAUDE,
    GEMINI,
    ExecutionMode,
    FileOpExecutor,
    HeadlessExecutor,
    SimulatedExecutor,
    TerminalExecutor,
)

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS: tuple[ProviderId, ...] = (CLAUDE, GEMINI)


class ExecutorRegistry:
    """
    Provider -> executor map owned by the composition root and passed to the engine.

    swap_all() replaces the whole map at once, so a concurrent lookup sees either
    the old set or the new one, never a mix.
    """

    def __init__(self, executors: Iterable[AgentExecutor] = ()) -> None:
        self._lock = threading.Lock()
        self._executors: dict[ProviderId, AgentExecutor] = {}
        for ex in executors:
            self._executors[ex.get_provider()] = ex

    def register(self, executor: AgentExecutor) -> None:
        with self._lock:
            updated = dict(self._executors)
            updated[executor.get_provider()] = executor
            self._executors = updated
        logger.debug("Executor registered provider=%s type=%s", executor.get_provider(), type(executor).__name__)

    def swap_all(self, executors: Iterable[AgentExecutor]) -> None:
        fresh = {ex.get_provider(): ex for ex in executors}
        with self._lock:
            self._executors = fresh
        logger.info(
            "Executors swapped: %s",
            ", ".join(f"{p}={type(e).__name__}" for p, e in fresh.items()) or "(none)",
        )

    def get(self, provider: ProviderId) -> AgentExecutor:
        ex = self._executors.get(provider)
        if ex is None:
            raise ExecutorNotRegistered(provider)
        return ex

    def providers(self) -> list[ProviderId]:
        return list(self._executors)

    def snapshot(self) -> dict[ProviderId, AgentExecutor]:
        return dict(self._executors)

    async def get_available(self) -> list[AgentExecutor]:
        """Probe all executors concurrently; a probe that raises counts as unavailable."""
        executors = list(self._executors.values())
        if not executors:
            return []

        results = await asyncio.gather(*(ex.is_available() for ex in executors), return_exceptions=True)
        available: list[AgentExecutor] = []
        for ex, res in zip(executors, results):
            if isinstance(res, BaseException):
                logger.warning("Availability probe raised provider=%s: %r", ex.get_provider(), res)
                continue
            if res:
                available.append(ex)
        return available


# ---- variant sets ----


def headless_variants(settings: Settings) -> list[AgentExecutor]:
    timeout_ms = int(settings.execution_timeout_seconds * 1000)
    probe_ms = int(settings.probe_timeout_seconds * 1000)
    return [
        HeadlessExecutor(
            provider=CLAUDE,
            repository_path=Path(settings.repository_path),
            tasks_file=Path(settings.tasks_file),
            command=settings.claude_command,
            timeout_ms=timeout_ms,
            probe_timeout_ms=probe_ms,
        ),
        HeadlessExecutor(
            provider=GEMINI,
            repository_path=Path(settings.repository_path),
            tasks_file=Path(settings.tasks_file),
            command=settings.gemini_command,
            timeout_ms=timeout_ms,
            probe_timeout_ms=probe_ms,
        ),
    ]


def terminal_variants(settings: Settings) -> list[AgentExecutor]:
    probe_ms = int(settings.probe_timeout_seconds * 1000)
    return [
        TerminalExecutor(
            provider=provider,
            repository_path=Path(settings.repository_path),
            tasks_file=Path(settings.tasks_file),
            scratch_dir=Path(settings.scratch_dir),
            command=command,
            probe_timeout_ms=probe_ms,
        )
        for provider, command in ((CLAUDE, settings.claude_command), (GEMINI, settings.gemini_command))
    ]


def simulated_variants(delay_seconds: float = 2.0) -> list[AgentExecutor]:
    # Gemini answers a little faster so the two are distinguishable in demos.
    return [
        SimulatedExecutor(provider=CLAUDE, delay_seconds=delay_seconds),
        SimulatedExecutor(provider=GEMINI, delay_seconds=delay_seconds * 0.75),
    ]


def file_op_variants(root: str | Path) -> list[AgentExecutor]:
    return [FileOpExecutor(provider=p, root=Path(root)) for p in DEFAULT_PROVIDERS]


def variants_for_mode(mode: ExecutionMode | str, settings: Settings) -> list[AgentExecutor]:
    mode = ExecutionMode.from_raw(str(mode))
    if mode == ExecutionMode.HEADLESS:
        return headless_variants(settings)
    if mode == ExecutionMode.SIMULATED:
        return simulated_variants(settings.simulated_delay_seconds)
    if mode == ExecutionMode.FILE_OP:
        return file_op_variants(settings.repository_path)
    return terminal_variants(settings)
