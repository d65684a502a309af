# src/tasky/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The engine depends on Protocols instead of concrete implementations.
This keeps storage/executors/selection swappable and makes testing easier.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

from ..tasks.task_models import Task, TaskStatus

if TYPE_CHECKING:
    from ..agents.executors import AgentConfig, ExecutionResult
    from .errors import OrchestratorError
    from .events import OutputChannel
    from .result import Result

ProviderId = str
# "claude" | "gemini"; kept as str so new providers need no enum change.


class TaskRepository(Protocol):
    """
    Narrow storage contract. The orchestrator never touches the storage format.

    list(filter): filter keys are optional: status (TaskStatus or iterable of them),
    human_approved (bool), assigned_provider (str).
    update(id, partial): partial maps Task field names to new values; returns the stored Task.
    """

    def list(self, filter: dict[str, Any] | None = None) -> list[Task]: ...
    def get(self, task_id: str) -> Task | None: ...
    def update(self, task_id: str, partial: dict[str, Any]) -> Task: ...
    def create(self, data: dict[str, Any]) -> Task: ...


class ClaimingRepository(TaskRepository, Protocol):
    """Optional extension: atomic compare-and-set on status."""

    def try_claim(self, task_id: str, *, expected: TaskStatus, new_status: TaskStatus) -> bool: ...


class AgentExecutor(Protocol):
    async def execute(
            self,
            task: Task,
            config: AgentConfig | None = None,
            *,
            output: OutputChannel | None = None,
    ) -> Result[ExecutionResult, OrchestratorError]: ...

    async def is_available(self) -> bool: ...

    def get_provider(self) -> ProviderId: ...


class ProviderSelector(Protocol):
    """Pick one provider for a task among the available ones; None means cancelled."""

    async def select(self, task: Task | None, candidates: Sequence[ProviderId]) -> ProviderId | None: ...
