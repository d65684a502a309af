# src/tasky/core/engine.py

from __future__ import annotations

"""
Task execution engine.

One round is observe -> orient -> decide -> act:
- observe: pick the highest-priority approved PENDING task
- orient: derive a TaskAssessment (pure scoring)
- decide: choose a provider among the available executors
- act: claim the task, run the executor, reconcile the outcome into task state

The engine owns the task record from the claim until the final status write.
"""

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..tasks.task_models import MAX_PRIORITY, Task, TaskAssessment, TaskStatus
from .errors import (
    ExecutionFailed,
    InvalidTransition,
    NoAgentAvailable,
    OrchestratorError,
    SelectionCancelled,
    TaskNotFound,
    as_orchestrator_error,
)
from .events import (
    AGENT_SELECTED,
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_OUTPUT,
    TASK_UPDATED,
    AgentSelectedEvent,
    EventBus,
    OutputChannel,
    TaskCompletedEvent,
    TaskFailedEvent,
    TaskOutputEvent,
    TaskUpdatedEvent,
)
from .ports import ProviderId, ProviderSelector, TaskRepository
from .result import Failure, Result, Success

if TYPE_CHECKING:
    from ..agents.executors import AgentConfig
    from ..agents.registry import ExecutorRegistry

logger = logging.getLogger(__name__)

IMPACT_KEYWORDS = ("revenue", "customer", "critical", "production", "security")

NOT_OBSERVED_MESSAGE = "launched; completion not observed"


@dataclass(slots=True, frozen=True)
class Observation:
    pending_count: int
    completed_count: int
    review_count: int
    next_task: Task | None


@dataclass(slots=True, frozen=True)
class CompletionPolicy:
    """How long to wait for a launched agent to write its own final status."""

    poll_interval_seconds: float = 5.0
    timeout_seconds: float = 1800.0


class PreferenceSelector:
    """Default selection: first provider of `preference` that is available, else the first candidate."""

    def __init__(self, preference: Sequence[ProviderId] = ("claude", "gemini")) -> None:
        self._preference = list(preference)

    async def select(self, task: Task | None, candidates: Sequence[ProviderId]) -> ProviderId | None:
        if not candidates:
            return None
        for provider in self._preference:
            if provider in candidates:
                return provider
        return candidates[0]


def assess(task: Task) -> TaskAssessment:
    urgency = min(1.0, max(0.0, int(task.priority) / int(MAX_PRIORITY)))
    complexity = min(len(task.affected_files) / 10.0, 1.0)

    description = (task.description or "").lower()
    impact = 0.5
    for keyword in IMPACT_KEYWORDS:
        if keyword in description:
            impact += 0.2
    impact = min(impact, 1.0)
    if task.priority == MAX_PRIORITY:
        impact = max(impact, 0.9)

    overall = urgency * 0.4 + complexity * 0.2 + impact * 0.4
    return TaskAssessment(
        urgency=urgency,
        complexity=complexity,
        business_impact=impact,
        overall_criticality=min(1.0, max(0.0, overall)),
    )


class Engine:
    def __init__(
        self,
        *,
        registry: ExecutorRegistry,
        repository: TaskRepository,
        events: EventBus,
        selector: ProviderSelector | None = None,
        simulated: bool = False,
        completion_policy: CompletionPolicy | None = None,
        repository_path: str | Path | None = None,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._events = events
        self._selector: ProviderSelector = selector or PreferenceSelector()
        self._simulated = simulated
        self._completion_policy = completion_policy
        self._repository_path = Path(repository_path) if repository_path is not None else Path.cwd()

        self._active: set[str] = set()
        self._usage: Counter[str] = Counter()
        self._started_at = time.monotonic()

    @property
    def registry(self) -> ExecutorRegistry:
        return self._registry

    @property
    def repository(self) -> TaskRepository:
        return self._repository

    @property
    def simulated(self) -> bool:
        return self._simulated

    def set_simulated(self, value: bool) -> None:
        self._simulated = bool(value)

    def set_selector(self, selector: ProviderSelector) -> None:
        self._selector = selector

    def is_active(self, task_id: str) -> bool:
        return task_id in self._active

    # ---- observe / orient / decide ----

    def observe(self) -> Observation:
        tasks = self._repository.list()
        runnable = [t for t in tasks if t.status == TaskStatus.PENDING and t.human_approved]
        # sorted() is stable: equal priorities keep file order.
        runnable = sorted(runnable, key=lambda t: int(t.priority), reverse=True)

        return Observation(
            pending_count=len(runnable),
            completed_count=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
            review_count=sum(1 for t in tasks if t.status == TaskStatus.NEEDS_REVIEW),
            next_task=runnable[0] if runnable else None,
        )

    def orient(self, task: Task) -> TaskAssessment:
        assessment = assess(task)
        self._events.publish(TASK_UPDATED, TaskUpdatedEvent(task=task, previous_status=task.status))
        logger.debug(
            "Oriented task_id=%s urgency=%.2f complexity=%.2f impact=%.2f overall=%.2f",
            task.id,
            assessment.urgency,
            assessment.complexity,
            assessment.business_impact,
            assessment.overall_criticality,
        )
        return assessment

    async def decide(
        self,
        task: Task | None = None,
        *,
        selector: ProviderSelector | None = None,
    ) -> Result[ProviderId, OrchestratorError]:
        """Pick a provider for `task`. `selector` overrides the engine default for this call."""
        available = await self._registry.get_available()
        candidates = [ex.get_provider() for ex in available]

        if not candidates and self._simulated:
            candidates = self._registry.providers()
        if not candidates:
            logger.warning("No agents available task_id=%s", task.id if task else None)
            return Failure(NoAgentAvailable())

        try:
            provider = await (selector or self._selector).select(task, candidates)
        except Exception as e:
            logger.exception("Provider selection failed")
            return Failure(as_orchestrator_error(e))

        if provider is None:
            return Failure(SelectionCancelled())
        if provider not in candidates:
            return Failure(NoAgentAvailable(f"Selected agent is not available: {provider}"))

        self._events.publish(AGENT_SELECTED, AgentSelectedEvent(task_id=task.id if task else "", provider=provider))
        logger.info("Agent selected provider=%s task_id=%s", provider, task.id if task else None)
        return Success(provider)

    # ---- act ----

    def _claim(self, task_id: str, provider: ProviderId) -> Result[Task, OrchestratorError]:
        repo = self._repository
        try_claim = getattr(repo, "try_claim", None)

        if try_claim is not None:
            if not try_claim(task_id, expected=TaskStatus.PENDING, new_status=TaskStatus.IN_PROGRESS):
                current = repo.get(task_id)
                if current is None:
                    return Failure(TaskNotFound(task_id))
                return Failure(InvalidTransition(task_id, current.status.value, TaskStatus.IN_PROGRESS.value))
            return Success(repo.update(task_id, {"assigned_provider": provider}))

        current = repo.get(task_id)
        if current is None:
            return Failure(TaskNotFound(task_id))
        if not current.status.can_transition_to(TaskStatus.IN_PROGRESS):
            return Failure(InvalidTransition(task_id, current.status.value, TaskStatus.IN_PROGRESS.value))
        return Success(repo.update(task_id, {"status": TaskStatus.IN_PROGRESS, "assigned_provider": provider}))

    async def _relay(self, task_id: str, channel: OutputChannel) -> None:
        async for stream, chunk in channel:
            self._events.publish(TASK_OUTPUT, TaskOutputEvent(task_id=task_id, chunk=chunk, stream=stream))

    async def act(
        self,
        task: Task,
        provider: ProviderId,
        config: AgentConfig | None = None,
    ) -> Result[str, OrchestratorError]:
        task_id = task.id
        if task_id in self._active:
            return Failure(InvalidTransition(task_id, TaskStatus.IN_PROGRESS.value, TaskStatus.IN_PROGRESS.value))

        # No await between the check above and this add: single-flight per task id.
        self._active.add(task_id)
        try:
            try:
                claimed = self._claim(task_id, provider)
            except Exception as e:
                logger.exception("Claim failed task_id=%s", task_id)
                return Failure(as_orchestrator_error(e))
            if claimed.is_failure():
                logger.info("Task not claimed task_id=%s: %s", task_id, claimed.unwrap_error())
                return Failure(claimed.unwrap_error())

            running = claimed.unwrap()
            self._usage[provider] += 1
            self._events.publish(TASK_UPDATED, TaskUpdatedEvent(task=running, previous_status=TaskStatus.PENDING))
            logger.info("Executing task_id=%s provider=%s", task_id, provider)

            started = time.monotonic()
            try:
                outcome = await self._execute(running, provider, config)
            except asyncio.CancelledError:
                self._finish_failed(running, "Execution cancelled", started)
                raise

            duration_ms = int((time.monotonic() - started) * 1000)

            if outcome.is_failure():
                err = outcome.unwrap_error()
                return self._finish_failed(running, str(err), started, err)

            res = outcome.unwrap()
            if res.launched and self._completion_policy is not None:
                return await self._await_external_completion(running, res.output, started)

            if res.success:
                return self._finish_completed(running, res.output, duration_ms)

            message = res.error or "Execution failed"
            return self._finish_failed(running, message, started, ExecutionFailed(message, exit_code=res.exit_code))
        finally:
            self._active.discard(task_id)

    async def _execute(self, task: Task, provider: ProviderId, config: AgentConfig | None) -> Result[Any, OrchestratorError]:
        channel = OutputChannel()
        relay = asyncio.create_task(self._relay(task.id, channel))
        try:
            executor = self._registry.get(provider)
            return await executor.execute(task, config, output=channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Executor raised task_id=%s provider=%s", task.id, provider)
            return Failure(as_orchestrator_error(e))
        finally:
            channel.close()
            await relay
            if channel.dropped:
                logger.warning("Dropped %s output chunks task_id=%s", channel.dropped, task.id)

    def _write_final(self, task: Task, partial: dict[str, Any]) -> Task:
        try:
            return self._repository.update(task.id, partial)
        except Exception:
            logger.exception("Final status write failed task_id=%s", task.id)
            for name, value in partial.items():
                setattr(task, name, value)
            return task

    def _finish_completed(self, task: Task, output: str, duration_ms: int) -> Result[str, OrchestratorError]:
        updated = self._write_final(
            task,
            {"status": TaskStatus.COMPLETED, "result": output, "completed_at": time.time()},
        )
        self._events.publish(TASK_UPDATED, TaskUpdatedEvent(task=updated, previous_status=TaskStatus.IN_PROGRESS))
        self._events.publish(TASK_COMPLETED, TaskCompletedEvent(task=updated, result=output, duration_ms=duration_ms))
        logger.info("Task completed task_id=%s duration_ms=%s", task.id, duration_ms)
        return Success(output)

    def _finish_failed(
        self,
        task: Task,
        message: str,
        started: float,
        error: OrchestratorError | None = None,
    ) -> Result[str, OrchestratorError]:
        updated = self._write_final(task, {"status": TaskStatus.NEEDS_REVIEW, "result": message})
        self._events.publish(TASK_UPDATED, TaskUpdatedEvent(task=updated, previous_status=TaskStatus.IN_PROGRESS))
        self._events.publish(TASK_FAILED, TaskFailedEvent(task=updated, error=message))
        logger.warning(
            "Task needs review task_id=%s after %s ms: %s",
            task.id,
            int((time.monotonic() - started) * 1000),
            message.splitlines()[0] if message else "",
        )
        return Failure(error or ExecutionFailed(message))

    async def _await_external_completion(
        self, task: Task, launch_output: str, started: float
    ) -> Result[str, OrchestratorError]:
        policy = self._completion_policy
        assert policy is not None
        deadline = time.monotonic() + max(0.0, policy.timeout_seconds)
        interval = max(0.01, policy.poll_interval_seconds)

        logger.info("Waiting for agent status write task_id=%s timeout_s=%s", task.id, policy.timeout_seconds)
        while True:
            try:
                current = self._repository.get(task.id)
            except Exception:
                logger.exception("Completion poll failed task_id=%s", task.id)
                current = None

            if current is not None and current.status == TaskStatus.COMPLETED:
                return self._finish_completed(
                    current,
                    current.result or launch_output,
                    int((time.monotonic() - started) * 1000),
                )
            if current is not None and current.status == TaskStatus.NEEDS_REVIEW:
                return self._finish_failed(current, current.result or "Agent marked the task for review", started)

            if time.monotonic() >= deadline:
                return self._finish_failed(task, NOT_OBSERVED_MESSAGE, started)

            await asyncio.sleep(interval)

    # ---- one full round ----

    async def run_cycle(self, *, selector: ProviderSelector | None = None) -> Result[str, OrchestratorError] | None:
        """observe -> orient -> decide -> act for the next runnable task; None when idle."""
        observation = self.observe()
        task = observation.next_task
        if task is None:
            return None

        self.orient(task)
        decision = await self.decide(task, selector=selector)
        if decision.is_failure():
            logger.info("No provider for task_id=%s: %s", task.id, decision.unwrap_error())
            return Failure(decision.unwrap_error())

        return await self.act(task, decision.unwrap())

    # ---- reporting ----

    async def get_system_stats(self) -> dict[str, Any]:
        tasks = self._repository.list()
        available = await self._registry.get_available()
        return {
            "tasks": {
                "total": len(tasks),
                "pending": sum(1 for t in tasks if t.status == TaskStatus.PENDING),
                "in_progress": sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
                "completed": sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
                "review": sum(1 for t in tasks if t.status == TaskStatus.NEEDS_REVIEW),
            },
            "agents": {
                "available": [ex.get_provider() for ex in available],
                "usage": {p: self._usage.get(p, 0) for p in self._registry.providers()},
            },
            "repository": {"path": str(self._repository_path)},
            "uptime_seconds": time.monotonic() - self._started_at,
        }

    def get_recent_tasks(self, limit: int = 5) -> list[Task]:
        tasks = sorted(self._repository.list(), key=lambda t: t.created_at, reverse=True)
        return tasks[: max(0, int(limit))]


async def run_engine_loop(engine: Engine, *, interval_seconds: float = 15.0) -> None:
    """
    Auto-dispatch loop.

    Every interval_seconds runs one engine cycle. A cycle that raises is logged and
    the loop keeps going. To stop it, cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        try:
            outcome = await engine.run_cycle()
        except Exception:
            logger.exception("Engine cycle failed")
            outcome = None

        if outcome is not None and outcome.is_success():
            # More work may be queued: go again without waiting.
            continue

        await asyncio.sleep(sleep_s)
