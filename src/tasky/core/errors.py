# src/tasky/core/errors.py

"""Error taxonomy for the orchestrator core.

Executors never let these escape: they are wrapped into `Failure` values.
`ExecutorNotRegistered` is the exception: it is a programmer error raised by the
registry itself.
"""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base error; the message is meant to be shown to a user as-is."""


class NoAgentAvailable(OrchestratorError):
    def __init__(self, message: str = "No AI agents available. Install the claude or gemini CLI.") -> None:
        super().__init__(message)


class SelectionCancelled(OrchestratorError):
    def __init__(self, message: str = "Agent selection cancelled") -> None:
        super().__init__(message)


class ExecutionTimeout(OrchestratorError):
    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Process timed out after {timeout_ms} ms")
        self.timeout_ms = timeout_ms


class ExecutorNotRegistered(OrchestratorError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"No executor registered for provider: {provider}")
        self.provider = provider


class ExecutionFailed(OrchestratorError):
    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class InvalidTransition(OrchestratorError):
    def __init__(self, task_id: str, current: str, requested: str) -> None:
        super().__init__(f"Task {task_id}: illegal status change {current} -> {requested}")
        self.task_id = task_id
        self.current = current
        self.requested = requested


class TaskNotFound(OrchestratorError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


def as_orchestrator_error(exc: BaseException) -> OrchestratorError:
    """Wrap an arbitrary exception, keeping orchestrator errors untouched."""
    if isinstance(exc, OrchestratorError):
        return exc
    err = ExecutionFailed(str(exc) or exc.__class__.__name__)
    err.__cause__ = exc
    return err
