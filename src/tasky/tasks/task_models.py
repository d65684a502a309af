# src/tasky/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - Only the orchestrator moves a task away from PENDING.
    - ARCHIVED is set by humans/UI; the orchestrator never enters or leaves it.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    ARCHIVED = "ARCHIVED"

    @classmethod
    def from_raw(cls, raw: str | None) -> TaskStatus | None:
        """Missing status means a fresh PENDING task; an unrecognised one returns None."""
        if raw is None or not str(raw).strip():
            return cls.PENDING
        key = str(raw).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return None

    def can_transition_to(self, new_status: TaskStatus) -> bool:
        return new_status in _TRANSITIONS.get(self, frozenset())


_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.NEEDS_REVIEW}),
}

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.NEEDS_REVIEW})


class Priority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @classmethod
    def clamp(cls, raw: Any) -> Priority:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return cls.MEDIUM
        return cls(max(int(cls.LOW), min(int(cls.CRITICAL), value)))


MAX_PRIORITY = Priority.CRITICAL


class Category(StrEnum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    DATABASE = "database"
    API = "api"
    CONFIG = "config"

    @classmethod
    def from_raw(cls, raw: str | None) -> Category | None:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


@dataclass(slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM

    description: str | None = None
    category: Category | None = None
    affected_files: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)

    human_approved: bool = False
    assigned_provider: str | None = None
    result: str | None = None

    created_at: float = 0.0
    updated_at: float = 0.0
    completed_at: float | None = None

    # Working directory for agents; relative paths resolve against the repository root.
    execution_path: str | None = None


@dataclass(slots=True, frozen=True)
class TaskAssessment:
    """Derived scores in [0, 1]; never persisted."""

    urgency: float
    complexity: float
    business_impact: float
    overall_criticality: float
