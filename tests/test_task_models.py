# tests/test_task_models.py

from __future__ import annotations

from tasky.tasks.task_models import Category, Priority, TaskStatus


def test_legal_transitions_only() -> None:
    assert TaskStatus.PENDING.can_transition_to(TaskStatus.IN_PROGRESS)
    assert TaskStatus.IN_PROGRESS.can_transition_to(TaskStatus.COMPLETED)
    assert TaskStatus.IN_PROGRESS.can_transition_to(TaskStatus.NEEDS_REVIEW)

    assert not TaskStatus.PENDING.can_transition_to(TaskStatus.COMPLETED)
    assert not TaskStatus.COMPLETED.can_transition_to(TaskStatus.PENDING)
    assert not TaskStatus.NEEDS_REVIEW.can_transition_to(TaskStatus.IN_PROGRESS)
    assert not TaskStatus.ARCHIVED.can_transition_to(TaskStatus.IN_PROGRESS)
    assert not TaskStatus.PENDING.can_transition_to(TaskStatus.ARCHIVED)


def test_status_from_raw_normalises_but_never_guesses() -> None:
    assert TaskStatus.from_raw("completed") is TaskStatus.COMPLETED
    assert TaskStatus.from_raw(" NEEDS_REVIEW ") is TaskStatus.NEEDS_REVIEW
    assert TaskStatus.from_raw("needs review") is TaskStatus.NEEDS_REVIEW
    assert TaskStatus.from_raw("in-progress") is TaskStatus.IN_PROGRESS
    assert TaskStatus.from_raw(None) is TaskStatus.PENDING
    assert TaskStatus.from_raw("") is TaskStatus.PENDING
    assert TaskStatus.from_raw("weird") is None
    assert TaskStatus.from_raw("DONE") is None


def test_priority_clamp() -> None:
    assert Priority.clamp(7) is Priority.CRITICAL
    assert Priority.clamp(-1) is Priority.LOW
    assert Priority.clamp("2") is Priority.HIGH
    assert Priority.clamp(None) is Priority.MEDIUM


def test_category_from_raw() -> None:
    assert Category.from_raw("Backend") is Category.BACKEND
    assert Category.from_raw("") is None
    assert Category.from_raw("mobile") is None
