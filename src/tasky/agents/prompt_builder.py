# src/tasky/agents/prompt_builder.py

from __future__ import annotations

from pathlib import Path

from ..tasks.task_models import Task


def _priority_label(task: Task) -> str:
    return task.priority.name


def _category_label(task: Task) -> str:
    return task.category.value if task.category else "uncategorized"


def build_task_prompt(task: Task, *, repository_path: str | Path, tasks_file: str | Path) -> str:
    """
    Render the instruction text handed to a coding agent.

    Pure and deterministic: same task + paths -> same text. The task id is written
    exactly once (in the header) so the record can be found by a plain text search;
    the closing section refers back to it instead of repeating it. Free text copied
    from the task (title, description) is not scanned, so an id quoted there shows up
    again.

    `Path` arguments are resolved against the local filesystem. Strings are used as
    given, which is how WSL paths (/mnt/c/...) reach the agent unchanged.
    """
    repo = repository_path.resolve() if isinstance(repository_path, Path) else repository_path
    tasks_path = tasks_file.resolve() if isinstance(tasks_file, Path) else tasks_file

    lines: list[str] = [f"Task: {task.title}"]

    if task.description:
        lines += ["", f"Description: {task.description}"]

    lines += [
        "",
        f"Category: {_category_label(task)}",
        f"Priority: {_priority_label(task)}",
        f"Task ID: {task.id}",
    ]

    if task.affected_files:
        lines += ["", "Affected Files:", *task.affected_files]

    lines += [
        "",
        "IMPORTANT - AUTOMATIC STATUS UPDATE:",
        f"After completing this task you MUST update its record in {tasks_path}.",
        "Find the entry whose \"id\" equals the Task ID above and set its \"status\" field to one of:",
        '- "COMPLETED" - the task finished successfully',
        '- "NEEDS_REVIEW" - the task needs a human to look at it',
        "Leave every other task and field untouched.",
        "",
        f"Repository Location: {repo}",
        f"Tasks File: {tasks_path}",
        "",
        "This status update is REQUIRED - the task tracker depends on it.",
    ]
    return "\n".join(lines)
