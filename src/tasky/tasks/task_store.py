# src/tasky/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import secrets
import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .task_models import Category, Priority, Task, TaskStatus

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "category",
        "priority",
        "affected_files",
        "dependencies",
        "status",
        "human_approved",
        "assigned_provider",
        "result",
        "completed_at",
        "execution_path",
    }
)


def new_task_id(now_ts: float | None = None) -> str:
    ts = int((now_ts if now_ts is not None else time.time()) * 1000)
    return f"task_{ts}_{secrets.token_hex(4)}"


class JsonTaskStore:
    """
    JSON-file task store (default: <repo>/tasks/tasks.json).

    The file is deliberately plain JSON: external coding agents are told to edit the
    status of "their" task in place, so it must stay readable and hand-editable.

    File layout:
        {"version": 1, "tasks": [{"id": ..., "title": ..., "status": "PENDING", ...}, ...]}

    Thread-safety:
    - every call re-reads the file (external writers are expected)
    - writes go through a temp file + os.replace under a process-local lock
    """

    VERSION = 1

    def __init__(self, path: str | Path = "tasks/tasks.json") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        if not self._path.exists():
            self._write_records([])
        try:
            total = len(self._read_records())
        except Exception:
            total = -1
        logger.info("JsonTaskStore ready path=%s total=%s", self._path, total)

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        """Compatibility hook for shutdown (no open handles)."""
        return

    # ---- low-level helpers ----

    def _read_records(self) -> list[dict[str, Any]]:
        try:
            raw = self._path.read_text("utf-8")
        except FileNotFoundError:
            return []
        if not raw.strip():
            return []
        data = json.loads(raw)
        if isinstance(data, list):
            # Older files were a bare list of tasks.
            records = data
        elif isinstance(data, dict):
            records = data.get("tasks") or []
        else:
            records = []
        return [r for r in records if isinstance(r, dict)]

    def _write_records(self, records: list[dict[str, Any]]) -> None:
        payload = {"version": self.VERSION, "tasks": records}
        tmp = self._path.with_name(f".{self._path.name}.{os.getpid()}.{secrets.token_hex(3)}.tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)

    @staticmethod
    def _str_list(raw: Any) -> list[str]:
        if not raw:
            return []
        if isinstance(raw, str):
            return [raw]
        if isinstance(raw, Iterable):
            return [str(x) for x in raw if str(x).strip()]
        return []

    @staticmethod
    def _opt_float(raw: Any) -> float | None:
        if raw is None or raw == "":
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            return None

    def _record_status(self, rec: dict[str, Any]) -> TaskStatus:
        raw = rec.get("status")
        status = TaskStatus.from_raw(raw)
        if status is None:
            # Never re-queue a record with a status we cannot read.
            logger.warning(
                "Unrecognised status %r for task_id=%s in %s; treating as NEEDS_REVIEW",
                raw,
                rec.get("id"),
                self._path,
            )
            return TaskStatus.NEEDS_REVIEW
        return status

    def _record_to_task(self, rec: dict[str, Any]) -> Task:
        return Task(
            id=str(rec["id"]),
            title=str(rec.get("title") or ""),
            status=self._record_status(rec),
            priority=Priority.clamp(rec.get("priority", Priority.MEDIUM)),
            description=rec.get("description") or None,
            category=Category.from_raw(rec.get("category")),
            affected_files=self._str_list(rec.get("affected_files")),
            dependencies=self._str_list(rec.get("dependencies")),
            human_approved=bool(rec.get("human_approved", False)),
            assigned_provider=rec.get("assigned_provider") or None,
            result=rec.get("result"),
            created_at=self._opt_float(rec.get("created_at")) or 0.0,
            updated_at=self._opt_float(rec.get("updated_at")) or 0.0,
            completed_at=self._opt_float(rec.get("completed_at")),
            execution_path=rec.get("execution_path") or None,
        )

    @staticmethod
    def _task_to_record(task: Task) -> dict[str, Any]:
        return {
            "id": task.id,
            "title": task.title,
            "description": task.description,
            "category": task.category.value if task.category else None,
            "priority": int(task.priority),
            "affected_files": list(task.affected_files),
            "dependencies": list(task.dependencies),
            "status": task.status.value,
            "human_approved": task.human_approved,
            "assigned_provider": task.assigned_provider,
            "result": task.result,
            "created_at": task.created_at,
            "updated_at": task.updated_at,
            "completed_at": task.completed_at,
            "execution_path": task.execution_path,
        }

    def _load_tasks(self) -> list[Task]:
        out: list[Task] = []
        for rec in self._read_records():
            if not rec.get("id"):
                logger.warning("Skipping task record without id in %s", self._path)
                continue
            out.append(self._record_to_task(rec))
        return out

    @staticmethod
    def _apply_partial(task: Task, partial: dict[str, Any]) -> None:
        unknown = set(partial) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        for name, value in partial.items():
            if name == "status":
                if not isinstance(value, TaskStatus):
                    parsed = TaskStatus.from_raw(value)
                    if parsed is None:
                        raise ValueError(f"Unknown task status: {value!r}")
                    value = parsed
            elif name == "priority":
                value = Priority.clamp(value)
            elif name == "category":
                value = value if isinstance(value, Category) or value is None else Category.from_raw(value)
            elif name in ("affected_files", "dependencies"):
                value = JsonTaskStore._str_list(value)
            elif name == "human_approved":
                value = bool(value)
            setattr(task, name, value)

    # ---- public API (TaskRepository) ----

    def list(self, filter: dict[str, Any] | None = None) -> list[Task]:
        """Return tasks in file order, optionally filtered."""
        with self._lock:
            tasks = self._load_tasks()
        if not filter:
            return tasks

        statuses = filter.get("status")
        if isinstance(statuses, (TaskStatus, str)):
            statuses = {TaskStatus.from_raw(statuses)} - {None}
        elif statuses is not None:
            statuses = {TaskStatus.from_raw(s) for s in statuses} - {None}

        approved = filter.get("human_approved")
        provider = filter.get("assigned_provider")

        out: list[Task] = []
        for t in tasks:
            if statuses is not None and t.status not in statuses:
                continue
            if approved is not None and t.human_approved != bool(approved):
                continue
            if provider is not None and t.assigned_provider != provider:
                continue
            out.append(t)
        return out

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            for t in self._load_tasks():
                if t.id == task_id:
                    return t
        return None

    def create(self, data: dict[str, Any]) -> Task:
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")

        now = time.time()
        task = Task(
            id=str(data.get("id") or new_task_id(now)),
            title=title,
            created_at=now,
            updated_at=now,
        )
        extra = {k: v for k, v in data.items() if k not in ("id", "title")}
        self._apply_partial(task, extra)

        with self._lock:
            records = self._read_records()
            if any(str(r.get("id")) == task.id for r in records):
                raise ValueError(f"Task id already exists: {task.id}")
            records.append(self._task_to_record(task))
            self._write_records(records)

        logger.debug("Task created id=%s priority=%s", task.id, int(task.priority))
        return task

    def update(self, task_id: str, partial: dict[str, Any]) -> Task:
        with self._lock:
            records = self._read_records()
            for i, rec in enumerate(records):
                if str(rec.get("id")) != task_id:
                    continue
                task = self._record_to_task(rec)
                self._apply_partial(task, partial)
                task.updated_at = time.time()
                # Keep unknown keys an external editor may have added.
                merged = dict(rec)
                merged.update(self._task_to_record(task))
                records[i] = merged
                self._write_records(records)
                return task
        raise KeyError(task_id)

    def try_claim(self, task_id: str, *, expected: TaskStatus, new_status: TaskStatus) -> bool:
        """
        Atomic compare-and-set on status (within this process).

        Returns True if the task was in `expected` and is now in `new_status`.
        """
        with self._lock:
            task = self.get(task_id)
            if task is None or task.status != expected:
                return False
            self.update(task_id, {"status": new_status})
            return True

    def count_tasks(self) -> int:
        with contextlib.suppress(Exception):
            return len(self.list())
        return 0
