# tests/test_task_store.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tasky.tasks.task_models import Category, Priority, TaskStatus
from tasky.tasks.task_store import JsonTaskStore


def test_create_get_update_roundtrip(store: JsonTaskStore) -> None:
    t = store.create(
        {
            "title": "Add login page",
            "description": "Customer facing",
            "priority": 2,
            "category": "frontend",
            "affected_files": ["src/login.tsx"],
        }
    )
    assert t.id.startswith("task_")
    assert t.status is TaskStatus.PENDING
    assert t.human_approved is False

    got = store.get(t.id)
    assert got is not None
    assert got.priority is Priority.HIGH
    assert got.category is Category.FRONTEND
    assert got.affected_files == ["src/login.tsx"]

    updated = store.update(t.id, {"status": "IN_PROGRESS", "assigned_provider": "claude"})
    assert updated.status is TaskStatus.IN_PROGRESS
    assert store.get(t.id).assigned_provider == "claude"


def test_file_layout_is_plain_json(store: JsonTaskStore) -> None:
    t = store.create({"title": "x"})
    data = json.loads(store.path.read_text("utf-8"))
    assert data["version"] == 1
    assert data["tasks"][0]["id"] == t.id
    assert data["tasks"][0]["status"] == "PENDING"


def test_list_filters_and_keeps_file_order(store: JsonTaskStore) -> None:
    a = store.create({"title": "a", "human_approved": True})
    b = store.create({"title": "b"})
    c = store.create({"title": "c", "human_approved": True})
    store.update(b.id, {"status": TaskStatus.COMPLETED})

    assert [t.id for t in store.list()] == [a.id, b.id, c.id]
    assert [t.id for t in store.list({"status": TaskStatus.PENDING})] == [a.id, c.id]
    assert [t.id for t in store.list({"status": ["COMPLETED"]})] == [b.id]
    assert [t.id for t in store.list({"human_approved": False})] == [b.id]


def test_external_edits_are_seen_and_unknown_keys_kept(store: JsonTaskStore) -> None:
    t = store.create({"title": "agent edits me"})

    data = json.loads(store.path.read_text("utf-8"))
    data["tasks"][0]["status"] = "COMPLETED"
    data["tasks"][0]["agent_note"] = "all good"
    store.path.write_text(json.dumps(data), "utf-8")

    assert store.get(t.id).status is TaskStatus.COMPLETED

    store.update(t.id, {"result": "ok"})
    rec = json.loads(store.path.read_text("utf-8"))["tasks"][0]
    assert rec["agent_note"] == "all good"
    assert rec["result"] == "ok"


def test_legacy_bare_list_and_bad_records(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(
        json.dumps([{"id": "t1", "title": "old", "status": "pending"}, {"title": "no id"}, "junk"]),
        "utf-8",
    )
    store = JsonTaskStore(path)

    tasks = store.list()
    assert [t.id for t in tasks] == ["t1"]
    assert tasks[0].status is TaskStatus.PENDING


def test_try_claim_is_compare_and_set(store: JsonTaskStore) -> None:
    t = store.create({"title": "claim me"})

    assert store.try_claim(t.id, expected=TaskStatus.PENDING, new_status=TaskStatus.IN_PROGRESS)
    assert not store.try_claim(t.id, expected=TaskStatus.PENDING, new_status=TaskStatus.IN_PROGRESS)
    assert not store.try_claim("missing", expected=TaskStatus.PENDING, new_status=TaskStatus.IN_PROGRESS)
    assert store.get(t.id).status is TaskStatus.IN_PROGRESS


def test_invalid_inputs(store: JsonTaskStore) -> None:
    with pytest.raises(ValueError):
        store.create({"title": "   "})

    t = store.create({"id": "fixed", "title": "one"})
    with pytest.raises(ValueError):
        store.create({"id": "fixed", "title": "dup"})

    with pytest.raises(ValueError):
        store.update(t.id, {"nonsense": 1})

    with pytest.raises(KeyError):
        store.update("missing", {"result": "x"})

    assert store.count_tasks() == 1


def test_unreadable_status_written_by_agent_is_never_requeued(store: JsonTaskStore) -> None:
    done = store.create({"title": "finished by agent", "human_approved": True})
    unsure = store.create({"title": "agent unsure", "human_approved": True})
    store.update(done.id, {"status": TaskStatus.IN_PROGRESS})
    store.update(done.id, {"status": TaskStatus.COMPLETED})
    store.update(unsure.id, {"status": TaskStatus.IN_PROGRESS})

    data = json.loads(store.path.read_text("utf-8"))
    data["tasks"][0]["status"] = "DONE"
    data["tasks"][1]["status"] = "needs review"
    store.path.write_text(json.dumps(data), "utf-8")

    assert store.get(done.id).status is TaskStatus.NEEDS_REVIEW
    assert store.get(unsure.id).status is TaskStatus.NEEDS_REVIEW
    assert store.list({"status": TaskStatus.PENDING}) == []

    with pytest.raises(ValueError):
        store.update(done.id, {"status": "finished"})
