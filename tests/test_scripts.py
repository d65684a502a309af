# tests/test_scripts.py

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from tasky.agents.scripts import (
    render_bash_script,
    render_powershell_script,
    to_wsl_path,
    unique_script_path,
    write_script,
)
from tasky.tasks.task_models import Task


def _task(title: str = "Refactor auth") -> Task:
    return Task(id="task_42_deadbeef", title=title)


def test_unique_paths_per_execution(tmp_path: Path) -> None:
    a = unique_script_path(tmp_path, "claude", "task_42", ".sh")
    b = unique_script_path(tmp_path, "claude", "task_42", ".sh")

    assert a != b
    assert a.parent == tmp_path and b.parent == tmp_path
    assert a.name.startswith("tasky-claude-task_42-")
    assert a.suffix == ".sh"


def test_unsafe_task_id_is_sanitized(tmp_path: Path) -> None:
    p = unique_script_path(tmp_path, "gemini", "../../etc/passwd x", ".ps1")
    assert p.parent == tmp_path
    assert "/" not in p.name and " " not in p.name


def test_write_script_never_overwrites(tmp_path: Path) -> None:
    p = write_script(tmp_path / "s" / "run.sh", "echo hi\n")
    assert p.read_text("utf-8") == "echo hi\n"
    if os.name == "posix":
        assert p.stat().st_mode & stat.S_IXUSR

    with pytest.raises(FileExistsError):
        write_script(p, "echo again\n")


def test_bash_script_embeds_prompt_literally(tmp_path: Path) -> None:
    prompt = "Task: do $HOME `things`\nTask ID: task_42_deadbeef\nquote ' and \" done"
    body = render_bash_script(
        prompt=prompt,
        task=_task(),
        display_name="Claude",
        command="claude",
        args=["--dangerously-skip-permissions"],
        cwd=tmp_path,
    )

    assert body.startswith("#!/usr/bin/env bash")
    assert prompt in body
    assert "<<'TASKY_PROMPT_" in body
    assert "claude --dangerously-skip-permissions" in body
    assert "Press Enter" in body
    assert 'rm -f -- "$0"' in body


def test_powershell_script_quotes_and_wraps_wsl(tmp_path: Path) -> None:
    body = render_powershell_script(
        prompt="line one\n'@ sneaky terminator\nline three",
        task=_task("Bob's task"),
        display_name="Gemini",
        command="gemini",
        args=["--yolo"],
        cwd=tmp_path,
    )

    assert "Bob''s task" in body
    assert "\n '@ sneaky terminator" in body
    assert "$prompt | wsl '--' 'gemini' '--yolo'" in body
    assert "Read-Host 'Press Enter to close'" in body


def test_to_wsl_path() -> None:
    assert to_wsl_path("C:\\Users\\me\\repo") == "/mnt/c/Users/me/repo"
    assert to_wsl_path("D:\\") == "/mnt/d"
    assert to_wsl_path("/home/me/repo") == "/home/me/repo"
