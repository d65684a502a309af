# tests/test_executors.py

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from tasky.agents import executors as executors_mod
from tasky.agents.executors import (
    PROFILES,
    AgentConfig,
    ExecutionMode,
    FileOpExecutor,
    HeadlessExecutor,
    SimulatedExecutor,
    TerminalExecutor,
    parse_files_modified,
    resolve_cwd,
)
from tasky.core.errors import ExecutionFailed
from tasky.core.events import OutputChannel
from tasky.tasks.task_models import Task

PY = sys.executable


def _task(task_id: str = "task_1_aaaa0001", title: str = "Do the thing", **kw) -> Task:
    return Task(id=task_id, title=title, **kw)


def _headless(tmp_path: Path, **kw) -> HeadlessExecutor:
    # "custom" has no auto-accept flags, so the python interpreter can stand in for an agent CLI.
    return HeadlessExecutor(
        provider="custom",
        repository_path=tmp_path,
        tasks_file=tmp_path / "tasks.json",
        platform="linux",
        **kw,
    )


async def _drain(ch: OutputChannel) -> list[tuple[str, str]]:
    ch.close()
    return [item async for item in ch]


def test_execution_mode_from_raw() -> None:
    assert ExecutionMode.from_raw("headless") is ExecutionMode.HEADLESS
    assert ExecutionMode.from_raw("FILE_OP") is ExecutionMode.FILE_OP
    assert ExecutionMode.from_raw("nope") is ExecutionMode.TERMINAL


def test_parse_files_modified_per_provider() -> None:
    claude_re = PROFILES["claude"].files_modified_re
    gemini_re = PROFILES["gemini"].files_modified_re

    assert parse_files_modified("ok\nFiles modified: a.py, b/c.ts\n", claude_re) == ["a.py", "b/c.ts"]
    assert parse_files_modified("Modified: x.ts", gemini_re) == ["x.ts"]
    assert parse_files_modified("nothing here", claude_re) is None


def test_resolve_cwd(tmp_path: Path) -> None:
    assert resolve_cwd(_task(), tmp_path) == tmp_path
    assert resolve_cwd(_task(execution_path="sub/dir"), tmp_path) == tmp_path / "sub" / "dir"
    assert resolve_cwd(_task(execution_path=str(tmp_path / "abs")), "/elsewhere") == tmp_path / "abs"


@pytest.mark.asyncio
async def test_headless_success_streams_and_parses(tmp_path: Path) -> None:
    script = (
        "import sys; prompt = sys.stdin.read(); "
        "print('saw id' if 'task_1_aaaa0001' in prompt else 'no id'); "
        "print('Files modified: a.py, b.py')"
    )
    ex = _headless(tmp_path)
    ch = OutputChannel()

    res = await ex.execute(_task(), AgentConfig(provider="custom", command=PY, args=("-c", script)), output=ch)
    chunks = await _drain(ch)

    assert res.is_success()
    r = res.unwrap()
    assert r.success and r.exit_code == 0 and not r.launched
    assert "saw id" in r.output
    assert r.files_modified == ["a.py", "b.py"]
    assert any("saw id" in c for _s, c in chunks)


@pytest.mark.asyncio
async def test_headless_nonzero_exit_is_unsuccessful(tmp_path: Path) -> None:
    script = "import sys; sys.stderr.write('compile error'); sys.exit(2)"
    res = await _headless(tmp_path).execute(
        _task(), AgentConfig(provider="custom", command=PY, args=("-c", script))
    )

    r = res.unwrap()
    assert r.success is False
    assert r.exit_code == 2
    assert "compile error" in (r.error or "")


@pytest.mark.asyncio
async def test_headless_timeout_mentions_timeout(tmp_path: Path) -> None:
    script = "import time; time.sleep(5)"
    res = await _headless(tmp_path).execute(
        _task(), AgentConfig(provider="custom", command=PY, args=("-c", script), timeout_ms=100)
    )

    r = res.unwrap()
    assert r.success is False
    assert "timed out" in (r.error or "").lower()


@pytest.mark.asyncio
async def test_headless_missing_binary_is_failure(tmp_path: Path) -> None:
    ex = _headless(tmp_path, command="tasky-no-such-agent-9c1e")

    res = await ex.execute(_task())
    assert res.is_failure()
    assert isinstance(res.unwrap_error(), ExecutionFailed)
    assert await ex.is_available() is False


@pytest.mark.asyncio
async def test_headless_available_when_version_probe_succeeds(tmp_path: Path) -> None:
    assert await _headless(tmp_path, command=PY).is_available() is True


def _terminal(tmp_path: Path, **kw) -> TerminalExecutor:
    return TerminalExecutor(
        provider="claude",
        repository_path=tmp_path,
        tasks_file=tmp_path / "tasks.json",
        scratch_dir=tmp_path / "scratch",
        **kw,
    )


@pytest.mark.asyncio
async def test_terminal_concurrent_launches_get_distinct_scripts(tmp_path: Path, monkeypatch) -> None:
    launched: list[Path] = []

    def fake_launch(script_path, *, title, cwd=None, platform=None) -> bool:
        launched.append(Path(script_path))
        return True

    monkeypatch.setattr(executors_mod, "launch_detached_terminal", fake_launch)
    ex = _terminal(tmp_path, platform="linux")

    r1, r2 = await asyncio.gather(
        ex.execute(_task("task_1_aaaa0001", "First")),
        ex.execute(_task("task_2_bbbb0002", "Second")),
    )

    assert r1.unwrap().launched and r2.unwrap().launched
    assert r1.unwrap().success and r2.unwrap().success
    assert len(launched) == 2
    assert launched[0] != launched[1]
    assert all(p.exists() and p.suffix == ".sh" for p in launched)
    assert "task_1_aaaa0001" in launched[0].read_text("utf-8") or "task_1_aaaa0001" in launched[1].read_text("utf-8")


@pytest.mark.asyncio
async def test_terminal_windows_renders_powershell(tmp_path: Path, monkeypatch) -> None:
    launched: list[Path] = []
    monkeypatch.setattr(
        executors_mod,
        "launch_detached_terminal",
        lambda p, **kw: launched.append(Path(p)) or True,
    )

    res = await _terminal(tmp_path, platform="win32").execute(_task())

    assert res.unwrap().launched
    body = launched[0].read_text("utf-8")
    assert launched[0].suffix == ".ps1"
    assert "wsl" in body and "'--dangerously-skip-permissions'" in body


@pytest.mark.asyncio
async def test_terminal_no_emulator_is_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(executors_mod, "launch_detached_terminal", lambda p, **kw: False)

    res = await _terminal(tmp_path, platform="linux").execute(_task())
    assert res.is_failure()
    assert isinstance(res.unwrap_error(), ExecutionFailed)


@pytest.mark.asyncio
async def test_simulated_returns_canned_result() -> None:
    ex = SimulatedExecutor(provider="claude", delay_seconds=0)
    ch = OutputChannel()

    res = await ex.execute(_task(), output=ch)
    chunks = await _drain(ch)

    assert await ex.is_available()
    r = res.unwrap()
    assert r.success
    assert r.files_modified == ["src/components/Example.tsx", "src/utils/helpers.ts"]
    assert chunks


@pytest.mark.asyncio
async def test_file_op_creates_folder(tmp_path: Path) -> None:
    res = await FileOpExecutor(provider="gemini", root=tmp_path).execute(_task(title="Create folder named reports"))

    assert res.unwrap().success
    assert (tmp_path / "reports").is_dir()
    assert res.unwrap().files_modified == ["reports"]


@pytest.mark.asyncio
async def test_file_op_creates_file_inside_folder(tmp_path: Path) -> None:
    task = _task(title="Create file named notes.md inside folder named docs")
    res = await FileOpExecutor(provider="claude", root=tmp_path).execute(task)

    target = tmp_path / "docs" / "notes.md"
    assert target.is_file()
    assert task.id in target.read_text("utf-8")
    assert "docs/notes.md" in (res.unwrap().files_modified or [])


@pytest.mark.asyncio
async def test_file_op_named_folder_before_keyword(tmp_path: Path) -> None:
    task = _task(title="Create test folder with file named Happy-it-works")
    await FileOpExecutor(provider="claude", root=tmp_path).execute(task)

    assert (tmp_path / "test" / "Happy-it-works").is_file()


@pytest.mark.asyncio
async def test_file_op_never_overwrites(tmp_path: Path) -> None:
    existing = tmp_path / "keep.txt"
    existing.write_text("original", "utf-8")

    res = await FileOpExecutor(provider="claude", root=tmp_path).execute(_task(title="Create file named keep.txt"))

    assert existing.read_text("utf-8") == "original"
    assert res.unwrap().success
    assert "already exists" in res.unwrap().output


@pytest.mark.asyncio
async def test_file_op_unrecognised_task_is_noop(tmp_path: Path) -> None:
    res = await FileOpExecutor(provider="claude", root=tmp_path).execute(_task(title="Refactor the billing module"))

    assert res.unwrap().success
    assert "Task processed" in res.unwrap().output
    assert list(tmp_path.iterdir()) == []


def test_file_op_rejects_escaping_names(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        executors_mod._safe_child(tmp_path, "..")
    with pytest.raises(ValueError):
        executors_mod._safe_child(tmp_path, "../outside")


@pytest.mark.asyncio
async def test_headless_config_without_timeout_keeps_configured_one(tmp_path: Path) -> None:
    script = "import time; time.sleep(5)"
    ex = _headless(tmp_path, timeout_ms=100)

    started = asyncio.get_running_loop().time()
    res = await ex.execute(_task(), AgentConfig(provider="custom", command=PY, args=("-c", script)))
    elapsed = asyncio.get_running_loop().time() - started

    assert AgentConfig(provider="custom").timeout_ms is None
    assert res.unwrap().success is False
    assert "timed out" in (res.unwrap().error or "").lower()
    assert elapsed < 3.0


@pytest.mark.asyncio
async def test_terminal_windows_prompt_keeps_wsl_paths(tmp_path: Path, monkeypatch) -> None:
    launched: list[Path] = []
    monkeypatch.setattr(
        executors_mod,
        "launch_detached_terminal",
        lambda p, **kw: launched.append(Path(p)) or True,
    )
    ex = TerminalExecutor(
        provider="claude",
        repository_path="C:\\Users\\me\\repo",
        tasks_file="C:\\Users\\me\\repo\\tasks\\tasks.json",
        scratch_dir=tmp_path / "scratch",
        platform="win32",
    )

    await ex.execute(_task())

    body = launched[0].read_text("utf-8")
    assert "Tasks File: /mnt/c/Users/me/repo/tasks/tasks.json" in body
    assert "Repository Location: /mnt/c/Users/me/repo" in body
    assert "C:\\mnt" not in body
