# src/tasky/agents/scripts.py

from __future__ import annotations

"""
Launcher scripts for the "open the agent in a visible terminal" mode.

Each script:
- prints a short banner with the task summary
- cds into the working directory
- feeds the full prompt to the agent CLI on stdin
- waits for Enter, then removes itself

Script files get a unique name per execution so concurrent launches never share one.
"""

import os
import re
import secrets
import shlex
from collections.abc import Sequence
from pathlib import Path, PureWindowsPath

from ..tasks.task_models import Task

_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def unique_script_path(scratch_dir: str | Path, provider: str, task_id: str, suffix: str) -> Path:
    safe_id = _SAFE_ID_RE.sub("_", task_id).strip("._") or "task"
    safe_provider = _SAFE_ID_RE.sub("_", provider) or "agent"
    name = f"tasky-{safe_provider}-{safe_id[:48]}-{secrets.token_hex(4)}{suffix}"
    return Path(scratch_dir) / name


def write_script(path: str | Path, content: str, *, executable: bool = True) -> Path:
    """Create the script file exclusively (never overwrites an existing one)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(p, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o700 if executable else 0o600)
    with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)
    return p


def to_wsl_path(path: str | Path) -> str:
    r"""C:\Users\me\repo -> /mnt/c/Users/me/repo. Non-drive paths pass through."""
    raw = str(path)
    win = PureWindowsPath(raw)
    if not win.drive or not win.drive.endswith(":"):
        return raw.replace("\\", "/")
    drive = win.drive[0].lower()
    rest = "/".join(win.parts[1:])
    return f"/mnt/{drive}/{rest}" if rest else f"/mnt/{drive}"


def _summary_lines(task: Task, display_name: str) -> list[str]:
    lines = [
        f"Provider: {display_name}",
        f"Task: {task.title}",
        f"Task ID: {task.id}",
        f"Priority: {task.priority.name}",
    ]
    if task.category:
        lines.append(f"Category: {task.category.value}")
    return lines


def _heredoc_delimiter(prompt: str) -> str:
    while True:
        delim = f"TASKY_PROMPT_{secrets.token_hex(6).upper()}"
        if delim not in prompt:
            return delim


def render_bash_script(
    *,
    prompt: str,
    task: Task,
    display_name: str,
    command: str,
    args: Sequence[str],
    cwd: str | Path,
) -> str:
    delim = _heredoc_delimiter(prompt)
    cmd_line = " ".join(shlex.quote(x) for x in (command, *args))
    banner = "=" * 60

    out = [
        "#!/usr/bin/env bash",
        "",
        f"echo {shlex.quote(banner)}",
        f"echo {shlex.quote(f'{display_name} - automated task execution')}",
        f"echo {shlex.quote(banner)}",
    ]
    out += [f"echo {shlex.quote(line)}" for line in _summary_lines(task, display_name)]
    out += [
        "echo",
        f"cd {shlex.quote(str(cwd))} || exit 1",
        "",
        f"IFS= read -r -d '' PROMPT <<'{delim}' || true",
        prompt,
        delim,
        "",
        f"if command -v {shlex.quote(command)} >/dev/null 2>&1; then",
        f"  printf '%s\\n' \"$PROMPT\" | {cmd_line}",
        "else",
        f"  echo {shlex.quote(f'{command} was not found in PATH. Task prompt follows:')}",
        "  echo",
        "  printf '%s\\n' \"$PROMPT\"",
        "fi",
        "",
        "echo",
        "read -r -p 'Press Enter to close...' _",
        'rm -f -- "$0"',
        "",
    ]
    return "\n".join(out)


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _ps_here_string(text: str) -> str:
    # A line starting with '@ would end a literal here-string early.
    safe = "\n".join((" " + ln) if ln.startswith("'@") else ln for ln in text.splitlines())
    return "@'\n" + safe + "\n'@"


def render_powershell_script(
    *,
    prompt: str,
    task: Task,
    display_name: str,
    command: str,
    args: Sequence[str],
    cwd: str | Path,
) -> str:
    banner = "=" * 60
    wsl_args = " ".join(_ps_quote(a) for a in ("--", command, *args))

    out = [
        f"Write-Host {_ps_quote(banner)} -ForegroundColor Cyan",
        f"Write-Host {_ps_quote(f'{display_name} - automated task execution')} -ForegroundColor Cyan",
        f"Write-Host {_ps_quote(banner)} -ForegroundColor Cyan",
    ]
    out += [f"Write-Host {_ps_quote(line)}" for line in _summary_lines(task, display_name)]
    out += [
        "Write-Host ''",
        f"Set-Location -LiteralPath {_ps_quote(str(cwd))}",
        "",
        f"$prompt = {_ps_here_string(prompt)}",
        "",
        "if (Get-Command wsl -ErrorAction SilentlyContinue) {",
        f"    $prompt | wsl {wsl_args}",
        "} else {",
        f"    Write-Host {_ps_quote('wsl was not found. Task prompt follows:')} -ForegroundColor Yellow",
        "    Write-Host $prompt",
        "}",
        "",
        "Write-Host ''",
        "Read-Host 'Press Enter to close'",
        "Remove-Item -LiteralPath $PSCommandPath -ErrorAction SilentlyContinue",
        "",
    ]
    return "\n".join(out)
