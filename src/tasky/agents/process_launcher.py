# src/tasky/agents/process_launcher.py

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 300_000
TIMEOUT_MARKER = "\nProcess timed out"

ChunkCallback = Callable[[str, str], None]
# (stream, text) with stream in {"stdout", "stderr"}

_READ_SIZE = 4096
_REAP_TIMEOUT_S = 5.0


@dataclass(slots=True)
class ProcessOutcome:
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False
    started: bool = True
    duration_ms: int = 0


def is_windows(platform: str | None = None) -> bool:
    return (platform or sys.platform).startswith("win")


def wrap_for_platform(
    command: str, args: Sequence[str], platform: str | None = None
) -> tuple[str, list[str]]:
    """Agent CLIs live inside WSL on Windows hosts."""
    if is_windows(platform):
        return "wsl", ["--", command, *args]
    return command, list(args)


def kill_process_tree(pid: int) -> None:
    """Force-kill a process and everything it spawned. Never raises."""
    if is_windows():
        try:
            subprocess.run(
                ["taskkill", "/PID", str(pid), "/T", "/F"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError:
            logger.exception("taskkill failed pid=%s", pid)
        return

    # Children are started in their own session, so pgid == pid.
    try:
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    except PermissionError:
        with contextlib.suppress(OSError):
            os.kill(pid, signal.SIGKILL)
    except OSError:
        logger.debug("killpg failed pid=%s", pid, exc_info=True)


def _spawn_kwargs() -> dict:
    if is_windows():
        return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}
    return {"start_new_session": True}


async def run_captured(
    command: str,
    args: Sequence[str] = (),
    *,
    env: Mapping[str, str] | None = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    stdin: str | None = None,
    cwd: str | Path | None = None,
    on_chunk: ChunkCallback | None = None,
    stderr_as_output: Sequence[str] = (),
) -> ProcessOutcome:
    """
    Run a child process to completion and capture both streams.

    - stdout/stderr are read concurrently and each decoded chunk is handed to `on_chunk`
    - stderr chunks containing any of `stderr_as_output` are treated as stdout
    - on timeout the whole process group is killed and TIMEOUT_MARKER is appended to stderr
    - a process that cannot be started yields exit_code=-1 (started=False) instead of raising
    """
    started_at = time.monotonic()
    full_env = dict(os.environ)
    if env:
        full_env.update(env)

    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env,
            cwd=str(cwd) if cwd is not None else None,
            **_spawn_kwargs(),
        )
    except OSError as e:
        logger.warning("Failed to start %s: %s", command, e)
        return ProcessOutcome(
            stdout="",
            stderr=f"Failed to start {command}: {e}",
            exit_code=-1,
            started=False,
            duration_ms=int((time.monotonic() - started_at) * 1000),
        )

    logger.debug("Started %s pid=%s timeout_ms=%s", command, proc.pid, timeout_ms)

    out_parts: list[str] = []
    err_parts: list[str] = []

    def _emit(stream: str, text: str) -> None:
        if on_chunk is None:
            return
        try:
            on_chunk(stream, text)
        except Exception:
            logger.exception("Output callback failed stream=%s", stream)

    async def _pump(reader: asyncio.StreamReader | None, stream: str) -> None:
        if reader is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await reader.read(_READ_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                if stream == "stderr" and any(m in text for m in stderr_as_output):
                    out_parts.append(text)
                    _emit("stdout", text)
                elif stream == "stderr":
                    err_parts.append(text)
                    _emit("stderr", text)
                else:
                    out_parts.append(text)
                    _emit("stdout", text)
            if not data:
                return

    async def _feed() -> None:
        if proc.stdin is None:
            return
        try:
            if stdin:
                proc.stdin.write(stdin.encode("utf-8"))
                await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Child exited or closed stdin early; its exit code tells the story.
            logger.debug("stdin closed early pid=%s", proc.pid)
        finally:
            with contextlib.suppress(Exception):
                proc.stdin.close()

    pumps = [
        asyncio.create_task(_pump(proc.stdout, "stdout")),
        asyncio.create_task(_pump(proc.stderr, "stderr")),
    ]

    timed_out = False
    try:
        await asyncio.wait_for(
            asyncio.gather(_feed(), proc.wait(), *pumps),
            timeout=max(0.001, timeout_ms / 1000.0),
        )
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning("Process timed out pid=%s after %s ms", proc.pid, timeout_ms)
        kill_process_tree(proc.pid)
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=_REAP_TIMEOUT_S)
    except asyncio.CancelledError:
        kill_process_tree(proc.pid)
        raise
    finally:
        for p in pumps:
            if not p.done():
                p.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)

    stderr = "".join(err_parts)
    if timed_out:
        stderr += TIMEOUT_MARKER

    exit_code = proc.returncode if proc.returncode is not None else -1
    duration_ms = int((time.monotonic() - started_at) * 1000)
    logger.debug("Finished %s pid=%s exit=%s duration_ms=%s", command, proc.pid, exit_code, duration_ms)

    return ProcessOutcome(
        stdout="".join(out_parts),
        stderr=stderr,
        exit_code=exit_code,
        timed_out=timed_out,
        duration_ms=duration_ms,
    )


async def probe_command(command: str, *, timeout_ms: int = 5_000, platform: str | None = None) -> bool:
    """True if `<command> --version` exits 0 in time. Never raises."""
    cmd, args = wrap_for_platform(command, ["--version"], platform)
    try:
        outcome = await run_captured(cmd, args, timeout_ms=timeout_ms)
    except Exception:
        logger.exception("Availability probe failed command=%s", command)
        return False
    return outcome.exit_code == 0 and not outcome.timed_out


# ---- detached terminals ----


def terminal_candidates(
    script_path: str | Path,
    *,
    title: str,
    platform: str | None = None,
    env: Mapping[str, str] | None = None,
) -> list[list[str]]:
    """Argument vectors to try, in order, to open `script_path` in a new terminal."""
    plat = platform or sys.platform
    script = str(script_path)
    environ = os.environ if env is None else env

    if is_windows(plat):
        ps = ["powershell", "-ExecutionPolicy", "Bypass", "-File", script]
        return [
            ["wt", "new-tab", "--title", title, *ps],
            ["cmd", "/c", "start", "powershell", *ps[1:]],
        ]

    if plat == "darwin":
        return [["open", "-a", "Terminal", script]]

    out: list[list[str]] = []
    preferred = (environ.get("TERMINAL") or "").strip()
    if preferred:
        out.append([preferred, "-e", "bash", script])
    out += [
        ["gnome-terminal", "--title", title, "--", "bash", script],
        ["konsole", "-p", f"tabtitle={title}", "-e", "bash", script],
        ["xterm", "-T", title, "-e", "bash", script],
        ["x-terminal-emulator", "-e", "bash", script],
    ]
    return out


def launch_detached_terminal(
    script_path: str | Path,
    *,
    title: str,
    cwd: str | Path | None = None,
    platform: str | None = None,
) -> bool:
    """
    Open the script in a new terminal window and return immediately.

    Tries each candidate emulator in turn. Returns False when none could be started.
    Never raises.
    """
    plat = platform or sys.platform
    for argv in terminal_candidates(script_path, title=title, platform=plat):
        if shutil.which(argv[0]) is None:
            logger.debug("Terminal not found: %s", argv[0])
            continue

        kwargs: dict = {}
        if is_windows(plat):
            kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
                subprocess, "CREATE_NEW_PROCESS_GROUP", 0
            )
        else:
            kwargs["start_new_session"] = True

        try:
            subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **kwargs,
            )
        except OSError:
            logger.exception("Failed to launch terminal %s", argv[0])
            continue

        logger.info("Launched terminal %s script=%s", argv[0], script_path)
        return True

    logger.warning("No terminal emulator could be started for %s", script_path)
    return False
