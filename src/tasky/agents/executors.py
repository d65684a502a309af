# src/tasky/agents/executors.py

from __future__ import annotations

import asyncio
import logging
import re
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from ..core.errors import ExecutionFailed, ExecutionTimeout, OrchestratorError
from ..core.events import OutputChannel
from ..core.ports import ProviderId
from ..core.result import Failure, Result, Success
from ..tasks.task_models import Task
from .process_launcher import (
    DEFAULT_TIMEOUT_MS,
    TIMEOUT_MARKER,
    is_windows,
    launch_detached_terminal,
    probe_command,
    run_captured,
    wrap_for_platform,
)
from .prompt_builder import build_task_prompt
from .scripts import (
    render_bash_script,
    render_powershell_script,
    to_wsl_path,
    unique_script_path,
    write_script,
)

logger = logging.getLogger(__name__)

CLAUDE = "claude"
GEMINI = "gemini"


class ExecutionMode(StrEnum):
    HEADLESS = "headless"
    TERMINAL = "terminal"
    SIMULATED = "simulated"
    FILE_OP = "file_op"

    @classmethod
    def from_raw(cls, raw: str | None) -> ExecutionMode:
        if not raw:
            return cls.TERMINAL
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.TERMINAL


@dataclass(slots=True, frozen=True)
class AgentConfig:
    """Per-invocation overrides. Extra args are appended after the provider's own flags."""

    provider: ProviderId
    command: str | None = None
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    # None keeps the executor's configured timeout.
    timeout_ms: int | None = None


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    success: bool
    output: str
    error: str | None = None
    duration_ms: int = 0
    exit_code: int | None = None
    files_modified: list[str] | None = None
    # True when the agent was only started (e.g. in a terminal) and its outcome is unknown.
    launched: bool = False


@dataclass(slots=True, frozen=True)
class ProviderProfile:
    provider: ProviderId
    display_name: str
    default_command: str
    auto_accept_args: tuple[str, ...]
    files_modified_re: re.Pattern[str]
    stderr_as_output: tuple[str, ...] = ()


PROFILES: dict[ProviderId, ProviderProfile] = {
    CLAUDE: ProviderProfile(
        provider=CLAUDE,
        display_name="Claude",
        default_command="claude",
        auto_accept_args=("--dangerously-skip-permissions",),
        files_modified_re=re.compile(r"Files modified:\s*(.+)"),
    ),
    GEMINI: ProviderProfile(
        provider=GEMINI,
        display_name="Gemini",
        default_command="gemini",
        auto_accept_args=("--yolo",),
        files_modified_re=re.compile(r"Modified:\s*(.+)"),
        # Gemini prints its usage banner on stderr even on success.
        stderr_as_output=("Options:",),
    ),
}


def get_profile(provider: ProviderId) -> ProviderProfile:
    prof = PROFILES.get(provider)
    if prof is not None:
        return prof
    return ProviderProfile(
        provider=provider,
        display_name=provider.capitalize(),
        default_command=provider,
        auto_accept_args=(),
        files_modified_re=re.compile(r"Files modified:\s*(.+)"),
    )


def parse_files_modified(output: str, pattern: re.Pattern[str]) -> list[str] | None:
    m = pattern.search(output or "")
    if not m:
        return None
    files = [f.strip() for f in m.group(1).split(",") if f.strip()]
    return files or None


def resolve_cwd(task: Task, repository_path: str | Path) -> Path:
    """execution_path if set (relative paths resolve against the repository), else the repository."""
    repo = Path(repository_path)
    if not task.execution_path:
        return repo
    p = Path(task.execution_path).expanduser()
    return p if p.is_absolute() else repo / p


def _absolute(path: str | Path) -> str | Path:
    return path.resolve() if isinstance(path, Path) else path


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _send(output: OutputChannel | None, chunk: str, stream: str = "stdout") -> None:
    if output is not None:
        output.send(chunk, stream)


# ---- headless ----


@dataclass(slots=True)
class HeadlessExecutor:
    """Runs the agent CLI as a child process, prompt on stdin, output captured."""

    provider: ProviderId
    repository_path: Path
    tasks_file: Path
    command: str | None = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    probe_timeout_ms: int = 5_000
    platform: str = sys.platform

    def get_provider(self) -> ProviderId:
        return self.provider

    def _command(self, config: AgentConfig | None) -> str:
        if config is not None and config.command:
            return config.command
        return self.command or get_profile(self.provider).default_command

    async def is_available(self) -> bool:
        return await probe_command(self._command(None), timeout_ms=self.probe_timeout_ms, platform=self.platform)

    async def execute(
        self,
        task: Task,
        config: AgentConfig | None = None,
        *,
        output: OutputChannel | None = None,
    ) -> Result[ExecutionResult, OrchestratorError]:
        started = time.monotonic()
        profile = get_profile(self.provider)
        command = self._command(config)
        args = [*profile.auto_accept_args, *(config.args if config else ())]
        env = dict(config.env) if config else {}
        timeout_ms = self.timeout_ms
        if config is not None and config.timeout_ms is not None:
            timeout_ms = config.timeout_ms

        prompt = build_task_prompt(task, repository_path=self.repository_path, tasks_file=self.tasks_file)
        cmd, argv = wrap_for_platform(command, args, self.platform)

        logger.info(
            "Headless run provider=%s task_id=%s cmd=%s timeout_ms=%s",
            self.provider,
            task.id,
            cmd,
            timeout_ms,
        )

        outcome = await run_captured(
            cmd,
            argv,
            env=env,
            timeout_ms=timeout_ms,
            stdin=prompt,
            cwd=resolve_cwd(task, self.repository_path),
            on_chunk=(lambda stream, text: _send(output, text, stream)) if output is not None else None,
            stderr_as_output=profile.stderr_as_output,
        )

        if not outcome.started:
            return Failure(ExecutionFailed(outcome.stderr, exit_code=-1))

        if outcome.timed_out:
            details = outcome.stderr.replace(TIMEOUT_MARKER, "").strip()
            error = str(ExecutionTimeout(timeout_ms)) + (f"\n{details}" if details else "")
            return Success(
                ExecutionResult(
                    success=False,
                    output=outcome.stdout,
                    error=error,
                    duration_ms=_elapsed_ms(started),
                    exit_code=outcome.exit_code,
                )
            )

        success = outcome.exit_code == 0
        return Success(
            ExecutionResult(
                success=success,
                output=outcome.stdout,
                error=None if success else (outcome.stderr or f"Process exited with code {outcome.exit_code}"),
                duration_ms=_elapsed_ms(started),
                exit_code=outcome.exit_code,
                files_modified=parse_files_modified(outcome.stdout, profile.files_modified_re),
            )
        )


# ---- terminal ----


@dataclass(slots=True)
class TerminalExecutor:
    """
    Opens the agent in a new terminal window and returns as soon as it is launched.

    The result carries launched=True: whether the agent actually finished is only
    known once it rewrites the task status in the tasks file.
    """

    provider: ProviderId
    repository_path: Path
    tasks_file: Path
    scratch_dir: Path
    command: str | None = None
    probe_timeout_ms: int = 5_000
    platform: str = sys.platform

    def get_provider(self) -> ProviderId:
        return self.provider

    def _command(self, config: AgentConfig | None) -> str:
        if config is not None and config.command:
            return config.command
        return self.command or get_profile(self.provider).default_command

    async def is_available(self) -> bool:
        return await probe_command(self._command(None), timeout_ms=self.probe_timeout_ms, platform=self.platform)

    def _render(self, task: Task, config: AgentConfig | None) -> tuple[Path, str]:
        profile = get_profile(self.provider)
        command = self._command(config)
        args = [*profile.auto_accept_args, *(config.args if config else ())]
        cwd = resolve_cwd(task, self.repository_path)

        if is_windows(self.platform):
            prompt = build_task_prompt(
                task,
                repository_path=to_wsl_path(_absolute(self.repository_path)),
                tasks_file=to_wsl_path(_absolute(self.tasks_file)),
            )
            path = unique_script_path(self.scratch_dir, self.provider, task.id, ".ps1")
            body = render_powershell_script(
                prompt=prompt,
                task=task,
                display_name=profile.display_name,
                command=command,
                args=args,
                cwd=cwd,
            )
            return path, body

        prompt = build_task_prompt(task, repository_path=self.repository_path, tasks_file=self.tasks_file)
        path = unique_script_path(self.scratch_dir, self.provider, task.id, ".sh")
        body = render_bash_script(
            prompt=prompt,
            task=task,
            display_name=profile.display_name,
            command=command,
            args=args,
            cwd=cwd,
        )
        return path, body

    async def execute(
        self,
        task: Task,
        config: AgentConfig | None = None,
        *,
        output: OutputChannel | None = None,
    ) -> Result[ExecutionResult, OrchestratorError]:
        started = time.monotonic()
        profile = get_profile(self.provider)

        try:
            path, body = self._render(task, config)
            write_script(path, body, executable=not is_windows(self.platform))
        except OSError as e:
            logger.exception("Failed to write launcher script task_id=%s", task.id)
            return Failure(ExecutionFailed(f"Failed to write launcher script: {e}"))

        title = f"{profile.display_name}: {task.title}"[:80]
        ok = await asyncio.to_thread(
            launch_detached_terminal,
            path,
            title=title,
            cwd=resolve_cwd(task, self.repository_path),
            platform=self.platform,
        )
        if not ok:
            return Failure(ExecutionFailed(f"No terminal emulator could be opened for {profile.display_name}"))

        _send(output, f"Launched {profile.display_name} in a new terminal ({path})\n")
        return Success(
            ExecutionResult(
                success=True,
                output=f"{profile.display_name} launched in a new terminal for task: {task.title}",
                duration_ms=_elapsed_ms(started),
                exit_code=0,
                launched=True,
            )
        )


# ---- simulated ----

_CANNED: dict[ProviderId, tuple[str, list[str]]] = {
    CLAUDE: (
        "Analyzed the task requirements and implemented the requested changes.\n"
        "- Updated the affected modules\n"
        "- Added tests for the new behaviour\n"
        "Files modified: src/components/Example.tsx, src/utils/helpers.ts",
        ["src/components/Example.tsx", "src/utils/helpers.ts"],
    ),
    GEMINI: (
        "Task analysis complete. Implementation finished.\n"
        "- Generated the required code changes\n"
        "- Applied formatting\n"
        "Modified: src/api/endpoints.ts, src/types/index.ts",
        ["src/api/endpoints.ts", "src/types/index.ts"],
    ),
}


@dataclass(slots=True)
class SimulatedExecutor:
    """Always available; waits a fixed delay and returns canned output. Useful for demos and tests."""

    provider: ProviderId
    delay_seconds: float = 2.0

    def get_provider(self) -> ProviderId:
        return self.provider

    async def is_available(self) -> bool:
        return True

    async def execute(
        self,
        task: Task,
        config: AgentConfig | None = None,
        *,
        output: OutputChannel | None = None,
    ) -> Result[ExecutionResult, OrchestratorError]:
        started = time.monotonic()
        text, files = _CANNED.get(
            self.provider,
            (f"Simulated execution finished for: {task.title}", []),
        )
        _send(output, f"[simulated {self.provider}] {task.title}\n")
        await asyncio.sleep(self.delay_seconds)
        _send(output, text + "\n")

        return Success(
            ExecutionResult(
                success=True,
                output=text,
                duration_ms=_elapsed_ms(started),
                exit_code=0,
                files_modified=list(files) or None,
            )
        )


# ---- file operations ----

_NAME = r"[\"']?([A-Za-z0-9][\w.-]*)[\"']?"
_FILE_NAMED_RE = re.compile(rf"\bfile\s+(?:named|called)\s+{_NAME}", re.IGNORECASE)
_FILE_WITH_EXT_RE = re.compile(r"\bcreate\b.*?\bfile\b.*?\b([A-Za-z0-9][\w-]*\.[A-Za-z0-9]+)\b", re.IGNORECASE)
_FOLDER_NAMED_RE = re.compile(rf"\b(?:folder|directory)\s+(?:named|called)\s+{_NAME}", re.IGNORECASE)
_IN_FOLDER_RE = re.compile(
    rf"\b(?:inside|in)\s+(?:the\s+|a\s+)?(?:folder|directory)\s+(?:named|called)?\s*{_NAME}",
    re.IGNORECASE,
)
_NAME_FOLDER_RE = re.compile(
    r"\bcreate\s+(?:a\s+|an\s+|the\s+)?(?!new\b)([A-Za-z0-9][\w-]*)\s+(?:folder|directory)\b",
    re.IGNORECASE,
)


def _first_match(texts: list[str], *patterns: re.Pattern[str]) -> str | None:
    for pattern in patterns:
        for text in texts:
            m = pattern.search(text)
            if m:
                return m.group(1).rstrip(".")
    return None


def _safe_child(root: Path, name: str) -> Path:
    if name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Refusing unsafe name: {name!r}")
    root_resolved = root.resolve()
    target = (root_resolved / name).resolve()
    if root_resolved not in target.parents:
        raise ValueError(f"Refusing path outside {root_resolved}: {name!r}")
    return target


@dataclass(slots=True)
class FileOpExecutor:
    """
    Deterministic fallback that understands simple "create a folder/file named X" tasks.

    Only ever creates things under `root`; never deletes and never overwrites.
    """

    provider: ProviderId
    root: Path

    def get_provider(self) -> ProviderId:
        return self.provider

    async def is_available(self) -> bool:
        return True

    def _plan(self, task: Task) -> tuple[str | None, str | None]:
        texts = [task.title, task.description or ""]
        file_name = _first_match(texts, _FILE_NAMED_RE, _FILE_WITH_EXT_RE)
        if file_name:
            folder = _first_match(texts, _IN_FOLDER_RE, _NAME_FOLDER_RE)
            return folder, file_name
        folder = _first_match(texts, _FOLDER_NAMED_RE, _NAME_FOLDER_RE)
        return folder, None

    def _apply(self, task: Task) -> tuple[str, list[str]]:
        folder_name, file_name = self._plan(task)
        if folder_name is None and file_name is None:
            return f"Task processed: {task.title}\nNo file operation recognised; nothing was changed.", []

        root = Path(self.root)
        base = root
        touched: list[str] = []
        lines: list[str] = []

        if folder_name:
            base = _safe_child(root, folder_name)
            if base.exists() and not base.is_dir():
                raise FileExistsError(f"{base} exists and is not a directory")
            created = not base.exists()
            base.mkdir(parents=True, exist_ok=True)
            lines.append(f"{'Created' if created else 'Found existing'} folder: {base}")
            if created:
                touched.append(folder_name)

        if file_name:
            target = _safe_child(base, file_name)
            rel = target.relative_to(root.resolve()).as_posix()
            try:
                with target.open("x", encoding="utf-8") as f:
                    f.write(
                        f"# {file_name}\n\n"
                        f"Created by tasky for task: {task.title}\n"
                        f"Task ID: {task.id}\n"
                        f"Created at: {time.strftime('%Y-%m-%d %H:%M:%S')}\n"
                    )
                lines.append(f"Created file: {target}")
                touched.append(rel)
            except FileExistsError:
                lines.append(f"File already exists, left unchanged: {target}")

        return "\n".join(lines), touched

    async def execute(
        self,
        task: Task,
        config: AgentConfig | None = None,
        *,
        output: OutputChannel | None = None,
    ) -> Result[ExecutionResult, OrchestratorError]:
        started = time.monotonic()
        try:
            text, touched = await asyncio.to_thread(self._apply, task)
        except (OSError, ValueError) as e:
            logger.warning("File operation failed task_id=%s: %s", task.id, e)
            return Success(
                ExecutionResult(
                    success=False,
                    output="",
                    error=f"File operation failed: {e}",
                    duration_ms=_elapsed_ms(started),
                )
            )

        _send(output, text + "\n")
        return Success(
            ExecutionResult(
                success=True,
                output=text,
                duration_ms=_elapsed_ms(started),
                exit_code=0,
                files_modified=touched or None,
            )
        )


Executor = HeadlessExecutor | TerminalExecutor | SimulatedExecutor | FileOpExecutor
