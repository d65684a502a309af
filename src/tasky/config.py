# src/tasky/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing is read from the environment outside this module.
- Per-invocation agent settings (AgentConfig) are built from Settings, never mutate it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ENV_PREFIX = "TASKY"

EXECUTION_MODES = ("headless", "terminal", "simulated", "file_op")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment always wins over .env.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Paths ----
    data_dir: Path
    repository_path: Path
    tasks_file: Path
    scratch_dir: Path

    # ---- Execution ----
    execution_mode: str
    simulated: bool
    claude_command: str
    gemini_command: str
    provider_preference: List[str]
    execution_timeout_seconds: float
    probe_timeout_seconds: float
    simulated_delay_seconds: float

    # ---- Loop / reconciliation ----
    auto_dispatch: bool
    loop_interval_seconds: float
    completion_poll_seconds: float
    completion_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasky") or "tasky"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasky"))
        repository_path = _env_path(_k("REPOSITORY_PATH"), Path.cwd())
        tasks_file = _env_path(_k("TASKS_FILE"), repository_path / "tasks" / "tasks.json")
        scratch_dir = _env_path(_k("SCRATCH_DIR"), data_dir / "scratch")

        simulated = _env_bool(_k("SIMULATED"), False)
        execution_mode = _env(_k("EXECUTION_MODE"), "terminal").strip().lower()
        if execution_mode not in EXECUTION_MODES:
            execution_mode = "terminal"
        if simulated:
            execution_mode = "simulated"

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            repository_path=repository_path,
            tasks_file=tasks_file,
            scratch_dir=scratch_dir,
            execution_mode=execution_mode,
            simulated=simulated,
            claude_command=_env(_k("CLAUDE_COMMAND"), "claude").strip() or "claude",
            gemini_command=_env(_k("GEMINI_COMMAND"), "gemini").strip() or "gemini",
            provider_preference=_env_list(_k("PROVIDER_PREFERENCE"), ["claude", "gemini"]),
            execution_timeout_seconds=max(1.0, _env_float(_k("EXECUTION_TIMEOUT_SECONDS"), 300.0)),
            probe_timeout_seconds=max(0.5, _env_float(_k("PROBE_TIMEOUT_SECONDS"), 5.0)),
            simulated_delay_seconds=max(0.0, _env_float(_k("SIMULATED_DELAY_SECONDS"), 2.0)),
            auto_dispatch=_env_bool(_k("AUTO_DISPATCH"), False),
            loop_interval_seconds=max(0.5, _env_float(_k("LOOP_INTERVAL_SECONDS"), 15.0)),
            # 0 disables polling: launched terminals are trusted as completed.
            completion_poll_seconds=max(0.0, _env_float(_k("COMPLETION_POLL_SECONDS"), 0.0)),
            completion_timeout_seconds=max(0.0, _env_float(_k("COMPLETION_TIMEOUT_SECONDS"), 0.0)),
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env; use config_local.py only for safe overrides.
try:
    import config_local as _config_local  # type: ignore

    if hasattr(_config_local, "EXECUTION_MODE") and _config_local.EXECUTION_MODE in EXECUTION_MODES:
        object.__setattr__(SETTINGS, "execution_mode", str(_config_local.EXECUTION_MODE))  # type: ignore[misc]
    if hasattr(_config_local, "AUTO_DISPATCH"):
        object.__setattr__(SETTINGS, "auto_dispatch", bool(_config_local.AUTO_DISPATCH))  # type: ignore[misc]
except ImportError:
    pass


def get_settings() -> Settings:
    return SETTINGS
