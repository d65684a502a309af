# src/tasky/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Background parts of tasky that print to the console only at WARNING+.
# Subprocess chatter and the auto-dispatch thread would otherwise interleave with input().
QUIET_LOGGERS: tuple[str, ...] = (
    "tasky.agents.process_launcher",
    "tasky.cli.runner",
)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for the interactive prompt.

    tasky records pass, except QUIET_LOGGERS below WARNING. Everything else
    (py.warnings, asyncio, any library) needs ERROR to reach the terminal; the
    log file still gets all of it.
    """

    def __init__(self, quiet: tuple[str, ...] = QUIET_LOGGERS) -> None:
        super().__init__()
        self._quiet = quiet

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == "tasky" or name.startswith("tasky."):
            if name.startswith(self._quiet):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def parse_level(level: int | str, default: int = logging.INFO) -> int:
    """Accept 20 or "info"/"INFO"; unknown names fall back to `default`."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasky",
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
    log_name: str = "tasky.log",
) -> Path:
    """
    Install the console handler (filtered) and the file handler (everything)
    on the root logger, replacing whatever was there. Returns the log file path.

    Call once from the entry point, before the first log line.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / log_name

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(parse_level(console_level))
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(parse_level(file_level, logging.DEBUG))
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    # Subprocess transport debug lines are useless even in the file.
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return log_file
