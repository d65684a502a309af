# src/tasky/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the engine loop in a background
thread, then runs the console REPL in the main thread.
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, switch_execution_mode
from ..config import EXECUTION_MODES, get_settings
from ..logging_setup import setup_logging
from .console import run_console_loop
from .runner import start_engine_in_background

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    runner = getattr(state, "runner", None)
    if runner is not None:
        try:
            runner.stop()
            runner.join(timeout=10.0)
        except Exception:
            logger.exception("Engine runner shutdown failed.")

    try:
        store = getattr(state, "task_store", None)
        if store is not None and hasattr(store, "close"):
            store.close()
    except Exception:
        logger.debug("Task store close failed.", exc_info=True)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="tasky", description="Task execution orchestrator for AI coding agents.")
    p.add_argument("--mode", choices=EXECUTION_MODES, help="execution mode (overrides TASKY_EXECUTION_MODE)")
    p.add_argument("--auto", action="store_true", help="start auto-dispatch immediately")
    p.add_argument("--no-console", action="store_true", help="run without the interactive console")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    if args.mode:
        switch_execution_mode(state, args.mode)

    runner = start_engine_in_background(state)
    if runner is not None and (args.auto or settings.auto_dispatch or args.no_console):
        runner.start_auto_dispatch(state)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        if args.no_console:
            signal.signal(signal.SIGINT, _handle_signal)
            signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if not args.no_console:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Auto-dispatching approved tasks. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
