# src/tasky/cli/runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..core.engine import run_engine_loop
from ..core.state import AppState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EngineRunner:
    """
    Event loop living in a background thread.

    The console REPL is blocking (input()), the engine is async: commands hand
    coroutines over with submit() and wait for the result.
    """

    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event
    _auto_task: asyncio.Task | None = field(default=None, repr=False)

    def submit(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return fut.result(timeout=timeout)

    @property
    def auto_dispatch(self) -> bool:
        return self._auto_task is not None and not self._auto_task.done()

    def start_auto_dispatch(self, state: AppState) -> bool:
        if self.auto_dispatch:
            return False

        async def _start() -> asyncio.Task:
            return asyncio.create_task(
                run_engine_loop(state.engine, interval_seconds=state.settings.loop_interval_seconds)
            )

        self._auto_task = self.submit(_start(), timeout=5.0)
        logger.info("Auto-dispatch started (interval=%ss)", state.settings.loop_interval_seconds)
        return True

    def stop_auto_dispatch(self) -> bool:
        task = self._auto_task
        self._auto_task = None
        if task is None or task.done():
            return False

        async def _stop() -> None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self.submit(_stop(), timeout=10.0)
        logger.info("Auto-dispatch stopped.")
        return True

    def stop(self) -> None:
        with contextlib.suppress(Exception):
            self.stop_auto_dispatch()
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal engine runner stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_engine_in_background(state: AppState) -> EngineRunner | None:
    """Start the engine event loop in a daemon thread and attach it to state.runner."""
    ready = threading.Event()
    holder: dict[str, object] = {}

    async def _idle(stop_event: asyncio.Event) -> None:
        await stop_event.wait()

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_idle(stop_event))
        finally:
            with contextlib.suppress(Exception):
                pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
                for t in pending:
                    t.cancel()
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="tasky-engine", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Engine thread did not initialize properly.")
        return None

    logger.info("Engine background thread started.")
    state.runner = EngineRunner(thread=t, loop=loop, stop_event=stop_event)
    return state.runner


def run_async(state: AppState, coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine on the background loop if there is one, else in a fresh loop."""
    if state.runner is not None:
        return state.runner.submit(coro)
    return asyncio.run(coro)
