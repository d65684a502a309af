# src/tasky/core/events.py

from __future__ import annotations

"""
In-process event plumbing.

- EventBus: topic -> handlers publish/subscribe used by the UI/console layer.
- OutputChannel: per-execution stream of output chunks (executor -> engine).

Neither one ever blocks the producer: handlers run inline but their errors are
logged and swallowed, and the channel drops its oldest chunk when full.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from ..tasks.task_models import Task, TaskStatus

logger = logging.getLogger(__name__)

TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
TASK_COMPLETED = "task:completed"
TASK_FAILED = "task:failed"
TASK_OUTPUT = "task:output"
AGENT_SELECTED = "agent:selected"

EventHandler = Callable[[Any], None]


@dataclass(slots=True, frozen=True)
class TaskCreatedEvent:
    task: Task


@dataclass(slots=True, frozen=True)
class TaskUpdatedEvent:
    task: Task
    previous_status: TaskStatus


@dataclass(slots=True, frozen=True)
class TaskCompletedEvent:
    task: Task
    result: str
    duration_ms: int


@dataclass(slots=True, frozen=True)
class TaskFailedEvent:
    task: Task
    error: str


@dataclass(slots=True, frozen=True)
class TaskOutputEvent:
    task_id: str
    chunk: str
    stream: str  # "stdout" | "stderr"


@dataclass(slots=True, frozen=True)
class AgentSelectedEvent:
    task_id: str
    provider: str


class EventBus:
    """Local publish/subscribe. No wire format, no persistence."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: EventHandler) -> Callable[[], None]:
        """Register handler for topic. Returns an idempotent unsubscribe callable."""
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(topic, ()))

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Event handler failed topic=%s handler=%r", topic, handler)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._handlers.get(topic, ()))


_CLOSED = object()


class OutputChannel:
    """
    Bounded, non-blocking stream of (stream_name, chunk) pairs.

    The producer calls `send()` from the event loop; it never awaits.
    The consumer iterates with `async for` until `close()` is called.
    """

    def __init__(self, maxsize: int = 1024) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max(2, int(maxsize)))
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, chunk: str, stream: str = "stdout") -> None:
        if self._closed or not chunk:
            return
        self._put((stream, chunk))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def _put(self, item: Any) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    old = self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    continue
                if old is _CLOSED:
                    # Never lose the end marker; drop the new item instead.
                    self._queue.put_nowait(old)
                    return
                self.dropped += 1

    async def __aiter__(self) -> AsyncIterator[tuple[str, str]]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
