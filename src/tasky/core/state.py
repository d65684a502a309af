# src/tasky/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..agents.executors import ExecutionMode
from ..agents.registry import ExecutorRegistry
from ..config import Settings
from ..tasks.task_store import JsonTaskStore
from .engine import Engine
from .events import EventBus
from .ports import ProviderSelector

if TYPE_CHECKING:
    from ..cli.runner import EngineRunner


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Settings

    task_store: JsonTaskStore
    registry: ExecutorRegistry
    events: EventBus
    engine: Engine
    execution_mode: ExecutionMode

    # Background event loop running the engine (None in tests / one-shot runs).
    runner: EngineRunner | None = None
    # Selector for manually started runs (/run); None -> the engine default.
    selector: ProviderSelector | None = None
    lock: threading.RLock = field(default_factory=threading.RLock)
