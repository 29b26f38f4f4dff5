# src/collab_tracker/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..core.identity import Identity
from ..projects.project_store import ProjectStore
from ..projects.registry import ProjectRegistry
from ..tasks.image_analysis import ImageTaskIngestion
from ..tasks.lifecycle import TaskLifecycle
from ..tasks.refinements import RefinementThread
from ..tasks.task_store import TaskStore
from .clock import Clock


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any
    clock: Clock

    project_store: ProjectStore
    task_store: TaskStore

    projects: ProjectRegistry
    tasks: TaskLifecycle
    refinements: RefinementThread
    images: ImageTaskIngestion

    # Console session: who is "logged in" at the local prompt.
    identity: Identity | None = None
    lock: threading.RLock = field(default_factory=threading.RLock)
