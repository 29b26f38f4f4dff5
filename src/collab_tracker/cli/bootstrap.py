# src/collab_tracker/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (stores, email, metrics, vision).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.clock import DAY_MS, Clock, SystemClock
from ..core.ports import ImageTaskExtractor, MetricsFetcher, NotificationSink
from ..core.state import AppState
from ..llm.client import OpenAIImageTaskExtractor
from ..llm.offline import OfflineImageTaskExtractor
from ..notify.email import PlunkEmailSink
from ..projects.metrics import HttpMetricsFetcher
from ..projects.project_store import ProjectStore
from ..projects.registry import ProjectRegistry
from ..tasks.image_analysis import ImageTaskIngestion
from ..tasks.lifecycle import TaskLifecycle
from ..tasks.refinements import RefinementThread
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.projects_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_extractor(settings) -> ImageTaskExtractor:
    api_key = getattr(settings, "openrouter_api_key", None)
    if not api_key:
        logger.info("No vision API key configured; image analysis runs offline.")
        return OfflineImageTaskExtractor()
    return OpenAIImageTaskExtractor.from_settings(settings)


def create_initial_state(
    *,
    settings=None,
    clock: Clock | None = None,
    notifier: NotificationSink | None = None,
    metrics: MetricsFetcher | None = None,
    extractor: ImageTaskExtractor | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the outbound adapters) injectable makes the app easy
    to test. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    clock = clock or SystemClock()
    notifier = notifier or PlunkEmailSink.from_settings(settings)
    metrics = metrics or HttpMetricsFetcher.from_settings(settings)
    extractor = extractor or _build_extractor(settings)

    project_store = ProjectStore(settings.projects_db_path)
    task_store = TaskStore(settings.tasks_db_path)

    ttl_days = int(getattr(settings, "invitation_ttl_days", 7) or 7)
    projects = ProjectRegistry(
        project_store,
        clock=clock,
        notifier=notifier,
        metrics=metrics,
        invitation_ttl_ms=ttl_days * DAY_MS,
    )
    tasks = TaskLifecycle(task_store, clock=clock, projects=projects)

    return AppState(
        settings=settings,
        clock=clock,
        project_store=project_store,
        task_store=task_store,
        projects=projects,
        tasks=tasks,
        refinements=RefinementThread(tasks),
        images=ImageTaskIngestion(tasks, extractor, clock=clock),
    )
