# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from collab_tracker.cli.bootstrap import create_initial_state
from collab_tracker.core.identity import Identity
from collab_tracker.core.state import AppState

from .fakes import FakeClock, FakeImageExtractor, FakeMetricsFetcher, FakeNotificationSink


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="collab-tracker-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        projects_db_path=tmp_path / "projects.sqlite3",
        tasks_db_path=tmp_path / "tasks.sqlite3",
        # Outbound services stay unconfigured; tests inject fakes.
        app_base_url="https://tracker.test",
        plunk_api_key=None,
        invitation_ttl_days=7,
        github_token=None,
        openrouter_api_key=None,
        openrouter_base_url="https://openrouter.test/api/v1",
        vision_model="test/vision",
        http_timeout_seconds=5.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def notifier() -> FakeNotificationSink:
    return FakeNotificationSink()


@pytest.fixture()
def metrics() -> FakeMetricsFetcher:
    return FakeMetricsFetcher()


@pytest.fixture()
def extractor() -> FakeImageExtractor:
    return FakeImageExtractor()


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    clock: FakeClock,
    notifier: FakeNotificationSink,
    metrics: FakeMetricsFetcher,
    extractor: FakeImageExtractor,
) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep real SQLite stores here (ProjectStore/TaskStore) because
    their correctness is part of what we want to test.
    """
    return create_initial_state(
        settings=settings,
        clock=clock,
        notifier=notifier,
        metrics=metrics,
        extractor=extractor,
    )


@pytest.fixture()
def owner() -> Identity:
    return Identity(subject="user-owner", email="Owner@Example.com", name="Olivia Owner")


@pytest.fixture()
def bob() -> Identity:
    return Identity(subject="user-bob", email="bob@example.com", name="Bob")


@pytest.fixture()
def carol() -> Identity:
    return Identity(subject="user-carol", email="carol@example.com")
