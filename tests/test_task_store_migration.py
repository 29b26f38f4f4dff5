# tests/test_task_store_migration.py

from __future__ import annotations

import sqlite3
from pathlib import Path

from collab_tracker.tasks.task_models import TaskStatus
from collab_tracker.tasks.task_store import TaskStore, parse_selected_by, parse_shared_with


def _legacy_db(path: Path, rows: list[tuple]) -> None:
    """A tasks table as older releases wrote it: JSON columns, old status names."""
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(
            """
            CREATE TABLE tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                text TEXT NOT NULL,
                details TEXT NOT NULL DEFAULT '',
                priority TEXT NOT NULL DEFAULT 'medium',
                status TEXT NOT NULL DEFAULT 'todo',
                hrs REAL NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                shared_with TEXT,
                selected_by TEXT,
                selected_at INTEGER
            )
            """
        )
        conn.executemany(
            """
            INSERT INTO tasks(user_id, text, status, created_at, updated_at, shared_with, selected_by, selected_at)
            VALUES (?, ?, ?, 1, 1, ?, ?, ?)
            """,
            rows,
        )
        conn.commit()
    finally:
        conn.close()


def test_parse_shared_with_tolerates_garbage() -> None:
    assert parse_shared_with(None) == []
    assert parse_shared_with("not json") == []
    assert parse_shared_with('{"a": 1}') == []
    assert parse_shared_with('["A@x.com", "a@x.com", 3, ""]') == ["a@x.com"]


def test_parse_selected_by_tolerates_garbage() -> None:
    assert parse_selected_by("[") == {}
    assert parse_selected_by('["a@x.com"]') == {}
    assert parse_selected_by('{"B@y.com": 1700000000000, "c@z.com": "later"}') == {"b@y.com": 1700000000000}


def test_legacy_columns_are_imported(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    _legacy_db(
        db,
        [
            ("u1", "shared", "backlog", '["b@y.com"]', '{"b@y.com": 1700000000000}', 5),
            ("u1", "broken", "completed", "{oops", "also broken", None),
            ("u1", "running", "running", None, None, None),
        ],
    )

    store = TaskStore(db)
    shared, broken, running = store.list_tasks_for_owner("u1")

    assert shared.status == TaskStatus.TODO
    assert shared.shared_with == ["b@y.com"]
    assert shared.selected_by == {"b@y.com": 1700000000000}
    assert shared.tracked_time_ms == 0

    assert broken.status == TaskStatus.DONE
    assert broken.shared_with == []
    assert broken.selected_by == {}

    assert running.status == TaskStatus.IN_PROGRESS

    assert [t.id for t in store.list_tasks_shared_with("b@y.com")] == [shared.id]
    assert store.clear_legacy_selected_at() == 1


def test_reopening_store_does_not_duplicate(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    _legacy_db(db, [("u1", "shared", "todo", '["b@y.com"]', None, None)])

    TaskStore(db)
    store = TaskStore(db)

    task = store.list_tasks_for_owner("u1")[0]
    assert task.shared_with == ["b@y.com"]
