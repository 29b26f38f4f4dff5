# src/collab_tracker/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .task_models import (
    RefinementRole,
    RefinementType,
    Task,
    TaskPriority,
    TaskRefinement,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_TASK_COLUMNS = {
    "text",
    "details",
    "priority",
    "status",
    "hrs",
    "ref_link",
    "project_id",
    "tracked_time_ms",
    "started_at",
    "completed_at",
    "analysis_data",
}


def parse_shared_with(raw: str | None) -> list[str]:
    """Legacy `sharedWith` column: JSON array of emails. Malformed -> []."""
    if not raw:
        return []
    try:
        val = json.loads(raw)
    except ValueError:
        logger.warning("Malformed shared_with JSON ignored: %r", raw[:120])
        return []
    if not isinstance(val, list):
        return []
    out: list[str] = []
    for item in val:
        if isinstance(item, str) and item.strip():
            email = item.strip().lower()
            if email not in out:
                out.append(email)
    return out


def parse_selected_by(raw: str | None) -> dict[str, int]:
    """Legacy `selectedBy` column: JSON object email -> epoch ms. Malformed -> {}."""
    if not raw:
        return {}
    try:
        val = json.loads(raw)
    except ValueError:
        logger.warning("Malformed selected_by JSON ignored: %r", raw[:120])
        return {}
    if not isinstance(val, dict):
        return {}
    out: dict[str, int] = {}
    for email, ts in val.items():
        if isinstance(email, str) and email.strip() and isinstance(ts, (int, float)) and not isinstance(ts, bool):
            out[email.strip().lower()] = int(ts)
    return out


class TaskStore:
    """
    SQLite task store.

    Sharing and daily selection live in their own tables instead of JSON
    columns on the task row:
    - task_shares(task_id, email)
    - task_selections(task_id, email, selected_at)

    Older databases with JSON `shared_with` / `selected_by` columns are
    imported into those tables on startup.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    text TEXT NOT NULL,
                    details TEXT NOT NULL DEFAULT '',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status TEXT NOT NULL DEFAULT 'todo',
                    hrs REAL NOT NULL DEFAULT 1,
                    ref_link TEXT,
                    project_id INTEGER,
                    tracked_time_ms INTEGER NOT NULL DEFAULT 0,
                    started_at INTEGER,
                    completed_at INTEGER,
                    analysis_data TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                cols.add(name)
                logger.info("TaskStore migration: added column %s", name)

            add_col("ref_link", "TEXT")
            add_col("project_id", "INTEGER")
            add_col("tracked_time_ms", "INTEGER NOT NULL DEFAULT 0")
            add_col("started_at", "INTEGER")
            add_col("completed_at", "INTEGER")
            add_col("analysis_data", "TEXT")
            # Legacy single-timestamp selection; cleared whenever a selection changes.
            add_col("selected_at", "INTEGER")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_shares (
                    task_id INTEGER NOT NULL,
                    email TEXT NOT NULL,
                    added_at INTEGER NOT NULL,
                    PRIMARY KEY (task_id, email)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_selections (
                    task_id INTEGER NOT NULL,
                    email TEXT NOT NULL,
                    selected_at INTEGER NOT NULL,
                    PRIMARY KEY (task_id, email)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_refinements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    author_id TEXT NOT NULL,
                    author_email TEXT NOT NULL DEFAULT '',
                    author_name TEXT,
                    role TEXT NOT NULL,
                    type TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER,
                    parent_id INTEGER
                )
                """
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_task_shares_email ON task_shares(email)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_task_refinements_task "
                "ON task_refinements(task_id, created_at)"
            )

            if "shared_with" in cols or "selected_by" in cols:
                self._import_legacy_json(cur, cols)

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _import_legacy_json(cur: sqlite3.Cursor, cols: set[str]) -> None:
        """Move JSON-encoded shared_with / selected_by into the relation tables."""
        shared_expr = "shared_with" if "shared_with" in cols else "NULL"
        selected_expr = "selected_by" if "selected_by" in cols else "NULL"
        cur.execute(
            f"""
            SELECT id, updated_at, {shared_expr} AS shared_with, {selected_expr} AS selected_by
            FROM tasks
            WHERE {shared_expr} IS NOT NULL OR {selected_expr} IS NOT NULL
            """
        )
        rows = cur.fetchall()
        for row in rows:
            task_id = int(row["id"])
            for email in parse_shared_with(row["shared_with"]):
                cur.execute(
                    "INSERT OR IGNORE INTO task_shares(task_id, email, added_at) VALUES (?, ?, ?)",
                    (task_id, email, int(row["updated_at"] or 0)),
                )
            for email, ts in parse_selected_by(row["selected_by"]).items():
                cur.execute(
                    "INSERT OR REPLACE INTO task_selections(task_id, email, selected_at) VALUES (?, ?, ?)",
                    (task_id, email, ts),
                )
        if "shared_with" in cols:
            cur.execute("UPDATE tasks SET shared_with = NULL")
        if "selected_by" in cols:
            cur.execute("UPDATE tasks SET selected_by = NULL")
        if rows:
            logger.info("TaskStore migration: imported legacy sharing/selection for %s tasks", len(rows))

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            text=str(row["text"] or ""),
            details=str(row["details"] or ""),
            priority=TaskPriority.from_db(row["priority"]),
            status=TaskStatus.from_db(row["status"]),
            hrs=float(row["hrs"]) if row["hrs"] is not None else 1.0,
            created_at=int(row["created_at"] or 0),
            updated_at=int(row["updated_at"] or 0),
            ref_link=row["ref_link"],
            project_id=int(row["project_id"]) if row["project_id"] is not None else None,
            tracked_time_ms=int(row["tracked_time_ms"] or 0),
            started_at=int(row["started_at"]) if row["started_at"] is not None else None,
            completed_at=int(row["completed_at"]) if row["completed_at"] is not None else None,
            analysis_data=row["analysis_data"],
        )

    @staticmethod
    def _row_to_refinement(row: sqlite3.Row) -> TaskRefinement:
        return TaskRefinement(
            id=int(row["id"]),
            task_id=int(row["task_id"]),
            author_id=str(row["author_id"]),
            author_email=str(row["author_email"] or ""),
            role=RefinementRole(row["role"]),
            type=RefinementType(row["type"]),
            content=str(row["content"] or ""),
            created_at=int(row["created_at"] or 0),
            author_name=row["author_name"],
            updated_at=int(row["updated_at"]) if row["updated_at"] is not None else None,
            parent_id=int(row["parent_id"]) if row["parent_id"] is not None else None,
        )

    @staticmethod
    def _attach_relations(conn: sqlite3.Connection, tasks: list[Task]) -> list[Task]:
        if not tasks:
            return tasks
        by_id = {t.id: t for t in tasks}
        ph = ",".join("?" for _ in by_id)
        ids = list(by_id)

        for row in conn.execute(
            f"SELECT task_id, email FROM task_shares WHERE task_id IN ({ph}) ORDER BY added_at ASC, email ASC",
            ids,
        ):
            by_id[int(row["task_id"])].shared_with.append(str(row["email"]))

        for row in conn.execute(
            f"SELECT task_id, email, selected_at FROM task_selections WHERE task_id IN ({ph})",
            ids,
        ):
            by_id[int(row["task_id"])].selected_by[str(row["email"])] = int(row["selected_at"])
        return tasks

    def _query_tasks(self, sql: str, params: Iterable[Any]) -> list[Task]:
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, tuple(params)).fetchall()
            return self._attach_relations(conn, [self._row_to_task(r) for r in rows])
        finally:
            conn.close()

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        *,
        user_id: str,
        text: str,
        details: str = "",
        priority: TaskPriority = TaskPriority.MEDIUM,
        status: TaskStatus = TaskStatus.TODO,
        hrs: float = 1.0,
        ref_link: str | None = None,
        project_id: int | None = None,
        started_at: int | None = None,
        completed_at: int | None = None,
        analysis_data: str | None = None,
        now_ms: int,
    ) -> int:
        if not text or not text.strip():
            raise ValueError("text is required")

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    user_id, text, details, priority, status, hrs,
                    ref_link, project_id, tracked_time_ms, started_at, completed_at,
                    analysis_data, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    text.strip(),
                    details,
                    priority.value,
                    status.value,
                    float(hrs),
                    ref_link,
                    project_id,
                    started_at,
                    completed_at,
                    analysis_data,
                    int(now_ms),
                    int(now_ms),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            logger.debug("Task added id=%s owner=%s status=%s", task_id, user_id, status.value)
            return task_id
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task | None:
        tasks = self._query_tasks("SELECT * FROM tasks WHERE id = ?", (int(task_id),))
        return tasks[0] if tasks else None

    def list_tasks_for_owner(self, user_id: str) -> list[Task]:
        return self._query_tasks(
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at ASC, id ASC",
            (user_id,),
        )

    def list_tasks_shared_with(self, email: str) -> list[Task]:
        if not email:
            return []
        return self._query_tasks(
            """
            SELECT t.*
            FROM tasks t
            JOIN task_shares s ON s.task_id = t.id
            WHERE s.email = ?
            ORDER BY t.created_at ASC, t.id ASC
            """,
            (email,),
        )

    def update_task_fields(self, task_id: int, changes: dict[str, Any], *, now_ms: int) -> None:
        """Write the given columns (None is written as NULL) and bump updated_at."""
        unknown = set(changes) - _TASK_COLUMNS
        if unknown:
            raise ValueError(f"unknown task columns: {sorted(unknown)}")

        fields: list[str] = []
        params: list[Any] = []
        for name, value in changes.items():
            fields.append(f"{name} = ?")
            if isinstance(value, (TaskStatus, TaskPriority)):
                value = value.value
            params.append(value)

        fields.append("updated_at = ?")
        params.append(int(now_ms))
        params.append(int(task_id))

        conn = self._get_conn()
        try:
            conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()
        finally:
            conn.close()

    def delete_task(self, task_id: int) -> None:
        conn = self._get_conn()
        try:
            tid = int(task_id)
            conn.execute("DELETE FROM task_shares WHERE task_id = ?", (tid,))
            conn.execute("DELETE FROM task_selections WHERE task_id = ?", (tid,))
            conn.execute("DELETE FROM task_refinements WHERE task_id = ?", (tid,))
            conn.execute("DELETE FROM tasks WHERE id = ?", (tid,))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---- sharing ----

    def add_shares(self, task_id: int, emails: Iterable[str], *, now_ms: int) -> int:
        """Additive: existing shares are kept. Returns how many rows were new."""
        conn = self._get_conn()
        try:
            added = 0
            for email in emails:
                cur = conn.execute(
                    "INSERT OR IGNORE INTO task_shares(task_id, email, added_at) VALUES (?, ?, ?)",
                    (int(task_id), email, int(now_ms)),
                )
                added += cur.rowcount
            conn.execute("UPDATE tasks SET updated_at = ? WHERE id = ?", (int(now_ms), int(task_id)))
            conn.commit()
            return added
        finally:
            conn.close()

    def clear_shares(self, task_id: int, *, now_ms: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM task_shares WHERE task_id = ?", (int(task_id),))
            conn.execute("UPDATE tasks SET updated_at = ? WHERE id = ?", (int(now_ms), int(task_id)))
            conn.commit()
        finally:
            conn.close()

    # ---- daily selection ----

    def set_selection(self, task_id: int, email: str, *, selected_at: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO task_selections(task_id, email, selected_at) VALUES (?, ?, ?)
                ON CONFLICT(task_id, email) DO UPDATE SET selected_at = excluded.selected_at
                """,
                (int(task_id), email, int(selected_at)),
            )
            conn.execute(
                "UPDATE tasks SET selected_at = NULL, updated_at = ? WHERE id = ?",
                (int(selected_at), int(task_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def remove_selection(self, task_id: int, email: str, *, now_ms: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM task_selections WHERE task_id = ? AND email = ?", (int(task_id), email))
            conn.execute(
                "UPDATE tasks SET selected_at = NULL, updated_at = ? WHERE id = ?",
                (int(now_ms), int(task_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def clear_legacy_selected_at(self, task_id: int | None = None) -> int:
        """Null the legacy selected_at column (one task, or all). Returns rows changed."""
        conn = self._get_conn()
        try:
            if task_id is None:
                cur = conn.execute("UPDATE tasks SET selected_at = NULL WHERE selected_at IS NOT NULL")
            else:
                cur = conn.execute(
                    "UPDATE tasks SET selected_at = NULL WHERE id = ? AND selected_at IS NOT NULL",
                    (int(task_id),),
                )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    # ---- refinements ----

    def add_refinement(
        self,
        *,
        task_id: int,
        author_id: str,
        author_email: str,
        author_name: str | None,
        role: RefinementRole,
        type: RefinementType,
        content: str,
        now_ms: int,
        parent_id: int | None = None,
    ) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO task_refinements(
                    task_id, author_id, author_email, author_name,
                    role, type, content, created_at, parent_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(task_id),
                    author_id,
                    author_email,
                    author_name,
                    role.value,
                    type.value,
                    content,
                    int(now_ms),
                    parent_id,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for task_refinements insert")
            return int(rowid)
        finally:
            conn.close()

    def get_refinement(self, refinement_id: int) -> TaskRefinement | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM task_refinements WHERE id = ?", (int(refinement_id),)).fetchone()
            return self._row_to_refinement(row) if row else None
        finally:
            conn.close()

    def list_refinements(self, task_id: int) -> list[TaskRefinement]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM task_refinements WHERE task_id = ? ORDER BY created_at ASC, id ASC",
                (int(task_id),),
            ).fetchall()
            return [self._row_to_refinement(r) for r in rows]
        finally:
            conn.close()
