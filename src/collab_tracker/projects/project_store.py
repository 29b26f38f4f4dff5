# src/collab_tracker/projects/project_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import Any

from .project_models import (
    InvitationStatus,
    Project,
    ProjectCollaborator,
    ProjectInvitation,
    ProjectStatus,
)

logger = logging.getLogger(__name__)

_PROJECT_COLUMNS = {
    "slug",
    "name",
    "description",
    "type",
    "category",
    "status",
    "github_url",
    "github_repo",
    "github_stars",
    "github_forks",
    "npm_downloads",
    "npm_package",
}


class ProjectStore:
    """
    SQLite store for projects, collaborators and invitations.

    Uniqueness is enforced by the schema:
    - one collaborator row per (project_id, user_id)
    - one invitation row per (project_id, email); re-inviting upserts

    Thread-safety:
    - each method opens its own SQLite connection
    - methods that write several rows do it in one transaction
    """

    def __init__(self, db_path: str | Path = "projects.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_projects()
        except sqlite3.Error:
            total = -1
        logger.info("ProjectStore ready db=%s total=%s", self._db_path, total)

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
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    type TEXT NOT NULL DEFAULT 'saas',
                    category TEXT NOT NULL DEFAULT 'commercial',
                    status TEXT NOT NULL DEFAULT 'planning',
                    github_url TEXT,
                    github_repo TEXT,
                    github_stars INTEGER NOT NULL DEFAULT 0,
                    github_forks INTEGER NOT NULL DEFAULT 0,
                    npm_downloads INTEGER NOT NULL DEFAULT 0,
                    npm_package TEXT,
                    user_id TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS project_collaborators (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    email TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'collaborator',
                    added_by TEXT NOT NULL,
                    added_at INTEGER NOT NULL,
                    user_name TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS project_invitations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    email TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'collaborator',
                    token TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    invited_by TEXT NOT NULL,
                    invited_by_name TEXT NOT NULL DEFAULT '',
                    invited_at INTEGER NOT NULL,
                    expires_at INTEGER NOT NULL,
                    responded_at INTEGER,
                    user_id TEXT
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(projects)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE projects ADD COLUMN {name} {decl}")
                logger.info("ProjectStore migration: added column projects.%s", name)

            add_col("github_repo", "TEXT")
            add_col("npm_package", "TEXT")
            add_col("npm_downloads", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_collaborators_project ON project_collaborators(project_id)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_collaborators_user ON project_collaborators(user_id)")
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_collaborators_project_user "
                "ON project_collaborators(project_id, user_id)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_collaborators_project_email "
                "ON project_collaborators(project_id, email)"
            )
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_invitations_project_email "
                "ON project_invitations(project_id, email)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_invitations_project ON project_invitations(project_id)")
            cur.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_invitations_token ON project_invitations(token)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_invitations_email ON project_invitations(email)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=int(row["id"]),
            slug=str(row["slug"] or ""),
            name=str(row["name"] or ""),
            description=str(row["description"] or ""),
            type=str(row["type"] or "saas"),
            category=str(row["category"] or "commercial"),
            status=ProjectStatus.from_db(row["status"]),
            user_id=str(row["user_id"]),
            created_at=int(row["created_at"] or 0),
            updated_at=int(row["updated_at"] or 0),
            github_url=row["github_url"],
            github_repo=row["github_repo"],
            github_stars=int(row["github_stars"] or 0),
            github_forks=int(row["github_forks"] or 0),
            npm_downloads=int(row["npm_downloads"] or 0),
            npm_package=row["npm_package"],
        )

    @staticmethod
    def _row_to_collaborator(row: sqlite3.Row) -> ProjectCollaborator:
        return ProjectCollaborator(
            id=int(row["id"]),
            project_id=int(row["project_id"]),
            user_id=str(row["user_id"]),
            email=str(row["email"] or ""),
            role=str(row["role"] or "collaborator"),
            added_by=str(row["added_by"] or ""),
            added_at=int(row["added_at"] or 0),
            user_name=row["user_name"],
        )

    @staticmethod
    def _row_to_invitation(row: sqlite3.Row) -> ProjectInvitation:
        return ProjectInvitation(
            id=int(row["id"]),
            project_id=int(row["project_id"]),
            email=str(row["email"] or ""),
            role=str(row["role"] or "collaborator"),
            token=str(row["token"]),
            status=InvitationStatus.from_db(row["status"]),
            invited_by=str(row["invited_by"] or ""),
            invited_by_name=str(row["invited_by_name"] or ""),
            invited_at=int(row["invited_at"] or 0),
            expires_at=int(row["expires_at"] or 0),
            responded_at=int(row["responded_at"]) if row["responded_at"] is not None else None,
            user_id=row["user_id"],
        )

    def _fetch_all(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchone()
        finally:
            conn.close()

    # ---- projects ----

    def count_projects(self) -> int:
        row = self._fetch_one("SELECT COUNT(*) AS n FROM projects", ())
        return int(row["n"]) if row else 0

    def insert_project(
        self,
        *,
        slug: str,
        name: str,
        description: str,
        type: str,
        category: str,
        status: ProjectStatus,
        user_id: str,
        now_ms: int,
        github_url: str | None = None,
        github_repo: str | None = None,
        github_stars: int = 0,
        github_forks: int = 0,
        npm_downloads: int = 0,
        npm_package: str | None = None,
    ) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO projects(
                    slug, name, description, type, category, status,
                    github_url, github_repo, github_stars, github_forks,
                    npm_downloads, npm_package, user_id, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    slug,
                    name,
                    description,
                    type,
                    category,
                    status.value,
                    github_url,
                    github_repo,
                    int(github_stars),
                    int(github_forks),
                    int(npm_downloads),
                    npm_package,
                    user_id,
                    int(now_ms),
                    int(now_ms),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for projects insert")
            logger.debug("Project added id=%s slug=%s owner=%s", rowid, slug, user_id)
            return int(rowid)
        finally:
            conn.close()

    def get_project(self, project_id: int) -> Project | None:
        row = self._fetch_one("SELECT * FROM projects WHERE id = ?", (int(project_id),))
        return self._row_to_project(row) if row else None

    def list_projects_for_owner(self, user_id: str) -> list[Project]:
        rows = self._fetch_all("SELECT * FROM projects WHERE user_id = ? ORDER BY created_at ASC, id ASC", (user_id,))
        return [self._row_to_project(r) for r in rows]

    def patch_project(self, project_id: int, changes: dict[str, Any], *, now_ms: int) -> None:
        unknown = set(changes) - _PROJECT_COLUMNS
        if unknown:
            raise ValueError(f"unknown project columns: {sorted(unknown)}")

        fields: list[str] = []
        params: list[Any] = []
        for name, value in changes.items():
            fields.append(f"{name} = ?")
            params.append(value.value if isinstance(value, ProjectStatus) else value)

        fields.append("updated_at = ?")
        params.append(int(now_ms))
        params.append(int(project_id))

        conn = self._get_conn()
        try:
            conn.execute(f"UPDATE projects SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()
        finally:
            conn.close()

    def delete_project(self, project_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM projects WHERE id = ?", (int(project_id),))
            conn.commit()
        finally:
            conn.close()

    # ---- collaborators ----

    def get_collaborator(self, collaborator_id: int) -> ProjectCollaborator | None:
        row = self._fetch_one("SELECT * FROM project_collaborators WHERE id = ?", (int(collaborator_id),))
        return self._row_to_collaborator(row) if row else None

    def find_collaborator(self, project_id: int, user_id: str) -> ProjectCollaborator | None:
        row = self._fetch_one(
            "SELECT * FROM project_collaborators WHERE project_id = ? AND user_id = ?",
            (int(project_id), user_id),
        )
        return self._row_to_collaborator(row) if row else None

    def find_collaborator_by_email(self, project_id: int, email: str) -> ProjectCollaborator | None:
        row = self._fetch_one(
            "SELECT * FROM project_collaborators WHERE project_id = ? AND email = ? ORDER BY id LIMIT 1",
            (int(project_id), email),
        )
        return self._row_to_collaborator(row) if row else None

    def list_collaborators(self, project_id: int) -> list[ProjectCollaborator]:
        rows = self._fetch_all(
            "SELECT * FROM project_collaborators WHERE project_id = ? ORDER BY added_at ASC, id ASC",
            (int(project_id),),
        )
        return [self._row_to_collaborator(r) for r in rows]

    def list_memberships(self, user_id: str) -> list[ProjectCollaborator]:
        rows = self._fetch_all(
            "SELECT * FROM project_collaborators WHERE user_id = ? ORDER BY added_at ASC, id ASC",
            (user_id,),
        )
        return [self._row_to_collaborator(r) for r in rows]

    def delete_collaborator(self, collaborator_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM project_collaborators WHERE id = ?", (int(collaborator_id),))
            conn.commit()
        finally:
            conn.close()

    # ---- invitations ----

    def upsert_invitation(
        self,
        *,
        project_id: int,
        email: str,
        role: str,
        token: str,
        invited_by: str,
        invited_by_name: str,
        now_ms: int,
        expires_at: int,
    ) -> int:
        """
        Create or refresh the single invitation row of (project_id, email).

        A refresh resets it to pending with the new token and clears the
        previous response.
        """
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO project_invitations(
                    project_id, email, role, token, status,
                    invited_by, invited_by_name, invited_at, expires_at,
                    responded_at, user_id
                )
                VALUES (?, ?, ?, ?, 'pending', ?, ?, ?, ?, NULL, NULL)
                ON CONFLICT(project_id, email) DO UPDATE SET
                    role = excluded.role,
                    token = excluded.token,
                    status = 'pending',
                    invited_by = excluded.invited_by,
                    invited_by_name = excluded.invited_by_name,
                    invited_at = excluded.invited_at,
                    expires_at = excluded.expires_at,
                    responded_at = NULL,
                    user_id = NULL
                """,
                (int(project_id), email, role, token, invited_by, invited_by_name, int(now_ms), int(expires_at)),
            )
            row = conn.execute(
                "SELECT id FROM project_invitations WHERE project_id = ? AND email = ?",
                (int(project_id), email),
            ).fetchone()
            conn.commit()
            if row is None:
                raise RuntimeError("invitation upsert did not produce a row")
            return int(row["id"])
        finally:
            conn.close()

    def find_invitation_by_token(self, token: str) -> ProjectInvitation | None:
        row = self._fetch_one("SELECT * FROM project_invitations WHERE token = ?", (token,))
        return self._row_to_invitation(row) if row else None

    def find_invitation(self, project_id: int, email: str) -> ProjectInvitation | None:
        row = self._fetch_one(
            "SELECT * FROM project_invitations WHERE project_id = ? AND email = ?",
            (int(project_id), email),
        )
        return self._row_to_invitation(row) if row else None

    def list_invitations_for_project(self, project_id: int) -> list[ProjectInvitation]:
        rows = self._fetch_all(
            "SELECT * FROM project_invitations WHERE project_id = ? ORDER BY invited_at ASC, id ASC",
            (int(project_id),),
        )
        return [self._row_to_invitation(r) for r in rows]

    def list_invitations_for_email(self, email: str) -> list[ProjectInvitation]:
        rows = self._fetch_all(
            "SELECT * FROM project_invitations WHERE email = ? ORDER BY invited_at ASC, id ASC",
            (email,),
        )
        return [self._row_to_invitation(r) for r in rows]

    def mark_invitation_expired(self, invitation_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE project_invitations SET status = 'expired' WHERE id = ? AND status = 'pending'",
                (int(invitation_id),),
            )
            conn.commit()
        finally:
            conn.close()

    def accept_invitation(
        self,
        invitation: ProjectInvitation,
        *,
        user_id: str,
        email: str,
        user_name: str | None,
        now_ms: int,
        new_token: str,
    ) -> None:
        """
        Upsert the collaborator row and close the invitation, in one transaction.

        An existing (project_id, user_id) row keeps its added_by/added_at and
        only picks up the invitation's role, the email and a non-empty name.
        """
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO project_collaborators(
                    project_id, user_id, email, role, added_by, added_at, user_name
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id, user_id) DO UPDATE SET
                    email = excluded.email,
                    role = excluded.role,
                    user_name = COALESCE(excluded.user_name, project_collaborators.user_name)
                """,
                (
                    int(invitation.project_id),
                    user_id,
                    email,
                    invitation.role,
                    invitation.invited_by,
                    int(now_ms),
                    user_name,
                ),
            )
            conn.execute(
                """
                UPDATE project_invitations
                SET status = 'accepted',
                    responded_at = ?,
                    user_id = ?,
                    token = ?
                WHERE id = ?
                """,
                (int(now_ms), user_id, new_token, int(invitation.id)),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def decline_invitation(self, invitation_id: int, *, user_id: str, now_ms: int, new_token: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE project_invitations
                SET status = 'declined',
                    responded_at = ?,
                    user_id = ?,
                    token = ?
                WHERE id = ?
                """,
                (int(now_ms), user_id, new_token, int(invitation_id)),
            )
            conn.commit()
        finally:
            conn.close()
