# src/collab_tracker/tasks/lifecycle.py

from __future__ import annotations

"""
Task lifecycle engine.

    todo        --start-->    in-progress   started_at = now
    in-progress --stop-->     todo          tracked += max(0, now - started_at)
    in-progress --complete--> done          tracked += ..., completed_at = now
    todo        --complete--> done          completed_at = now
    done        --toggle-->   todo          reopen

Who may do what:
- owner: everything
- shared-with (email in task_shares): edit fields, select for today, refine
- selected today (email in task_selections, same UTC day): start/stop/complete

The started_at invariant (set iff in-progress) is kept by routing every status
change through _transition().
"""

import logging
from typing import TYPE_CHECKING, Any

from ..core.access import Access, require_identity, require_member, require_owner, resolve_access
from ..core.clock import Clock, SystemClock, same_utc_day
from ..core.errors import AlreadyRunning, NoProject, NotAuthorized, NotFound, NotSelectedToday, ValidationError
from ..core.identity import Identity
from ..core.patch import present_fields
from .task_models import (
    DEFAULT_TASK_HOURS,
    ShareResult,
    Task,
    TaskFields,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
    TaskWithProject,
)
from .task_store import TaskStore

if TYPE_CHECKING:
    from ..projects.registry import ProjectRegistry

logger = logging.getLogger(__name__)

SHARED_ROLE = "collaborator"


def _parse_priority(raw: str | None) -> TaskPriority:
    if raw is None or raw == "":
        return TaskPriority.MEDIUM
    try:
        return TaskPriority((raw or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown priority: {raw}") from None


def _parse_status(raw: str | None) -> TaskStatus:
    if raw is None or raw == "":
        return TaskStatus.TODO
    try:
        return TaskStatus.parse(raw)
    except ValueError:
        raise ValidationError(f"Unknown status: {raw}") from None


def _parse_hours(raw: float | None) -> float:
    if raw is None:
        return DEFAULT_TASK_HOURS
    hrs = float(raw)
    if hrs < 0:
        raise ValidationError("Estimated hours cannot be negative")
    return hrs


def run_elapsed_ms(task: Task, now_ms: int) -> int:
    """Length of the current run, clamped so clock skew never subtracts time."""
    if task.started_at is None:
        return 0
    return max(0, int(now_ms) - int(task.started_at))


def selected_today(task: Task, email: str, now_ms: int) -> bool:
    ts = task.selected_by.get(email) if email else None
    return ts is not None and same_utc_day(ts, now_ms)


def _transition(task: Task, target: TaskStatus, now_ms: int) -> dict[str, Any]:
    """Column changes that move `task` to `target` while keeping the invariants."""
    changes: dict[str, Any] = {"status": target}

    if task.is_running and target != TaskStatus.IN_PROGRESS:
        changes["tracked_time_ms"] = task.tracked_time_ms + run_elapsed_ms(task, now_ms)
        changes["started_at"] = None
    elif target != TaskStatus.IN_PROGRESS and task.started_at is not None:
        # Stale started_at on a non-running row: drop it without accumulating.
        changes["started_at"] = None

    if target == TaskStatus.IN_PROGRESS and not task.is_running:
        changes["started_at"] = int(now_ms)

    if target == TaskStatus.DONE:
        if task.status != TaskStatus.DONE or task.completed_at is None:
            changes["completed_at"] = int(now_ms)
    else:
        changes["completed_at"] = None

    return changes


class TaskLifecycle:
    def __init__(
        self,
        store: TaskStore,
        *,
        clock: Clock | None = None,
        projects: ProjectRegistry | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.projects = projects

    # ---- access ----

    def task_access(self, task: Task, identity: Identity | None) -> Access:
        """Owner, or collaborator when the caller's email is in the task's shares."""
        shared = identity is not None and bool(identity.normalized_email) and identity.normalized_email in task.shared_with
        return resolve_access(task.user_id, identity, membership_role=SHARED_ROLE if shared else None)

    def load_task(self, task_id: int) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _require_timer_access(self, identity: Identity, task: Task) -> None:
        """Owner, or a caller who selected the task on the current UTC day."""
        if task.user_id == identity.subject:
            return

        email = identity.normalized_email
        if selected_today(task, email, self.clock.now_ms()):
            return
        if email and email in task.selected_by:
            raise NotSelectedToday()
        raise NotAuthorized("Not authorized to work on this task")

    def _load_for_timer(self, identity: Identity | None, task_id: int) -> tuple[Identity, Task]:
        identity = require_identity(identity)
        task = self.load_task(task_id)
        self._require_timer_access(identity, task)
        return identity, task

    # ---- queries ----

    def list_tasks(self, identity: Identity | None) -> list[TaskWithProject]:
        """Owned tasks plus tasks shared with the caller, each with its project (or None)."""
        if identity is None:
            return []

        tasks: dict[int, Task] = {t.id: t for t in self.store.list_tasks_for_owner(identity.subject)}
        for task in self.store.list_tasks_shared_with(identity.normalized_email):
            tasks.setdefault(task.id, task)

        project_cache: dict[int, Any] = {}
        out: list[TaskWithProject] = []
        for task in tasks.values():
            project = None
            if task.project_id is not None and self.projects is not None:
                if task.project_id not in project_cache:
                    project_cache[task.project_id] = self.projects.store.get_project(task.project_id)
                project = project_cache[task.project_id]
            out.append(TaskWithProject(task=task, project=project))
        return out

    def get_task(self, identity: Identity | None, task_id: int) -> Task:
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_member(self.task_access(task, identity))
        return task

    # ---- CRUD ----

    def create_task(self, identity: Identity | None, fields: TaskFields) -> int:
        identity = require_identity(identity)
        text = (fields.text or "").strip()
        if not text:
            raise ValidationError("Task text is required")

        now = self.clock.now_ms()
        status = _parse_status(fields.status)
        task_id = self.store.add_task(
            user_id=identity.subject,
            text=text,
            details=fields.details or "",
            priority=_parse_priority(fields.priority),
            status=status,
            hrs=_parse_hours(fields.hrs),
            ref_link=fields.ref_link or None,
            project_id=fields.project_id,
            started_at=now if status == TaskStatus.IN_PROGRESS else None,
            completed_at=now if status == TaskStatus.DONE else None,
            analysis_data=fields.analysis_data,
            now_ms=now,
        )
        logger.info("Task created id=%s owner=%s", task_id, identity.subject)
        return task_id

    def update_task(self, identity: Identity | None, task_id: int, update: TaskUpdate) -> None:
        """Owner or shared-with; only explicitly provided fields change. Status changes follow the timer rules."""
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_member(self.task_access(task, identity), "Not authorized to update this task")

        given = present_fields(update)
        changes: dict[str, Any] = {}

        if "text" in given:
            text = (given["text"] or "").strip()
            if not text:
                raise ValidationError("Task text is required")
            changes["text"] = text
        if "details" in given:
            changes["details"] = given["details"] or ""
        if "priority" in given:
            changes["priority"] = _parse_priority(given["priority"])
        if "hrs" in given:
            changes["hrs"] = _parse_hours(given["hrs"])
        if "ref_link" in given:
            changes["ref_link"] = given["ref_link"] or None
        if "project_id" in given:
            changes["project_id"] = given["project_id"]
        if "status" in given:
            target = _parse_status(given["status"])
            if target != task.status or (target == TaskStatus.IN_PROGRESS and not task.is_running):
                self._require_timer_access(identity, task)
                changes.update(_transition(task, target, self.clock.now_ms()))

        self.store.update_task_fields(task.id, changes, now_ms=self.clock.now_ms())
        logger.debug("Task updated id=%s by=%s fields=%s", task.id, identity.subject, sorted(changes))

    def delete_task(self, identity: Identity | None, task_id: int) -> None:
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_owner(self.task_access(task, identity), "Not authorized to delete this task")
        self.store.delete_task(task.id)
        logger.info("Task deleted id=%s", task.id)

    # ---- time tracking ----

    def start_task(self, identity: Identity | None, task_id: int) -> None:
        identity, task = self._load_for_timer(identity, task_id)
        if task.status == TaskStatus.IN_PROGRESS and task.started_at is not None:
            raise AlreadyRunning()

        now = self.clock.now_ms()
        self.store.update_task_fields(task.id, _transition(task, TaskStatus.IN_PROGRESS, now), now_ms=now)
        logger.info("Task started id=%s by=%s", task.id, identity.subject)

    def stop_task(self, identity: Identity | None, task_id: int) -> None:
        identity, task = self._load_for_timer(identity, task_id)
        now = self.clock.now_ms()
        self.store.update_task_fields(task.id, _transition(task, TaskStatus.TODO, now), now_ms=now)
        logger.info("Task stopped id=%s by=%s run_ms=%s", task.id, identity.subject, run_elapsed_ms(task, now))

    def complete_task(self, identity: Identity | None, task_id: int) -> None:
        identity, task = self._load_for_timer(identity, task_id)
        now = self.clock.now_ms()
        self.store.update_task_fields(task.id, _transition(task, TaskStatus.DONE, now), now_ms=now)
        logger.info("Task completed id=%s by=%s", task.id, identity.subject)

    def toggle_task_status(self, identity: Identity | None, task_id: int) -> TaskStatus:
        """
        Checkbox-style toggle: done -> todo, anything else -> done.

        Reopening needs access to the task; completing follows the timer rules.
        """
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_member(self.task_access(task, identity), "Not authorized to update this task")

        target = TaskStatus.TODO if task.status == TaskStatus.DONE else TaskStatus.DONE
        if target == TaskStatus.DONE:
            self._require_timer_access(identity, task)
        now = self.clock.now_ms()
        self.store.update_task_fields(task.id, _transition(task, target, now), now_ms=now)
        return target

    def reset_tracked_time(self, identity: Identity | None, task_id: int) -> None:
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_owner(self.task_access(task, identity), "Only the task owner can reset tracked time")

        now = self.clock.now_ms()
        changes: dict[str, Any] = {"tracked_time_ms": 0}
        if task.is_running:
            changes["started_at"] = now
        self.store.update_task_fields(task.id, changes, now_ms=now)
        logger.info("Task tracked time reset id=%s", task.id)

    # ---- selection / sharing ----

    def toggle_task_selection(self, identity: Identity | None, task_id: int, selected: bool) -> None:
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_member(self.task_access(task, identity), "Not authorized to select this task")

        email = identity.normalized_email
        if not email:
            raise ValidationError("An email address is required to select tasks")

        now = self.clock.now_ms()
        if selected:
            if selected_today(task, email, now):
                # Keep the first selection of the day; only the legacy column is cleaned.
                self.store.clear_legacy_selected_at(task.id)
                return
            self.store.set_selection(task.id, email, selected_at=now)
            logger.debug("Task selected id=%s email=%s", task.id, email)
        else:
            self.store.remove_selection(task.id, email, now_ms=now)
            logger.debug("Task deselected id=%s email=%s", task.id, email)

    def share_task_with_collaborators(self, identity: Identity | None, task_id: int) -> ShareResult:
        """Share with every collaborator of the task's project. Additive only."""
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_owner(self.task_access(task, identity), "Only the task owner can share it")
        if task.project_id is None:
            raise NoProject()
        if self.projects is None:
            raise RuntimeError("Project registry is not configured")

        owner_email = identity.normalized_email
        emails = [e for e in self.projects.collaborator_emails(task.project_id) if e and e != owner_email]
        if not emails:
            return ShareResult(
                success=False,
                added=0,
                total=len(task.shared_with),
                message="No collaborators on this project yet",
            )

        new_emails = [e for e in dict.fromkeys(emails) if e not in task.shared_with]
        if not new_emails:
            return ShareResult(
                success=True,
                added=0,
                total=len(task.shared_with),
                message="Task is already shared with all collaborators",
            )

        added = self.store.add_shares(task.id, new_emails, now_ms=self.clock.now_ms())
        total = len(task.shared_with) + added
        logger.info("Task shared id=%s added=%s total=%s", task.id, added, total)
        return ShareResult(success=True, added=added, total=total, message=f"Shared with {added} collaborator(s)")

    def unshare_task(self, identity: Identity | None, task_id: int) -> None:
        identity = require_identity(identity)
        task = self.load_task(task_id)
        require_owner(self.task_access(task, identity), "Only the task owner can unshare it")
        self.store.clear_shares(task.id, now_ms=self.clock.now_ms())
        logger.info("Task unshared id=%s", task.id)

    # ---- maintenance ----

    def migrate_remove_selected_at(self, identity: Identity | None) -> int:
        require_identity(identity)
        migrated = self.store.clear_legacy_selected_at()
        logger.info("Removed legacy selected_at from %s tasks", migrated)
        return migrated
