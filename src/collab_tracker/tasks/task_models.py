# src/collab_tracker/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from ..core.patch import UNSET

if TYPE_CHECKING:
    from ..projects.project_models import Project

DEFAULT_TASK_HOURS = 1.0


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - older rows may carry "backlog", "completed" or "running"; from_db maps
      them onto the current values.
    """

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        value = raw.strip().lower()
        legacy = _LEGACY_STATUS.get(value)
        if legacy is not None:
            return legacy
        try:
            return cls(value)
        except ValueError:
            return cls.TODO

    @classmethod
    def parse(cls, raw: str) -> TaskStatus:
        """Strict variant for user input: legacy synonyms are fine, garbage is not."""
        value = (raw or "").strip().lower()
        if value in _LEGACY_STATUS:
            return _LEGACY_STATUS[value]
        return cls(value)


_LEGACY_STATUS = {
    "backlog": TaskStatus.TODO,
    "completed": TaskStatus.DONE,
    "running": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
}


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.MEDIUM


class RefinementType(StrEnum):
    NOTE = "note"
    QUESTION = "question"
    ANSWER = "answer"
    UPDATE = "update"


class RefinementRole(StrEnum):
    OWNER = "owner"
    COLLABORATOR = "collaborator"


@dataclass(slots=True)
class Task:
    id: int
    user_id: str
    text: str
    details: str
    priority: TaskPriority
    status: TaskStatus
    hrs: float
    created_at: int
    updated_at: int

    ref_link: str | None = None
    project_id: int | None = None
    tracked_time_ms: int = 0
    started_at: int | None = None
    completed_at: int | None = None
    analysis_data: str | None = None

    # Loaded from task_shares / task_selections.
    shared_with: list[str] = field(default_factory=list)
    selected_by: dict[str, int] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.status == TaskStatus.IN_PROGRESS and self.started_at is not None

    def elapsed_ms(self, now_ms: int) -> int:
        """Tracked time including the current run, if any."""
        if not self.is_running or self.started_at is None:
            return self.tracked_time_ms
        return self.tracked_time_ms + max(0, int(now_ms) - int(self.started_at))


@dataclass(slots=True)
class TaskRefinement:
    id: int
    task_id: int
    author_id: str
    author_email: str
    role: RefinementRole
    type: RefinementType
    content: str
    created_at: int

    author_name: str | None = None
    updated_at: int | None = None
    parent_id: int | None = None


# ---- operation inputs ----


@dataclass(slots=True)
class TaskFields:
    """Input of create_task."""

    text: str
    details: str = ""
    priority: str = TaskPriority.MEDIUM.value
    status: str = TaskStatus.TODO.value
    hrs: float | None = None
    ref_link: str | None = None
    project_id: int | None = None
    analysis_data: str | None = None


@dataclass(slots=True)
class TaskUpdate:
    """Input of update_task. UNSET leaves the column alone, None clears it."""

    text: Any = UNSET
    details: Any = UNSET
    priority: Any = UNSET
    status: Any = UNSET
    hrs: Any = UNSET
    ref_link: Any = UNSET
    project_id: Any = UNSET


# ---- operation results ----


@dataclass(slots=True)
class TaskWithProject:
    task: Task
    project: Project | None  # None when the project is missing or deleted


@dataclass(slots=True)
class ShareResult:
    success: bool
    added: int
    total: int
    message: str


@dataclass(slots=True)
class QuestionThread:
    question: TaskRefinement
    answers: list[TaskRefinement] = field(default_factory=list)


@dataclass(slots=True)
class RefinementGroups:
    notes: list[TaskRefinement] = field(default_factory=list)
    questions: list[QuestionThread] = field(default_factory=list)
    updates: list[TaskRefinement] = field(default_factory=list)
