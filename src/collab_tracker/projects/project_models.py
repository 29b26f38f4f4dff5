# src/collab_tracker/projects/project_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.patch import UNSET

INVITATION_TTL_MS = 7 * 24 * 60 * 60 * 1000

DEFAULT_PROJECT_TYPE = "saas"
DEFAULT_PROJECT_CATEGORY = "commercial"

COLLABORATOR_ROLE = "collaborator"


class ProjectStatus(StrEnum):
    PLANNING = "planning"
    DEVELOPMENT = "development"
    ALPHA = "alpha"
    BETA = "beta"
    OFFICIAL_RELEASE = "official-release"

    @classmethod
    def from_db(cls, raw: str | None) -> ProjectStatus:
        if not raw:
            return cls.PLANNING
        try:
            return cls(raw)
        except ValueError:
            return cls.PLANNING


class InvitationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"

    @classmethod
    def from_db(cls, raw: str | None) -> InvitationStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.EXPIRED


@dataclass(slots=True)
class Project:
    id: int
    slug: str
    name: str
    description: str
    type: str
    category: str
    status: ProjectStatus
    user_id: str
    created_at: int
    updated_at: int

    github_url: str | None = None
    github_repo: str | None = None
    github_stars: int = 0
    github_forks: int = 0
    npm_downloads: int = 0
    npm_package: str | None = None


@dataclass(slots=True)
class ProjectCollaborator:
    id: int
    project_id: int
    user_id: str
    email: str
    role: str
    added_by: str
    added_at: int
    user_name: str | None = None


@dataclass(slots=True)
class ProjectInvitation:
    id: int
    project_id: int
    email: str
    role: str
    token: str
    status: InvitationStatus
    invited_by: str
    invited_by_name: str
    invited_at: int
    expires_at: int
    responded_at: int | None = None
    user_id: str | None = None


# ---- operation inputs ----


@dataclass(slots=True)
class ProjectFields:
    """Input of create_project."""

    name: str
    slug: str | None = None
    description: str = ""
    type: str | None = None
    category: str | None = None
    status: str | None = None
    github_url: str | None = None
    github_repo: str | None = None
    github_stars: int | None = None
    github_forks: int | None = None
    npm_downloads: int | None = None
    npm_package: str | None = None


@dataclass(slots=True)
class ProjectUpdate:
    """Input of update_project. UNSET leaves the column alone, None clears it."""

    name: Any = UNSET
    description: Any = UNSET
    type: Any = UNSET
    category: Any = UNSET
    status: Any = UNSET
    github_url: Any = UNSET
    github_repo: Any = UNSET
    github_stars: Any = UNSET
    github_forks: Any = UNSET
    npm_downloads: Any = UNSET
    npm_package: Any = UNSET


# ---- operation results ----


@dataclass(slots=True)
class ProjectView:
    project: Project
    user_role: str


@dataclass(frozen=True, slots=True)
class InvitationEnvelope:
    """Everything the notification sink needs to send one invitation email."""

    to: str
    inviter_name: str
    project_name: str
    role: str
    token: str


@dataclass(slots=True)
class InviteResult:
    success: bool
    message: str
    invitation: InvitationEnvelope | None = None


@dataclass(slots=True)
class PendingInvitation:
    id: int
    project_id: int
    project_name: str
    role: str
    invited_at: int
    inviter_name: str
    token: str
    expires_at: int


@dataclass(slots=True)
class ProjectCollaborators:
    owner_user_id: str
    project_id: int
    collaborators: list[ProjectCollaborator] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GithubMetrics:
    stars: int
    forks: int
    repo_name: str | None = None


@dataclass(slots=True)
class MetricsSnapshot:
    github_repo: str
    github_stars: int
    github_forks: int
    npm_downloads: int
    npm_package: str | None
