# src/collab_tracker/projects/registry.py

from __future__ import annotations

"""
Project & collaborator registry.

Owns project CRUD, collaborator membership and the invitation lifecycle:

    pending --accept--> accepted
    pending --decline--> declined
    pending --(accept/decline after expires_at)--> expired

Inviting is split in two phases: a store upsert that is the source of truth,
then a best-effort email through the NotificationSink.
"""

import logging
import re
import secrets
from typing import Any

from ..core.access import Access, require_identity, require_member, require_owner, resolve_access
from ..core.clock import Clock, SystemClock
from ..core.errors import (
    AlreadyMember,
    AlreadyProcessed,
    EmailMismatch,
    Expired,
    NoGithubRepo,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from ..core.identity import Identity, normalize_email
from ..core.patch import present_fields
from ..core.ports import MetricsFetcher, NotificationSink
from .github import extract_github_repo
from .project_models import (
    COLLABORATOR_ROLE,
    DEFAULT_PROJECT_CATEGORY,
    DEFAULT_PROJECT_TYPE,
    INVITATION_TTL_MS,
    InvitationEnvelope,
    InvitationStatus,
    InviteResult,
    MetricsSnapshot,
    PendingInvitation,
    Project,
    ProjectCollaborator,
    ProjectCollaborators,
    ProjectFields,
    ProjectInvitation,
    ProjectStatus,
    ProjectUpdate,
    ProjectView,
)
from .project_store import ProjectStore

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def generate_token() -> str:
    return secrets.token_urlsafe(24)


def make_slug(name: str) -> str:
    base = _SLUG_STRIP.sub("-", (name or "").strip().lower()).strip("-")[:40] or "project"
    return f"{base}-{secrets.token_hex(3)}"


def _parse_status(raw: str | None) -> ProjectStatus:
    if raw is None or raw == "":
        return ProjectStatus.PLANNING
    try:
        return ProjectStatus(raw)
    except ValueError:
        raise ValidationError(f"Unknown project status: {raw}") from None


def _count(value: int | None) -> int:
    return max(0, int(value or 0))


class ProjectRegistry:
    def __init__(
        self,
        store: ProjectStore,
        *,
        clock: Clock | None = None,
        notifier: NotificationSink | None = None,
        metrics: MetricsFetcher | None = None,
        invitation_ttl_ms: int = INVITATION_TTL_MS,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.metrics = metrics
        self.invitation_ttl_ms = int(invitation_ttl_ms)

    # ---- access ----

    def project_access(self, project: Project, identity: Identity | None) -> Access:
        if identity is None:
            return resolve_access(project.user_id, None)
        membership = None
        if project.user_id != identity.subject:
            membership = self.store.find_collaborator(project.id, identity.subject)
        return resolve_access(project.user_id, identity, membership_role=membership.role if membership else None)

    def _load_project(self, project_id: int) -> Project:
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    def _load_owned_project(self, identity: Identity, project_id: int, message: str) -> Project:
        project = self._load_project(project_id)
        require_owner(self.project_access(project, identity), message)
        return project

    # ---- queries ----

    def list_projects(self, identity: Identity | None) -> list[ProjectView]:
        """Owned projects plus projects the caller collaborates on; ownership wins."""
        if identity is None:
            return []

        results: dict[int, ProjectView] = {}
        for project in self.store.list_projects_for_owner(identity.subject):
            results[project.id] = ProjectView(project=project, user_role="owner")

        for membership in self.store.list_memberships(identity.subject):
            if membership.project_id in results:
                continue
            project = self.store.get_project(membership.project_id)
            if project is None:
                continue
            results[project.id] = ProjectView(project=project, user_role=membership.role)

        return list(results.values())

    def get_project(self, identity: Identity | None, project_id: int) -> Project:
        identity = require_identity(identity)
        project = self._load_project(project_id)
        require_member(self.project_access(project, identity))
        return project

    def get_project_collaborators(self, identity: Identity | None, project_id: int) -> ProjectCollaborators:
        identity = require_identity(identity)
        project = self._load_project(project_id)
        require_member(self.project_access(project, identity), "Not authorized to view collaborators")
        return ProjectCollaborators(
            owner_user_id=project.user_id,
            project_id=project.id,
            collaborators=self.store.list_collaborators(project.id),
        )

    def get_all_collaborators(self, identity: Identity | None) -> list[ProjectCollaborator]:
        if identity is None:
            return []

        project_ids: list[int] = [p.id for p in self.store.list_projects_for_owner(identity.subject)]
        for membership in self.store.list_memberships(identity.subject):
            if membership.project_id not in project_ids:
                project_ids.append(membership.project_id)

        out: list[ProjectCollaborator] = []
        for project_id in project_ids:
            out.extend(self.store.list_collaborators(project_id))
        return out

    def collaborator_emails(self, project_id: int) -> list[str]:
        """Normalised emails of every collaborator row of the project."""
        return [normalize_email(c.email) for c in self.store.list_collaborators(project_id) if c.email]

    def list_project_invitations(self, identity: Identity | None, project_id: int) -> list[ProjectInvitation]:
        identity = require_identity(identity)
        project = self._load_owned_project(identity, project_id, "Not authorized")
        return self.store.list_invitations_for_project(project.id)

    def get_pending_invitations(self, identity: Identity | None) -> list[PendingInvitation]:
        """
        Pending, unexpired invitations addressed to the caller's email.

        Read-only: an expired-but-pending row is just left out here; it flips
        to expired only when somebody tries to act on it.
        """
        if identity is None or not identity.normalized_email:
            return []

        now = self.clock.now_ms()
        out: list[PendingInvitation] = []
        for invitation in self.store.list_invitations_for_email(identity.normalized_email):
            if invitation.status != InvitationStatus.PENDING:
                continue
            if invitation.expires_at <= now:
                continue
            project = self.store.get_project(invitation.project_id)
            out.append(
                PendingInvitation(
                    id=invitation.id,
                    project_id=invitation.project_id,
                    project_name=project.name if project else "Untitled Project",
                    role=invitation.role,
                    invited_at=invitation.invited_at,
                    inviter_name=invitation.invited_by_name or "A teammate",
                    token=invitation.token,
                    expires_at=invitation.expires_at,
                )
            )
        return out

    # ---- project mutations ----

    def create_project(self, identity: Identity | None, fields: ProjectFields) -> int:
        identity = require_identity(identity)
        name = (fields.name or "").strip()
        if not name:
            raise ValidationError("Project name is required")

        now = self.clock.now_ms()
        github_url = fields.github_url or None
        project_id = self.store.insert_project(
            slug=(fields.slug or "").strip() or make_slug(name),
            name=name,
            description=fields.description or "",
            type=fields.type or DEFAULT_PROJECT_TYPE,
            category=fields.category or DEFAULT_PROJECT_CATEGORY,
            status=_parse_status(fields.status),
            user_id=identity.subject,
            now_ms=now,
            github_url=github_url,
            github_repo=fields.github_repo or extract_github_repo(github_url),
            github_stars=_count(fields.github_stars),
            github_forks=_count(fields.github_forks),
            npm_downloads=_count(fields.npm_downloads),
            npm_package=fields.npm_package or None,
        )
        logger.info("Project created id=%s owner=%s", project_id, identity.subject)
        return project_id

    def update_project(self, identity: Identity | None, project_id: int, update: ProjectUpdate) -> None:
        identity = require_identity(identity)
        project = self._load_owned_project(identity, project_id, "Not authorized to update this project")

        given = present_fields(update)
        changes: dict[str, Any] = {}

        if "name" in given:
            name = (given["name"] or "").strip()
            if not name:
                raise ValidationError("Project name is required")
            changes["name"] = name
        if "description" in given:
            changes["description"] = given["description"] or ""
        if "type" in given:
            changes["type"] = given["type"] or DEFAULT_PROJECT_TYPE
        if "category" in given:
            changes["category"] = given["category"] or DEFAULT_PROJECT_CATEGORY
        if "status" in given:
            changes["status"] = _parse_status(given["status"])

        if "github_url" in given:
            changes["github_url"] = given["github_url"] or None
            derived = extract_github_repo(given["github_url"])
            if derived is not None:
                changes["github_repo"] = derived

        for counter in ("github_stars", "github_forks", "npm_downloads"):
            if counter in given:
                changes[counter] = _count(given[counter])

        # An explicit repo wins over the one derived from the URL.
        if "github_repo" in given:
            changes["github_repo"] = given["github_repo"] or None
        if "npm_package" in given:
            changes["npm_package"] = given["npm_package"] or None

        self.store.patch_project(project.id, changes, now_ms=self.clock.now_ms())
        logger.debug("Project updated id=%s fields=%s", project.id, sorted(changes))

    def delete_project(self, identity: Identity | None, project_id: int) -> None:
        """Hard delete. Tasks, collaborators and invitations keep dangling references."""
        identity = require_identity(identity)
        project = self._load_owned_project(identity, project_id, "Not authorized to delete this project")
        self.store.delete_project(project.id)
        logger.info("Project deleted id=%s", project.id)

    # ---- invitations ----

    def invite_project_collaborator_mutation(
        self,
        identity: Identity | None,
        project_id: int,
        email: str,
        role: str = COLLABORATOR_ROLE,
    ) -> InviteResult:
        identity = require_identity(
            identity,
            need_email=True,
            message="You must be signed in with an email address to send invitations.",
        )
        project = self._load_owned_project(identity, project_id, "Only project owners can send invitations.")

        target = normalize_email(email)
        if not target or "@" not in target:
            raise ValidationError("A valid email address is required")
        if role != COLLABORATOR_ROLE:
            raise ValidationError(f"Unsupported role: {role}")
        if target == identity.normalized_email:
            raise AlreadyMember("Project owners already have access to their own project.")

        if self.store.find_collaborator_by_email(project.id, target) is not None:
            raise AlreadyMember()

        now = self.clock.now_ms()
        token = generate_token()
        inviter_name = identity.display_name
        self.store.upsert_invitation(
            project_id=project.id,
            email=target,
            role=role,
            token=token,
            invited_by=identity.subject,
            invited_by_name=inviter_name,
            now_ms=now,
            expires_at=now + self.invitation_ttl_ms,
        )
        logger.info("Invitation stored project=%s email=%s", project.id, target)

        return InviteResult(
            success=True,
            message=f"Invitation sent to {target}",
            invitation=InvitationEnvelope(
                to=target,
                inviter_name=inviter_name,
                project_name=project.name,
                role=role,
                token=token,
            ),
        )

    async def invite_project_collaborator(
        self,
        identity: Identity | None,
        project_id: int,
        email: str,
        role: str = COLLABORATOR_ROLE,
    ) -> InviteResult:
        result = self.invite_project_collaborator_mutation(identity, project_id, email, role)
        if result.invitation is not None:
            await self._notify(result.invitation)
        return result

    async def _notify(self, invitation: InvitationEnvelope) -> None:
        if self.notifier is None:
            logger.warning("No notification sink configured; invitation email to %s not sent", invitation.to)
            return
        try:
            await self.notifier.send_invitation(invitation)
        except Exception:
            logger.exception("Invitation email failed to=%s project=%s", invitation.to, invitation.project_name)

    def _resolve_invitation(self, identity: Identity, token: str) -> ProjectInvitation:
        """Shared lookup of accept/decline: NotFound, AlreadyProcessed, Expired, EmailMismatch."""
        invitation = self.store.find_invitation_by_token(token) if token else None
        if invitation is None:
            raise NotFound("Invitation not found.")
        if invitation.status != InvitationStatus.PENDING:
            raise AlreadyProcessed()

        if self.clock.now_ms() > invitation.expires_at:
            self.store.mark_invitation_expired(invitation.id)
            logger.info("Invitation expired id=%s project=%s", invitation.id, invitation.project_id)
            raise Expired()

        if identity.normalized_email != normalize_email(invitation.email):
            raise EmailMismatch()
        return invitation

    def accept_project_invitation(self, identity: Identity | None, token: str) -> int:
        identity = require_identity(
            identity,
            need_email=True,
            message="You must be signed in with an email address to accept invitations.",
        )
        invitation = self._resolve_invitation(identity, token)
        project = self.store.get_project(invitation.project_id)
        if project is None:
            raise NotFound("Project not found")
        if project.user_id == identity.subject:
            raise AlreadyMember("Project owners already have access to their own project.")

        self.store.accept_invitation(
            invitation,
            user_id=identity.subject,
            email=identity.normalized_email,
            user_name=identity.name or None,
            now_ms=self.clock.now_ms(),
            new_token=generate_token(),
        )
        logger.info("Invitation accepted id=%s project=%s user=%s", invitation.id, invitation.project_id, identity.subject)
        return invitation.project_id

    def decline_project_invitation(self, identity: Identity | None, token: str) -> None:
        identity = require_identity(
            identity,
            need_email=True,
            message="You must be signed in to decline invitations.",
        )
        invitation = self._resolve_invitation(identity, token)

        self.store.decline_invitation(
            invitation.id,
            user_id=identity.subject,
            now_ms=self.clock.now_ms(),
            new_token=generate_token(),
        )
        logger.info("Invitation declined id=%s project=%s", invitation.id, invitation.project_id)

    def remove_project_collaborator(self, identity: Identity | None, project_id: int, collaborator_id: int) -> None:
        identity = require_identity(identity)
        project = self._load_owned_project(identity, project_id, "Only project owners can remove collaborators")

        collaborator = self.store.get_collaborator(collaborator_id)
        if collaborator is None:
            raise NotFound("Collaborator not found")
        if collaborator.project_id != project.id:
            raise NotAuthorized("Collaborator does not belong to this project")
        if collaborator.user_id == project.user_id:
            raise NotAuthorized("Cannot remove the project owner")

        self.store.delete_collaborator(collaborator.id)
        logger.info("Collaborator removed project=%s user=%s", project.id, collaborator.user_id)

    # ---- metrics ----

    async def sync_github_metrics(self, identity: Identity | None, project_id: int) -> MetricsSnapshot:
        identity = require_identity(identity)
        project = self._load_owned_project(identity, project_id, "Not authorized to update this project")
        if self.metrics is None:
            raise RuntimeError("No metrics fetcher configured")

        repo = project.github_repo or extract_github_repo(project.github_url)
        if not repo:
            raise NoGithubRepo()

        github = await self.metrics.fetch_github(repo)

        npm_package = project.npm_package or github.repo_name
        npm_downloads = project.npm_downloads
        if npm_package:
            fetched = await self.metrics.fetch_npm_downloads(npm_package)
            if fetched is not None:
                npm_downloads = fetched

        self.update_project(
            identity,
            project.id,
            ProjectUpdate(
                github_stars=github.stars,
                github_forks=github.forks,
                npm_downloads=npm_downloads,
                github_repo=repo,
                npm_package=npm_package,
            ),
        )
        logger.info("Metrics synced project=%s repo=%s stars=%s", project.id, repo, github.stars)
        return MetricsSnapshot(
            github_repo=repo,
            github_stars=github.stars,
            github_forks=github.forks,
            npm_downloads=npm_downloads,
            npm_package=npm_package,
        )
