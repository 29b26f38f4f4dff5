# src/collab_tracker/core/access.py

from __future__ import annotations

"""
Single place that answers "how is this caller related to this entity?".

Projects and tasks both have one implicit owner (`user_id`). Anything else is
a membership: a ProjectCollaborator row for projects, a share for tasks.
"""

from dataclasses import dataclass
from enum import StrEnum

from .errors import NotAuthenticated, NotAuthorized
from .identity import Identity


class AccessLevel(StrEnum):
    OWNER = "owner"
    COLLABORATOR = "collaborator"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class Access:
    level: AccessLevel
    role: str | None = None

    @property
    def is_owner(self) -> bool:
        return self.level == AccessLevel.OWNER

    @property
    def is_member(self) -> bool:
        return self.level != AccessLevel.NONE

    @property
    def user_role(self) -> str:
        if self.level == AccessLevel.OWNER:
            return "owner"
        return self.role or self.level.value


NO_ACCESS = Access(AccessLevel.NONE)


def resolve_access(owner_id: str, identity: Identity | None, *, membership_role: str | None = None) -> Access:
    """
    owner_id        - user_id stored on the entity
    membership_role - role of the caller's membership, None when there is none
    """
    if identity is None:
        return NO_ACCESS
    if owner_id == identity.subject:
        return Access(AccessLevel.OWNER, "owner")
    if membership_role:
        return Access(AccessLevel.COLLABORATOR, membership_role)
    return NO_ACCESS


def require_identity(identity: Identity | None, *, need_email: bool = False, message: str | None = None) -> Identity:
    if identity is None:
        raise NotAuthenticated(message)
    if need_email and not identity.normalized_email:
        raise NotAuthenticated(message or "You must be signed in with an email address.")
    return identity


def require_owner(access: Access, message: str | None = None) -> None:
    if not access.is_owner:
        raise NotAuthorized(message)


def require_member(access: Access, message: str | None = None) -> None:
    if not access.is_member:
        raise NotAuthorized(message)
