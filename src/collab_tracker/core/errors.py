# src/collab_tracker/core/errors.py

from __future__ import annotations

"""
Error taxonomy.

Every failure surfaced to a caller is a TrackerError carrying a discriminated
`kind`. The message is user-facing and is shown verbatim by the UI/console.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"
    NOT_AUTHORIZED = "not_authorized"
    VALIDATION = "validation"

    # invitations
    ALREADY_PROCESSED = "already_processed"
    EXPIRED = "expired"
    EMAIL_MISMATCH = "email_mismatch"
    ALREADY_MEMBER = "already_member"

    # task lifecycle
    ALREADY_RUNNING = "already_running"
    NOT_SELECTED_TODAY = "not_selected_today"
    NO_PROJECT = "no_project"

    # metrics
    NO_GITHUB_REPO = "no_github_repo"


class TrackerError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class NotAuthenticated(TrackerError):
    kind = ErrorKind.NOT_AUTHENTICATED
    default_message = "Not authenticated"


class NotFound(TrackerError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class NotAuthorized(TrackerError):
    kind = ErrorKind.NOT_AUTHORIZED
    default_message = "Not authorized"


class ValidationError(TrackerError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"


class AlreadyProcessed(TrackerError):
    kind = ErrorKind.ALREADY_PROCESSED
    default_message = "This invitation has already been processed."


class Expired(TrackerError):
    kind = ErrorKind.EXPIRED
    default_message = "This invitation has expired."


class EmailMismatch(TrackerError):
    kind = ErrorKind.EMAIL_MISMATCH
    default_message = "This invitation was sent to a different email address."


class AlreadyMember(TrackerError):
    kind = ErrorKind.ALREADY_MEMBER
    default_message = "This email already has access to the project."


class AlreadyRunning(TrackerError):
    kind = ErrorKind.ALREADY_RUNNING
    default_message = "Task is already running"


class NotSelectedToday(NotAuthorized):
    """A stale selection: the caller selected the task on an earlier day."""

    kind = ErrorKind.NOT_SELECTED_TODAY
    default_message = "Select this task for today before working on it"


class NoProject(TrackerError):
    kind = ErrorKind.NO_PROJECT
    default_message = "Task is not linked to a project"


class NoGithubRepo(TrackerError):
    kind = ErrorKind.NO_GITHUB_REPO
    default_message = "GitHub repository URL is not set for this project"
