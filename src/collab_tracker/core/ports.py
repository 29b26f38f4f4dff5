# src/collab_tracker/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps email delivery, metrics providers and AI extraction swappable and
makes testing easier.
"""

from typing import TYPE_CHECKING, Awaitable, Protocol

from .clock import Clock

if TYPE_CHECKING:
    from ..projects.project_models import GithubMetrics, InvitationEnvelope
    from ..tasks.image_analysis import ImageAnalysis

__all__ = ["Clock", "ImageTaskExtractor", "MetricsFetcher", "NotificationSink"]


class NotificationSink(Protocol):
    """
    Fire-and-forget delivery of invitation emails.

    Implementations build the accept/decline links from the token. Callers log
    failures and never let them affect the stored invitation.
    """

    def send_invitation(self, invitation: InvitationEnvelope) -> Awaitable[None]: ...


class MetricsFetcher(Protocol):
    """Repository/package popularity metrics (GitHub + npm)."""

    def fetch_github(self, repo: str) -> Awaitable[GithubMetrics]: ...

    def fetch_npm_downloads(self, package: str) -> Awaitable[int | None]: ...


class ImageTaskExtractor(Protocol):
    """Turns a screenshot/whiteboard image into candidate tasks."""

    def extract(self, image_data_url: str, context: str | None = None) -> ImageAnalysis: ...
