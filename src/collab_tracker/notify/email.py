# src/collab_tracker/notify/email.py

from __future__ import annotations

"""
Invitation emails.

Rendering is plain string templating; delivery goes through the Plunk HTTP
API. Without an API key the sink logs a warning and skips, so local runs work
without an email provider.
"""

import html
import logging
from urllib.parse import quote

import httpx

from ..projects.project_models import InvitationEnvelope

logger = logging.getLogger(__name__)

PLUNK_SEND_URL = "https://api.useplunk.com/v1/send"


def invitation_response_link(base_url: str, token: str, action: str) -> str:
    if action not in ("accept", "decline"):
        raise ValueError(f"unknown invitation action: {action}")
    return f"{base_url.rstrip('/')}/email/invitation-response?token={quote(token, safe='')}&action={action}"


def render_invitation_subject(invitation: InvitationEnvelope) -> str:
    return f'Invitation to collaborate on "{invitation.project_name}"'


def render_invitation_html(invitation: InvitationEnvelope, base_url: str) -> str:
    accept_link = html.escape(invitation_response_link(base_url, invitation.token, "accept"))
    decline_link = html.escape(invitation_response_link(base_url, invitation.token, "decline"))
    project = html.escape(invitation.project_name)
    inviter = html.escape(invitation.inviter_name)
    role = html.escape(invitation.role)

    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #111827;">You've been invited to collaborate on <em>{project}</em></h2>
      <p style="color: #4b5563;">{inviter} invited you to join the project as <strong>{role}</strong>.</p>
      <p style="margin: 24px 0;">
        <a href="{accept_link}" style="background: #111827; color: #ffffff; padding: 12px 24px; text-decoration: none; border-radius: 6px;">Accept invitation</a>
        <a href="{decline_link}" style="margin-left: 12px; padding: 12px 24px; border-radius: 6px; border: 1px solid #d1d5db; color: #374151; text-decoration: none;">Decline</a>
      </p>
      <p style="color: #6b7280; font-size: 14px;">If the buttons don't work, copy and paste these links into your browser:</p>
      <p style="color: #6b7280; font-size: 12px;">Accept: <a href="{accept_link}">{accept_link}</a></p>
      <p style="color: #6b7280; font-size: 12px;">Decline: <a href="{decline_link}">{decline_link}</a></p>
    </div>
    """


class PlunkEmailSink:
    """NotificationSink that sends invitation emails through the Plunk API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip() or None
        self._base_url = base_url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> PlunkEmailSink:
        return cls(
            api_key=getattr(settings, "plunk_api_key", None),
            base_url=str(getattr(settings, "app_base_url", "http://localhost:3000")),
            timeout_seconds=float(getattr(settings, "http_timeout_seconds", 10.0)),
        )

    async def send_invitation(self, invitation: InvitationEnvelope) -> None:
        if not self._api_key:
            logger.warning("PLUNK_API_KEY is not set. Skipping invitation email to %s.", invitation.to)
            return

        payload = {
            "to": invitation.to,
            "subject": render_invitation_subject(invitation),
            "body": render_invitation_html(invitation, self._base_url),
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        if self._client is not None:
            resp = await self._client.post(PLUNK_SEND_URL, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(PLUNK_SEND_URL, json=payload, headers=headers)

        resp.raise_for_status()
        logger.info("Invitation email sent to=%s project=%s", invitation.to, invitation.project_name)
