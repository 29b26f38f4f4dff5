# src/collab_tracker/core/identity.py

from __future__ import annotations

from dataclasses import dataclass


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True, slots=True)
class Identity:
    """Caller identity supplied by the auth provider for a single request."""

    subject: str
    email: str | None = None
    name: str | None = None

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)

    @property
    def display_name(self) -> str:
        return self.name or self.email or "A teammate"
