# src/collab_tracker/projects/github.py

from __future__ import annotations

from urllib.parse import urlparse


def extract_github_repo(url: str | None) -> str | None:
    """
    "https://github.com/owner/repo(.git)" -> "owner/repo".

    Returns None for empty input, non-GitHub hosts and URLs without both parts.
    """
    if not url or not url.strip():
        return None
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    if not parsed.scheme or "github.com" not in (parsed.hostname or ""):
        return None

    segments = parsed.path.lstrip("/").split("/")
    if len(segments) < 2:
        return None
    owner = segments[0].strip()
    repo = segments[1].strip()
    if repo.endswith(".git"):
        repo = repo[:-4]
    if not owner or not repo:
        return None
    return f"{owner}/{repo}"
