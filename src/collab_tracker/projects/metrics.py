# src/collab_tracker/projects/metrics.py

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from .project_models import GithubMetrics

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
NPM_DOWNLOADS_API = "https://api.npmjs.org/downloads/point/last-month"


class MetricsFetchError(RuntimeError):
    pass


class HttpMetricsFetcher:
    """
    MetricsFetcher over the public GitHub and npm HTTP APIs.

    GitHub failures raise (the caller asked for that repo explicitly);
    npm failures return None so the previous download count is kept.
    """

    def __init__(
        self,
        *,
        github_token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._github_token = (github_token or "").strip() or None
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> HttpMetricsFetcher:
        return cls(
            github_token=getattr(settings, "github_token", None),
            timeout_seconds=float(getattr(settings, "http_timeout_seconds", 10.0)),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def fetch_github(self, repo: str) -> GithubMetrics:
        headers = {
            "User-Agent": "collab-tracker",
            "Accept": "application/vnd.github+json",
        }
        if self._github_token:
            headers["Authorization"] = f"Bearer {self._github_token}"

        async with self._client() as client:
            resp = await client.get(f"{GITHUB_API}/repos/{repo}", headers=headers)

        if resp.status_code != 200:
            raise MetricsFetchError(f"Failed to fetch GitHub repo: {resp.status_code} {resp.reason_phrase}")

        data = resp.json()
        stars = data.get("stargazers_count")
        forks = data.get("forks_count")
        name = data.get("name")
        return GithubMetrics(
            stars=stars if isinstance(stars, int) else 0,
            forks=forks if isinstance(forks, int) else 0,
            repo_name=name if isinstance(name, str) and name else None,
        )

    async def fetch_npm_downloads(self, package: str) -> int | None:
        try:
            async with self._client() as client:
                resp = await client.get(f"{NPM_DOWNLOADS_API}/{quote(package, safe='')}")
        except httpx.HTTPError:
            logger.warning("npm downloads fetch failed package=%s", package, exc_info=True)
            return None

        if resp.status_code != 200:
            logger.info("npm downloads unavailable package=%s status=%s", package, resp.status_code)
            return None

        downloads = resp.json().get("downloads")
        return downloads if isinstance(downloads, int) else None
