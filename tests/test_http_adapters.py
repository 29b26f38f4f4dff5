# tests/test_http_adapters.py

from __future__ import annotations

import json

import httpx
import pytest

from collab_tracker.notify.email import PLUNK_SEND_URL, PlunkEmailSink, invitation_response_link
from collab_tracker.projects.metrics import HttpMetricsFetcher, MetricsFetchError
from collab_tracker.projects.project_models import InvitationEnvelope

ENVELOPE = InvitationEnvelope(
    to="bob@example.com",
    inviter_name="Olivia <Owner>",
    project_name="Widget",
    role="collaborator",
    token="tok+en/1",
)


def test_invitation_response_link_encodes_token() -> None:
    link = invitation_response_link("https://tracker.test/", "tok+en/1", "accept")
    assert link == "https://tracker.test/email/invitation-response?token=tok%2Ben%2F1&action=accept"
    with pytest.raises(ValueError):
        invitation_response_link("https://tracker.test", "t", "maybe")


@pytest.mark.asyncio
async def test_plunk_sink_posts_email() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sink = PlunkEmailSink(api_key="pk_test", base_url="https://tracker.test", client=client)
        await sink.send_invitation(ENVELOPE)

    assert len(seen) == 1
    request = seen[0]
    assert str(request.url) == PLUNK_SEND_URL
    assert request.headers["Authorization"] == "Bearer pk_test"
    body = json.loads(request.content)
    assert body["to"] == "bob@example.com"
    assert "Widget" in body["subject"]
    assert "action=accept" in body["body"]
    assert "action=decline" in body["body"]
    assert "Olivia &lt;Owner&gt;" in body["body"]


@pytest.mark.asyncio
async def test_plunk_sink_raises_on_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sink = PlunkEmailSink(api_key="pk_test", base_url="https://tracker.test", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await sink.send_invitation(ENVELOPE)


@pytest.mark.asyncio
async def test_plunk_sink_without_key_skips() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sink = PlunkEmailSink(api_key="  ", base_url="https://tracker.test", client=client)
        await sink.send_invitation(ENVELOPE)


@pytest.mark.asyncio
async def test_metrics_fetcher_github_and_npm() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.github.com":
            assert request.url.path == "/repos/acme/widget"
            assert request.headers["Authorization"] == "Bearer gh_test"
            return httpx.Response(200, json={"stargazers_count": 10, "forks_count": 2, "name": "widget"})
        assert request.url.raw_path == b"/downloads/point/last-month/%40acme%2Fwidget"
        return httpx.Response(200, json={"downloads": 555})

    fetcher = HttpMetricsFetcher(github_token="gh_test", transport=httpx.MockTransport(handler))

    github = await fetcher.fetch_github("acme/widget")
    assert (github.stars, github.forks, github.repo_name) == (10, 2, "widget")
    assert await fetcher.fetch_npm_downloads("@acme/widget") == 555


@pytest.mark.asyncio
async def test_metrics_fetcher_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    fetcher = HttpMetricsFetcher(transport=httpx.MockTransport(handler))

    with pytest.raises(MetricsFetchError):
        await fetcher.fetch_github("acme/missing")
    assert await fetcher.fetch_npm_downloads("missing") is None
