"""Tests for the GitHub latest-release client."""

import httpx
import pytest

from services.github import GitHubReleaseClient
from conftest import make_settings


@pytest.mark.asyncio
async def test_fetch_latest_tag_returns_tag_name(github, upstream):
    upstream.tag = "v2.3.4"

    assert await github.fetch_latest_tag() == "v2.3.4"

    request = upstream.github_requests[0]
    assert request.url == "https://api.github.com/repos/MoonTechLab/LunaTV/releases/latest"
    assert request.headers["User-Agent"] == "GitHub-Tag-Monitor"
    assert request.headers["Accept"] == "application/vnd.github.v3+json"
    assert "Authorization" not in request.headers


@pytest.mark.asyncio
async def test_token_is_sent_when_configured(upstream):
    client = GitHubReleaseClient(
        make_settings(github_token="ghp_secret"),
        transport=httpx.MockTransport(upstream.github_handler),
    )

    await client.fetch_latest_tag()

    assert upstream.github_requests[0].headers["Authorization"] == "token ghp_secret"


@pytest.mark.asyncio
async def test_custom_repository_and_api_url(upstream):
    client = GitHubReleaseClient(
        make_settings(github_repository="acme/widget", github_api_url="https://ghe.example.com/api/v3/"),
        transport=httpx.MockTransport(upstream.github_handler),
    )

    await client.fetch_latest_tag()

    assert upstream.github_requests[0].url == "https://ghe.example.com/api/v3/repos/acme/widget/releases/latest"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [403, 404, 500])
async def test_error_status_returns_none(github, upstream, status_code):
    upstream.github_status = status_code
    upstream.github_body = '{"message": "nope"}'

    assert await github.fetch_latest_tag() is None


@pytest.mark.asyncio
async def test_malformed_body_returns_none(github, upstream):
    upstream.github_body = "<html>not json</html>"

    assert await github.fetch_latest_tag() is None


@pytest.mark.asyncio
async def test_missing_tag_name_returns_none(github, upstream):
    upstream.github_body = '{"name": "untagged"}'

    assert await github.fetch_latest_tag() is None


@pytest.mark.asyncio
async def test_transport_error_returns_none(github, upstream):
    upstream.github_error = httpx.ConnectError("connection refused")

    assert await github.fetch_latest_tag() is None


@pytest.mark.asyncio
async def test_renamed_repository_redirect_is_followed():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if len(seen) == 1:
            return httpx.Response(301, headers={"Location": "https://api.github.com/repositories/42/releases/latest"})
        return httpx.Response(200, json={"tag_name": "v2.0.0"})

    client = GitHubReleaseClient(make_settings(), transport=httpx.MockTransport(handler))

    assert await client.fetch_latest_tag() == "v2.0.0"
    assert seen[1] == "https://api.github.com/repositories/42/releases/latest"
