"""Tests for the deploy webhook."""

import json

import httpx
import pytest

from services.deployment import DeployWebhook
from conftest import WEBHOOK_URL, make_settings


@pytest.mark.asyncio
async def test_trigger_posts_payload(webhook, upstream):
    result = await webhook.trigger("v1.2.0")

    assert result.success is True
    assert result.status_code == 200

    request = upstream.webhook_requests[0]
    assert request.method == "POST"
    assert str(request.url) == WEBHOOK_URL
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["User-Agent"] == "GitHub-Tag-Monitor"

    payload = upstream.webhook_payloads[0]
    assert payload["trigger"] == "github_tag_update"
    assert payload["tag"] == "v1.2.0"
    assert payload["repository"] == "MoonTechLab/LunaTV"
    assert payload["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_missing_url_is_a_configuration_error(upstream):
    webhook = DeployWebhook(
        make_settings(render_webhook_url=None),
        transport=httpx.MockTransport(upstream.webhook_handler),
    )

    result = await webhook.trigger("v1.2.0")

    assert result.success is False
    assert result.config_error is True
    assert "RENDER_WEBHOOK_URL" in result.error
    assert upstream.webhook_requests == []


@pytest.mark.asyncio
async def test_error_status_captures_body(webhook, upstream):
    upstream.webhook_status = 503
    upstream.webhook_body = "service unavailable"

    result = await webhook.trigger("v1.2.0")

    assert result.success is False
    assert result.config_error is False
    assert result.status_code == 503
    assert result.error == "Webhook failed: 503 - service unavailable"
    assert len(upstream.webhook_requests) == 1


@pytest.mark.asyncio
async def test_transport_error_is_reported(webhook, upstream):
    upstream.webhook_error = httpx.ReadTimeout("timed out")

    result = await webhook.trigger("v1.2.0")

    assert result.success is False
    assert result.config_error is False
    assert result.error == "timed out"


@pytest.mark.asyncio
async def test_permanent_redirect_is_followed_with_payload(upstream):
    moved = "https://deploy.example.com/hooks/srv-456"
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if str(request.url) == WEBHOOK_URL:
            return httpx.Response(308, headers={"Location": moved})
        return httpx.Response(200, text="ok")

    webhook = DeployWebhook(make_settings(), transport=httpx.MockTransport(handler))

    result = await webhook.trigger("v1.2.0")

    assert result.success is True
    assert [str(r.url) for r in requests] == [WEBHOOK_URL, moved]
    assert requests[1].method == "POST"
    assert json.loads(requests[1].content)["tag"] == "v1.2.0"
