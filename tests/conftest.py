"""Shared fixtures: memory-backed store and mocked GitHub / deploy webhook endpoints."""

import json
import os

# Must be set before the app modules build their settings
os.environ["STORE_BACKEND"] = "memory"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "console"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("RENDER_WEBHOOK_URL", None)
os.environ.pop("GITHUB_TOKEN", None)

from typing import List, Optional

import httpx
import pytest

from core.config import Settings
from core.store import StateStore
from services.github import GitHubReleaseClient
from services.deployment import DeployWebhook, TagMonitor

WEBHOOK_URL = "https://deploy.example.com/hooks/srv-123"


class FakeUpstream:
    """Programmable GitHub API and deploy hook behind httpx.MockTransport."""

    def __init__(self):
        self.tag: Optional[str] = "v1.0.0"
        self.github_status = 200
        self.github_body: Optional[str] = None
        self.github_error: Optional[Exception] = None
        self.webhook_status = 200
        self.webhook_body = "ok"
        self.webhook_error: Optional[Exception] = None
        self.github_requests: List[httpx.Request] = []
        self.webhook_requests: List[httpx.Request] = []

    @property
    def webhook_payloads(self) -> List[dict]:
        return [json.loads(r.content) for r in self.webhook_requests]

    def github_handler(self, request: httpx.Request) -> httpx.Response:
        self.github_requests.append(request)
        if self.github_error:
            raise self.github_error
        if self.github_body is not None:
            return httpx.Response(self.github_status, text=self.github_body)
        return httpx.Response(self.github_status, json={"tag_name": self.tag, "name": f"Release {self.tag}"})

    def webhook_handler(self, request: httpx.Request) -> httpx.Response:
        self.webhook_requests.append(request)
        if self.webhook_error:
            raise self.webhook_error
        return httpx.Response(self.webhook_status, text=self.webhook_body)


def make_settings(**overrides) -> Settings:
    values = {
        "store_backend": "memory",
        "render_webhook_url": WEBHOOK_URL,
        "scheduler_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store(settings) -> StateStore:
    return StateStore(settings)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def github(settings, upstream) -> GitHubReleaseClient:
    return GitHubReleaseClient(settings, transport=httpx.MockTransport(upstream.github_handler))


@pytest.fixture
def webhook(settings, upstream) -> DeployWebhook:
    return DeployWebhook(settings, transport=httpx.MockTransport(upstream.webhook_handler))


@pytest.fixture
def monitor(store, github, webhook, settings) -> TagMonitor:
    return TagMonitor(store=store, github=github, webhook=webhook, settings=settings)
