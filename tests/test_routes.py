"""HTTP surface tests through FastAPI's TestClient with container overrides."""

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

import main as main_module
from constants import LATEST_TAG_KEY
from core.container import container
from core.store import StateStore, StoreError
from conftest import make_settings


@pytest.fixture
def client(settings, store, monitor):
    with container.settings.override(providers.Object(settings)), \
            container.store.override(providers.Object(store)), \
            container.tag_monitor.override(providers.Object(monitor)):
        yield TestClient(main_module.app)


def _seed(store, key, value):
    store._memory[key] = (value, None)


def test_check_updates_triggers_on_new_tag(client, store, upstream):
    _seed(store, LATEST_TAG_KEY, "v1.0.0")
    upstream.tag = "v1.1.0"

    resp = client.get("/check-updates")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    body = resp.json()
    assert body["oldTag"] == "v1.0.0"
    assert body["newTag"] == "v1.1.0"
    assert body["deploymentTriggered"] is True
    assert body["timestamp"]


def test_check_updates_unchanged(client, store, upstream):
    _seed(store, LATEST_TAG_KEY, "v1.1.0")
    upstream.tag = "v1.1.0"

    resp = client.get("/check-updates")

    assert resp.status_code == 200
    assert resp.json()["currentTag"] == "v1.1.0"
    assert "lastCheck" in resp.json()
    assert upstream.webhook_requests == []


def test_check_updates_deploy_failure_is_500(client, store, upstream):
    _seed(store, LATEST_TAG_KEY, "v1.0.0")
    upstream.tag = "v1.1.0"
    upstream.webhook_status = 401
    upstream.webhook_body = "bad key"

    resp = client.get("/check-updates")

    assert resp.status_code == 500
    body = resp.json()
    assert body["message"] == "Tag updated but deployment failed"
    assert body["error"] == "Webhook failed: 401 - bad key"
    assert store._memory[LATEST_TAG_KEY][0] == "v1.0.0"


def test_check_updates_fetch_failure_is_500(client, upstream):
    upstream.github_status = 404
    upstream.github_body = '{"message": "Not Found"}'

    resp = client.get("/check-updates")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to fetch latest tag from GitHub"
    assert "details" in resp.json()


def test_manual_trigger(client, upstream):
    upstream.tag = "v5.0.0"

    resp = client.post("/manual-trigger")

    assert resp.status_code == 200
    assert resp.json()["message"] == "Manual deployment triggered successfully"
    assert resp.json()["tag"] == "v5.0.0"


def test_manual_trigger_without_webhook_url_is_500(store, github, upstream):
    import httpx
    from services.deployment import DeployWebhook, TagMonitor

    settings = make_settings(render_webhook_url=None)
    webhook = DeployWebhook(settings, transport=httpx.MockTransport(upstream.webhook_handler))
    monitor = TagMonitor(store=store, github=github, webhook=webhook, settings=settings)

    with container.settings.override(providers.Object(settings)), \
            container.store.override(providers.Object(store)), \
            container.tag_monitor.override(providers.Object(monitor)):
        resp = TestClient(main_module.app).post("/manual-trigger")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Failed to trigger deployment"
    assert "RENDER_WEBHOOK_URL" in body["details"]
    assert body["tag"] == "v1.0.0"


def test_status(client, store, upstream):
    client.get("/check-updates")

    resp = client.get("/status")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "active"
    assert body["currentTag"] == "v1.0.0"
    assert body["lastCheck"] != "never"
    assert body["repository"] == "MoonTechLab/LunaTV"
    assert len(body["recentDeployments"]) == 1


@pytest.mark.parametrize("method,path", [
    ("GET", "/"),
    ("POST", "/"),
    ("GET", "/unknown/path"),
    ("DELETE", "/status/extra"),
    ("GET", "/manual-trigger"),
])
def test_everything_else_gets_discovery(client, method, path):
    resp = client.request(method, path)

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "GitHub Tag Monitor for LunaTV"
    assert set(body["endpoints"]) >= {"/check-updates", "/manual-trigger", "/status"}


def test_store_error_is_reported_distinctly(settings, monitor):
    class BrokenStore(StateStore):
        async def get(self, key):
            raise StoreError("get", key, "connection refused")

    broken = BrokenStore(settings)
    monitor.store = broken

    with container.settings.override(providers.Object(settings)), \
            container.store.override(providers.Object(broken)), \
            container.tag_monitor.override(providers.Object(monitor)):
        client = TestClient(main_module.app)
        check = client.get("/check-updates")
        status = client.get("/status")

    for resp in (check, status):
        assert resp.status_code == 500
        assert resp.json()["error"] == "State store error"
        assert resp.json()["operation"] == "get"
        assert "connection refused" in resp.json()["details"]


@pytest.mark.parametrize("path", ["/", "/status", "/check-updates"])
def test_unbound_store_rejects_before_routing(settings, path):
    with container.settings.override(providers.Object(settings)), \
            container.store.override(providers.Object(None)):
        resp = TestClient(main_module.app).get(path)

    assert resp.status_code == 500
    assert resp.json()["error"] == "State store binding not found"
    assert "STORE_BACKEND" in resp.json()["details"]


def test_health_reports_degraded_without_store(settings):
    with container.settings.override(providers.Object(settings)), \
            container.store.override(providers.Object(None)):
        resp = TestClient(main_module.app).get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["checks"]["store"] is False


def test_health_with_memory_store(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["store_backend"] == "memory"
    assert body["checks"]["deploy_webhook_configured"] is True


def test_unhandled_error_becomes_uniform_500(settings, store):
    def explode():
        raise RuntimeError("container wiring broke")

    with container.settings.override(providers.Object(settings)), \
            container.store.override(providers.Object(store)), \
            container.tag_monitor.override(providers.Callable(explode)):
        resp = TestClient(main_module.app).get("/status")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Internal server error"
    assert "container wiring broke" in resp.json()["details"]
    assert "stack" not in resp.json()


def test_unhandled_error_includes_stack_in_debug(store):
    def explode():
        raise RuntimeError("container wiring broke")

    with container.settings.override(providers.Object(make_settings(debug=True))), \
            container.store.override(providers.Object(store)), \
            container.tag_monitor.override(providers.Callable(explode)):
        resp = TestClient(main_module.app).get("/status")

    assert resp.status_code == 500
    assert any("container wiring broke" in line for line in resp.json()["stack"])
