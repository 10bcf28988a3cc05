# tests/test_api.py
from __future__ import annotations

from dataclasses import replace

import fakeredis
import pytest
from fastapi.testclient import TestClient

import leadpipe.api.app as app_module
from leadpipe.api.app import app
from leadpipe.api.deps import get_queue_redis, get_settings

# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def api(settings, redis_client):
    """
    TestClient with settings and the queue Redis swapped for test doubles.

    Yields (client, install) where install(cfg) swaps in different settings.
    """

    def install(cfg):
        app.dependency_overrides[get_settings] = lambda: cfg

    install(settings)
    app.dependency_overrides[get_queue_redis] = lambda: redis_client
    try:
        yield TestClient(app), install
    finally:
        app.dependency_overrides.clear()


def test_health(api):
    client, _ = api
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


# -----------------------------
# Stage runs
# -----------------------------


def test_run_stage_on_empty_queue_returns_summary(api):
    client, _ = api
    resp = client.post("/stages/image-extraction/run")
    assert resp.status_code == 200
    body = resp.json()
    assert body["stage"] == "image-extraction"
    assert body["status"] == "empty"
    assert body["read"] == 0


def test_run_unknown_stage_is_404(api):
    client, _ = api
    resp = client.post("/stages/nope/run")
    assert resp.status_code == 404
    assert resp.json()["error"] == "unknown_stage"


def test_run_without_credentials_is_config_error(api, settings):
    client, install = api
    install(replace(settings, ocr=replace(settings.ocr, api_key=None)))

    resp = client.post("/stages/image-extraction/run")

    assert resp.status_code == 500
    assert resp.json()["error"] == "config_error"
    assert "VISION_API_KEY" in resp.json()["detail"]


def test_trigger_enqueues_background_run(api, monkeypatch):
    client, _ = api
    calls = []

    def fake_enqueue(stage, *, cfg=None, redis=None):
        calls.append(stage)
        return "job-123"

    monkeypatch.setattr(app_module, "enqueue_stage_run", fake_enqueue)

    resp = client.post("/stages/contact-enrichment/trigger")

    assert resp.status_code == 202
    assert resp.json() == {"ok": True, "stage": "contact-enrichment", "job_id": "job-123"}
    assert calls == ["contact-enrichment"]


# -----------------------------
# Intake and inspection
# -----------------------------


def test_intake_queues_image_and_records_photo(api, settings, store):
    client, _ = api

    resp = client.post(
        "/intake/images",
        json={"image_path": "/trucks/acme.jpg", "location": "1600 Main St, Denver, CO 80202"},
    )

    assert resp.status_code == 202
    body = resp.json()
    assert body["queue"] == settings.queue.image_queue
    assert store.get_photo("trucks/acme.jpg").location == "1600 Main St, Denver, CO 80202"

    depths = client.get("/queues").json()["queues"]
    assert depths["image-processing"] == {"stage": "image-extraction", "depth": 1, "archived": 0}
    assert depths["contact-enrichment"]["depth"] == 0


def test_intake_rejects_blank_path(api):
    client, _ = api
    resp = client.post("/intake/images", json={"image_path": "///"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_image"


def test_queue_outage_returns_shaped_error(api):
    client, _ = api
    server = fakeredis.FakeServer()
    server.connected = False
    app.dependency_overrides[get_queue_redis] = lambda: fakeredis.FakeRedis(server=server)

    resp = client.post("/intake/images", json={"image_path": "trucks/acme.jpg"})
    assert resp.status_code == 503
    assert resp.json()["error"] == "queue_unavailable"

    resp = client.get("/queues")
    assert resp.status_code == 503
    assert resp.json()["error"] == "queue_unavailable"


# -----------------------------
# Service key
# -----------------------------


def test_service_key_required_when_configured(api, settings):
    client, install = api
    install(replace(settings, trigger=replace(settings.trigger, service_api_key="s3cret")))

    assert client.get("/queues").status_code == 401
    assert client.get("/queues", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/queues", headers={"Authorization": "Bearer s3cret"}).status_code == 200
    # health stays open
    assert client.get("/health").status_code == 200
