# ===============================================
# tests/test_endpoints.py
# HTTP surface over a scripted orchestrator.
# ===============================================

import pytest
from fastapi.testclient import TestClient

import replygen.app as app_module
from replygen.app import app

from conftest import overload_error

client = TestClient(app)


@pytest.fixture
def scripted(monkeypatch, make_orchestrator):
    def _install(responder=None):
        orch, fake = make_orchestrator(responder) if responder else make_orchestrator()
        monkeypatch.setattr(app_module, "orchestrator", orch)
        return orch, fake
    return _install


def test_root_ok():
    r = client.get("/")
    assert r.status_code == 200
    assert "message" in r.json()


def test_health_ok():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_healthz_reports_cache(scripted):
    scripted()
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["cache"] == {"entries": 0, "hits": 0, "misses": 0}


def test_generate_ok(scripted):
    scripted()
    r = client.post("/generate", json={"post": "Nipah polymerase structures", "mode": "technical"})
    assert r.status_code == 200
    body = r.json()
    result = body["result"]
    assert result["is_fallback"] is False
    assert [ref["marker"] for ref in result["references"]] == [1]
    assert result["quality"]["overall"] == pytest.approx(80)
    assert body["status"][-1] == "Finalizing response..."


def test_generate_rejects_empty_post(scripted):
    _, fake = scripted()
    r = client.post("/generate", json={"post": "   "})
    assert r.status_code == 422
    assert r.json()["error"]["reason"] == "invalid_input"
    assert fake.calls == []


def test_generate_rejects_unknown_mode(scripted):
    scripted()
    r = client.post("/generate", json={"post": "hello", "mode": "sarcastic"})
    assert r.status_code == 422


def test_generate_surfaces_classified_error(scripted):
    scripted(lambda call: overload_error())
    r = client.post("/generate", json={"post": "Nipah polymerase structures"})
    assert r.status_code == 503
    err = r.json()["error"]
    assert err["kind"] == "overload"
    assert err["severity"] == "medium"
    assert err["can_retry"] is True
    assert err["suggestions"]


def test_error_stats_and_cache_clear(scripted):
    scripted(lambda call: overload_error())
    client.post("/generate", json={"post": "anything"})
    stats = client.get("/errors/stats").json()["counts"]
    assert stats["overload"] == 3
    assert stats["auth"] == 0

    scripted()
    client.post("/generate", json={"post": "anything"})
    assert client.delete("/cache").json() == {"cleared": 4}
